"""
Utilities

Modules:
    text: Identifier normalization, inflection, value sniffing, fingerprints
"""

from dualstore.utils.text import (
    fingerprint_bytes,
    fingerprint_text,
    generate_chunk_id,
    normalize_identifier,
    pluralize,
    singularize,
    source_key,
    source_slug,
)

__all__ = [
    "fingerprint_bytes",
    "fingerprint_text",
    "generate_chunk_id",
    "normalize_identifier",
    "pluralize",
    "singularize",
    "source_key",
    "source_slug",
]
