"""
Dual-Store Assembly

Modules:
    writer: Idempotent table materialization and corpus regeneration
"""

from dualstore.ingestion.assembly.writer import (
    DualStoreWriter,
    derive_table_name,
    group_paragraphs,
    infer_column_type,
    normalize_columns,
)

__all__ = [
    "DualStoreWriter",
    "derive_table_name",
    "group_paragraphs",
    "infer_column_type",
    "normalize_columns",
]
