"""
Text Processing Utilities

Functions for identifier normalization, inflection and value sniffing.
"""

from __future__ import annotations

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")
_NON_IDENTIFIER = re.compile(r"[^a-z0-9_]")
_NUMBER = re.compile(r"^[+-]?(\d{1,3}(,\d{3})+|\d+)(\.\d+)?$|^[+-]?\.\d+$")
_INTEGER = re.compile(r"^[+-]?\d+$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_NULL_TOKENS = frozenset({"", "null", "none", "n/a", "na", "nan", "-", "--"})
_BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no"})


def normalize_identifier(name: str) -> str:
    """
    Normalize a column or table name.

    Lower-case, whitespace to underscore, strip everything that is not
    alphanumeric or underscore.

    Args:
        name: e.g., "Customer ID"

    Returns:
        Normalized identifier e.g., "customer_id"
    """
    text = _WHITESPACE.sub("_", name.strip().lower())
    return _NON_IDENTIFIER.sub("", text)


def source_slug(source: str) -> str:
    """Filesystem-safe slug for a source name: 'Q3 Report.md' -> 'q3_report_md'."""
    slug = normalize_identifier(source.replace(".", " ").replace("-", " "))
    return slug or "source"


def source_key(source: str) -> str:
    """
    Unique storage key for a source: {source_slug}_{name_hash}.

    Slugs fold case and punctuation, so 'sales-2024.csv' and
    'sales_2024.csv' share a slug. The hash of the exact name keeps their
    segments and chunk ids apart.
    """
    return f"{source_slug(source)}_{fingerprint_text(source)[:12]}"


def generate_chunk_id(source: str, sequence: int) -> str:
    """Generate chunk ID: {source_key}_chunk_{sequence:04d}"""
    return f"{source_key(source)}_chunk_{sequence:04d}"


def singularize(word: str) -> str:
    """
    Naive English singular form, sufficient for table names.

    customers -> customer, categories -> category, boxes -> box
    """
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith(("sses", "xes", "ches", "shes", "zes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss") and len(word) > 1:
        return word[:-1]
    return word


def pluralize(word: str) -> str:
    """
    Naive English plural form.

    customer -> customers, category -> categories, box -> boxes
    """
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "ch", "sh", "z")):
        return word + "es"
    return word + "s"


def name_variants(word: str) -> set[str]:
    """All inflections a table name or hint may appear under."""
    base = singularize(word)
    return {word, base, pluralize(base)}


def is_null(value: str | None) -> bool:
    return value is None or value.strip().lower() in _NULL_TOKENS


def is_numeric(value: str) -> bool:
    return bool(_NUMBER.match(value.strip()))


def is_integer(value: str) -> bool:
    return bool(_INTEGER.match(value.strip()))


def is_boolean(value: str) -> bool:
    return value.strip().lower() in _BOOLEAN_TOKENS


def is_iso_date(value: str) -> bool:
    return bool(_ISO_DATE.match(value.strip()))


def canonical_value(value: str | None) -> str | None:
    """
    Cell value as stored: stripped, blank cells mapped to None.

    Null-like tokens (NA, n/a, -) are kept verbatim. They only count as
    missing for classification signals and type inference.
    """
    if value is None:
        return None
    return value.strip() or None


def fingerprint_text(*parts: str) -> str:
    """Stable sha256 fingerprint of text parts."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x1f")
    return digest.hexdigest()


def fingerprint_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
