"""
Key Inference

Pure functions for primary-key detection, foreign-key candidate detection
and column overlap. They operate on raw (string) rows as read back from the
structured store, so they see every row ever materialized into a table.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from dualstore.utils.text import singularize

_FK_PATTERN = re.compile(r"^(?P<stem>[a-z0-9_]+?)_(?:id|key|code)$")

# Preferred primary-key names, tried before the declaration-order scan
_PREFERRED_KEYS = ("id", "{singular}_id", "key", "code")


def is_unique_non_null(values: Sequence[str | None]) -> bool:
    """True if every value is present and no value repeats."""
    if not values:
        return False
    seen: set[str] = set()
    for value in values:
        if value is None or value in seen:
            return False
        seen.add(value)
    return True


def detect_primary_key(
    table: str,
    columns: Sequence[str],
    rows: Sequence[dict[str, str | None]],
) -> str | None:
    """
    Detect a table's primary key.

    Tries id, {singular}_id, key and code first, then every column in
    declaration order, and accepts the first whose values are unique and
    non-null across all rows.

    Args:
        table: Normalized table name (customers -> customer_id candidate)
        columns: Column names in declaration order
        rows: Every row of the table

    Returns:
        Column name, or None if no column qualifies (the table stays
        materialized but cannot be a foreign-key target)
    """
    if not rows:
        return None

    singular = singularize(table)
    preferred = [name.format(singular=singular) for name in _PREFERRED_KEYS]
    ordered = [c for c in preferred if c in columns]
    ordered += [c for c in columns if c not in ordered]

    for column in ordered:
        if is_unique_non_null([row.get(column) for row in rows]):
            return column
    return None


def foreign_key_candidates(
    columns: Iterable[str],
    primary_key: str | None = None,
) -> list[tuple[str, str]]:
    """
    Columns shaped like foreign keys (*_id, *_key, *_code), with their stem.

    The table's own primary key is never a candidate.

    Returns:
        List of (column, stem), e.g. [("customer_id", "customer")]
    """
    candidates: list[tuple[str, str]] = []
    for column in columns:
        if column == primary_key:
            continue
        match = _FK_PATTERN.match(column)
        if match:
            candidates.append((column, match.group("stem")))
    return candidates


def column_overlap(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard overlap of two column-name sets."""
    left, right = set(a), set(b)
    if not left and not right:
        return 0.0
    return len(left & right) / len(left | right)
