"""
Key & Relationship Resolution

Modules:
    keys: Primary-key detection, FK candidates, column overlap (pure)
    relationships: FK resolution against the structured store, the pending
        worklist sweep, and the extend/merge/create decision
"""

from dualstore.ingestion.resolution.keys import (
    column_overlap,
    detect_primary_key,
    foreign_key_candidates,
    is_unique_non_null,
)
from dualstore.ingestion.resolution.relationships import RelationshipResolver, table_matches_hint

__all__ = [
    "RelationshipResolver",
    "column_overlap",
    "detect_primary_key",
    "foreign_key_candidates",
    "is_unique_non_null",
    "table_matches_hint",
]
