"""
Type Definitions

Pydantic models for all data structures.

Extraction Models:
    - ContentBlock, BlockKind, SourceLocator, MergedRange

Classification Models:
    - ClassificationResult, ConfidenceSignals, Destination

Storage Models (persisted in state.json / Parquet):
    - TableSpec, ColumnType, ForeignKeyRef
    - Relationship, PendingRelationship
    - Chunk, LinkType, LinkMethod
    - IngestionState, SourceRecord

Result Models:
    - IngestResult, IngestIssue, IssueKind, MaterializeResult
    - SchemaAction, SchemaDecision

All types are pydantic BaseModel subclasses and serialize to/from JSON.
"""

from dualstore.types.blocks import BlockKind, ContentBlock, MergedRange, SourceLocator
from dualstore.types.chunks import Chunk, ChunkInput, LinkMethod, LinkType
from dualstore.types.classification import ClassificationResult, ConfidenceSignals, Destination
from dualstore.types.results import IngestIssue, IngestResult, IssueKind, MaterializeResult
from dualstore.types.state import STATE_SCHEMA_VERSION, IngestionState, SourceRecord
from dualstore.types.tables import (
    ColumnType,
    ForeignKeyRef,
    PendingRelationship,
    Relationship,
    SchemaAction,
    SchemaDecision,
    TableSpec,
)

__all__ = [
    # Extraction Models
    "BlockKind",
    "ContentBlock",
    "MergedRange",
    "SourceLocator",
    # Classification Models
    "ClassificationResult",
    "ConfidenceSignals",
    "Destination",
    # Storage Models
    "Chunk",
    "ChunkInput",
    "ColumnType",
    "ForeignKeyRef",
    "IngestionState",
    "LinkMethod",
    "LinkType",
    "PendingRelationship",
    "Relationship",
    "SourceRecord",
    "STATE_SCHEMA_VERSION",
    "TableSpec",
    # Result Models
    "IngestIssue",
    "IngestResult",
    "IssueKind",
    "MaterializeResult",
    "SchemaAction",
    "SchemaDecision",
]
