"""
Structured Table Types

Storage Models (persisted in state.json):
    - TableSpec: A materialized structured table
    - ForeignKeyRef: Target of a resolved foreign key
    - Relationship: Resolved FK edge between two tables
    - PendingRelationship: FK awaiting its target table

Decision Models:
    - SchemaAction: extend / merge_candidate / create
    - SchemaDecision: The chosen action plus its justification
"""

from enum import Enum

from pydantic import BaseModel, Field


class ColumnType(str, Enum):
    """Inferred column types."""

    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    TEXT = "text"


class ForeignKeyRef(BaseModel):
    """Target of a foreign key column."""

    table: str
    column: str


class TableSpec(BaseModel):
    """
    A structured entity materialized from one or more sources.

    Attributes:
        name: Normalized table name
        source: Source that first created the table
        sources: All contributing sources, first-seen order
        columns: Normalized column name -> inferred type
        primary_key: Unique, non-null column or None
        foreign_keys: Resolved FK column -> target
        row_count: Total rows across all contributing sources
        source_row_counts: Rows contributed per source
        source_fingerprints: Content fingerprint per source
    """

    name: str
    source: str
    sources: list[str] = []
    columns: dict[str, ColumnType] = {}
    primary_key: str | None = None
    foreign_keys: dict[str, ForeignKeyRef] = {}
    row_count: int = 0
    source_row_counts: dict[str, int] = {}
    source_fingerprints: dict[str, str] = {}

    @property
    def column_names(self) -> list[str]:
        return list(self.columns)


class Relationship(BaseModel):
    """A resolved foreign key: from_table.from_column -> to_table.to_column."""

    from_table: str
    from_column: str
    to_table: str
    to_column: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.from_table, self.from_column)


class PendingRelationship(BaseModel):
    """
    A foreign-key-shaped column whose target table is not known yet.

    awaited_table_name_hint holds the column stem (customer_id -> customer).
    """

    table: str
    column: str
    awaited_table_name_hint: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.table, self.column)


class SchemaAction(str, Enum):
    """How a newly classified table relates to known tables."""

    EXTEND = "extend"
    MERGE_CANDIDATE = "merge_candidate"
    CREATE = "create"


class SchemaDecision(BaseModel):
    """
    Extend/merge/create decision for an incoming table.

    Attributes:
        action: Chosen action
        table_name: Table to write into (existing name for extend)
        overlap_with: Existing table whose columns overlap (merge candidates)
        overlap: Column overlap ratio with overlap_with
    """

    action: SchemaAction
    table_name: str
    overlap_with: str | None = None
    overlap: float = Field(default=0.0, ge=0.0, le=1.0)
