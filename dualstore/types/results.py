"""
Result Types

API Result Models:
    - IngestResult: Summary of one source ingestion
    - IngestIssue: A non-fatal problem recorded during ingestion
    - IssueKind: Issue taxonomy

Internal Result Models:
    - MaterializeResult: Outcome of writing one structured block
"""

from enum import Enum

from pydantic import BaseModel

from dualstore.types.tables import SchemaAction, TableSpec


class IssueKind(str, Enum):
    """Non-fatal issue categories."""

    CLASSIFICATION_AMBIGUOUS = "classification_ambiguous"
    KEY_INFERENCE_FAILED = "key_inference_failed"
    SCHEMA_CONFLICT = "schema_conflict"
    BLOCK_SKIPPED = "block_skipped"
    BLOCK_FAILED = "block_failed"
    FILE_FAILED = "file_failed"


class IngestIssue(BaseModel):
    """
    A problem that did not abort the run.

    Attributes:
        kind: Issue category
        message: Human-readable description
        block_index: Position of the block in the source (if block-level)
        table: Table involved (if any)
    """

    kind: IssueKind
    message: str
    block_index: int | None = None
    table: str | None = None


class IngestResult(BaseModel):
    """
    Result from ingesting one source.

    Attributes:
        source: Source name
        skipped_unchanged: True if the fingerprint matched and nothing ran
        tables_created: Newly created tables
        tables_extended: Existing tables that received rows
        rows_written: Structured rows materialized
        chunks_written: Corpus chunks regenerated for the source
        chunks_linked: Chunks carrying a link after linking
        relationships_resolved: Resolved relationships after the run
        pending_relationships: Pending relationships after the run
        orphaned_tables: Tables the source no longer produces (kept)
        issues: Non-fatal issues
        duration_seconds: Wall-clock processing time
    """

    source: str
    skipped_unchanged: bool = False
    tables_created: list[str] = []
    tables_extended: list[str] = []
    rows_written: int = 0
    chunks_written: int = 0
    chunks_linked: int = 0
    relationships_resolved: int = 0
    pending_relationships: int = 0
    orphaned_tables: list[str] = []
    issues: list[IngestIssue] = []
    duration_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return any(issue.kind == IssueKind.FILE_FAILED for issue in self.issues)


class MaterializeResult(BaseModel):
    """Outcome of materializing one structured block."""

    spec: TableSpec
    action: SchemaAction
    rows_written: int
