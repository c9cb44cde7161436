"""
Exceptions

Fatal conditions are raised; non-fatal ones (ambiguous classification,
failed key inference, missing links) are recorded as IngestIssue entries
instead.
"""


class DualStoreError(Exception):
    """Base class for dualstore errors."""


class SchemaConflictError(DualStoreError):
    """A table cannot be materialized without an operator decision."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(message)


class ColumnCollisionError(SchemaConflictError):
    """Two distinct column names normalize to the same identifier."""

    def __init__(self, table: str, normalized: str, originals: list[str]):
        self.normalized = normalized
        self.originals = originals
        super().__init__(
            table,
            f"Columns {originals} in table '{table}' all normalize to '{normalized}'",
        )


class MergeCandidateError(SchemaConflictError):
    """An incoming table overlaps an existing table enough to need a merge decision."""

    def __init__(self, table: str, existing: str, overlap: float):
        self.existing = existing
        self.overlap = overlap
        super().__init__(
            table,
            f"Table '{table}' shares {overlap:.0%} of its columns with '{existing}'; "
            "pass a table decision to extend or create",
        )


class StateCorruptionError(DualStoreError):
    """The persisted state could not be parsed. Requires operator intervention."""


class IngestionLockedError(DualStoreError):
    """Another ingestion run holds the project lock."""


class TableDeletionError(DualStoreError):
    """A table deletion was requested without explicit confirmation."""
