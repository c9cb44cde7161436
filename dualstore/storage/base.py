"""
Abstract Storage Backend Interface

Defines the contract for the dual store: a queryable structured store and
a corpus store for unstructured chunks.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dualstore.types import Chunk, ColumnType


class StorageBackend(ABC):
    """
    Abstract interface for dual-store backends.

    Structured tables are composed of one segment per contributing source,
    so rebuilding a source replaces exactly its own rows. The corpus is
    likewise segmented per source.

    Lifecycle:
        backend = ParquetBackend(path, config)
        await backend.initialize()
        # ... operations ...
        await backend.close()

    Or using context manager:
        async with ParquetBackend(path, config) as backend:
            await backend.write_table_segment(...)
    """

    @property
    @abstractmethod
    def project_path(self) -> Path:
        """Return the path to the project directory."""
        ...

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize storage (create directories)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close storage and release resources."""
        ...

    async def __aenter__(self) -> "StorageBackend":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Structured Store
    # -------------------------------------------------------------------------

    @abstractmethod
    async def write_table_segment(
        self,
        table: str,
        source: str,
        columns: list[str],
        rows: list[list[str | None]],
    ) -> None:
        """Replace the rows a source contributes to a table (full rebuild)."""
        ...

    @abstractmethod
    async def remove_table_segment(self, table: str, source: str) -> None:
        """Remove the rows a source contributes to a table."""
        ...

    @abstractmethod
    async def snapshot_table_segment(self, table: str, source: str) -> bytes | None:
        """Raw bytes of a source's segment, None if it has none."""
        ...

    @abstractmethod
    async def restore_table_segment(self, table: str, source: str, snapshot: bytes | None) -> None:
        """Put back a segment taken with snapshot_table_segment (None removes it)."""
        ...

    @abstractmethod
    async def drop_table(self, table: str) -> None:
        """Delete a table and all its segments."""
        ...

    @abstractmethod
    async def register_table(self, table: str, column_types: dict[str, "ColumnType"]) -> None:
        """Register column types used for typed queries."""
        ...

    @abstractmethod
    async def read_table_rows(self, table: str) -> list[dict[str, str | None]]:
        """Read all raw (string) rows of a table in deterministic order."""
        ...

    @abstractmethod
    async def read_segment_rows(self, table: str, source: str) -> list[dict[str, str | None]]:
        """Read the raw rows one source contributed to a table."""
        ...

    @abstractmethod
    async def query(
        self,
        table: str,
        predicate: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query typed rows with an equality predicate ({column: value})."""
        ...

    @abstractmethod
    async def table_columns(self, table: str) -> list[str]:
        """Union of column names across a table's segments."""
        ...

    @abstractmethod
    async def column_values(self, table: str, column: str) -> set[str]:
        """Distinct non-null raw values of a column."""
        ...

    @abstractmethod
    async def duplicate_values(self, table: str, column: str) -> list[str]:
        """Raw values of a column that occur more than once."""
        ...

    @abstractmethod
    async def count_rows(self, table: str) -> int:
        """Row count of a table (0 if it does not exist)."""
        ...

    @abstractmethod
    async def list_tables(self) -> list[str]:
        """Names of materialized tables."""
        ...

    # -------------------------------------------------------------------------
    # Corpus Store
    # -------------------------------------------------------------------------

    @abstractmethod
    async def replace_corpus_segment(self, source: str, chunks: list["Chunk"]) -> None:
        """Clear a source's corpus segment and write the given chunks."""
        ...

    @abstractmethod
    async def read_corpus(self, source: str | None = None) -> list[dict[str, Any]]:
        """Read corpus chunk content, optionally for one source."""
        ...
