"""
Parquet Storage Backend

Orchestrates Parquet segment writing for structured tables and the corpus,
with DuckDB for reads and queries.
"""

import asyncio
import shutil
from pathlib import Path
from typing import Any

import pyarrow as pa
import pyarrow.parquet as pq
from filelock import FileLock

from dualstore.config import DualStoreConfig
from dualstore.storage.base import StorageBackend
from dualstore.storage.duckdb.queries import ROW_COLUMN, SEGMENT_COLUMN, DuckDBQueries
from dualstore.types import Chunk, ColumnType
from dualstore.utils.text import source_key


class ParquetBackend(StorageBackend):
    """
    Parquet-based dual-store backend.

    Directory structure:
        project_path/
        ├── tables/
        │   └── <table>/
        │       └── <source-key>.parquet    # rows one source contributed
        ├── corpus/
        │   └── <source-key>.parquet        # chunks one source owns
        └── .store.lock

    Each table segment also carries two bookkeeping columns, __segment and
    __row, that give reads a stable row order.

    Segments are written whole: a temp file is written next to the target
    and swapped in with an atomic rename, so rebuilding a source never
    leaves a half-written segment behind.

    Thread safety:
        - Write operations use file locking (.store.lock)
        - Read operations are concurrent-safe (segments are replaced, never patched)
    """

    def __init__(
        self,
        project_path: Path | str,
        config: DualStoreConfig | None = None,
    ):
        self._project_path = Path(project_path)
        self.config = config or DualStoreConfig()
        self._lock = FileLock(
            self._project_path / ".store.lock", timeout=self.config.storage_lock_timeout
        )
        self._duckdb = DuckDBQueries(self.tables_path, self.config)
        self._initialized = False

    @property
    def project_path(self) -> Path:
        """Return the path to the project directory."""
        return self._project_path

    @property
    def tables_path(self) -> Path:
        return self._project_path / "tables"

    @property
    def corpus_path(self) -> Path:
        return self._project_path / "corpus"

    async def initialize(self) -> None:
        """Initialize storage backend."""
        if self._initialized:
            return

        def _init() -> None:
            self.tables_path.mkdir(parents=True, exist_ok=True)
            self.corpus_path.mkdir(parents=True, exist_ok=True)

        await asyncio.to_thread(_init)
        await self._duckdb.initialize()
        self._initialized = True

    async def close(self) -> None:
        """Close storage backend."""
        await self._duckdb.close()
        self._initialized = False

    # -------------------------------------------------------------------------
    # Parquet Schemas
    # -------------------------------------------------------------------------

    @staticmethod
    def _segment_schema(columns: list[str]) -> pa.Schema:
        """Table segments store raw cell text; typing happens at query time."""
        return pa.schema(
            [(name, pa.string()) for name in columns]
            + [(SEGMENT_COLUMN, pa.string()), (ROW_COLUMN, pa.int64())]
        )

    @staticmethod
    def _corpus_schema() -> pa.Schema:
        return pa.schema([
            ("id", pa.string()),
            ("source_file", pa.string()),
            ("section", pa.string()),
            ("content", pa.string()),
            ("position", pa.int32()),
        ])

    @staticmethod
    def segment_name(source: str) -> str:
        return f"{source_key(source)}.parquet"

    # -------------------------------------------------------------------------
    # Structured Store
    # -------------------------------------------------------------------------

    async def write_table_segment(
        self,
        table: str,
        source: str,
        columns: list[str],
        rows: list[list[str | None]],
    ) -> None:
        """Replace the rows a source contributes to a table."""
        def _write() -> None:
            with self._lock:
                data: dict[str, list[Any]] = {
                    name: [row[i] for row in rows] for i, name in enumerate(columns)
                }
                data[SEGMENT_COLUMN] = [self.segment_name(source)] * len(rows)
                data[ROW_COLUMN] = list(range(len(rows)))
                arrow_table = pa.Table.from_pydict(data, schema=self._segment_schema(columns))
                table_dir = self.tables_path / table
                table_dir.mkdir(parents=True, exist_ok=True)
                self._write_atomic(arrow_table, table_dir / self.segment_name(source))

        await asyncio.to_thread(_write)

    async def remove_table_segment(self, table: str, source: str) -> None:
        def _remove() -> None:
            with self._lock:
                path = self.tables_path / table / self.segment_name(source)
                path.unlink(missing_ok=True)

        await asyncio.to_thread(_remove)

    async def snapshot_table_segment(self, table: str, source: str) -> bytes | None:
        def _read() -> bytes | None:
            path = self.tables_path / table / self.segment_name(source)
            return path.read_bytes() if path.exists() else None

        return await asyncio.to_thread(_read)

    async def restore_table_segment(self, table: str, source: str, snapshot: bytes | None) -> None:
        """Write back a snapshot; None means the source had no segment."""
        def _restore() -> None:
            with self._lock:
                table_dir = self.tables_path / table
                path = table_dir / self.segment_name(source)
                if snapshot is None:
                    path.unlink(missing_ok=True)
                    if table_dir.is_dir() and not any(table_dir.iterdir()):
                        table_dir.rmdir()
                    return
                table_dir.mkdir(parents=True, exist_ok=True)
                temp_path = path.with_name(f".{path.name}.tmp")
                temp_path.write_bytes(snapshot)
                temp_path.replace(path)

        await asyncio.to_thread(_restore)

    async def drop_table(self, table: str) -> None:
        """Delete a table directory and all its segments."""
        def _drop() -> None:
            with self._lock:
                shutil.rmtree(self.tables_path / table, ignore_errors=True)

        await asyncio.to_thread(_drop)
        self._duckdb.forget_table(table)

    async def register_table(self, table: str, column_types: dict[str, ColumnType]) -> None:
        self._duckdb.register_table(table, column_types)

    async def list_tables(self) -> list[str]:
        def _list() -> list[str]:
            if not self.tables_path.exists():
                return []
            return sorted(
                p.name for p in self.tables_path.iterdir()
                if p.is_dir() and any(p.glob("*.parquet"))
            )

        return await asyncio.to_thread(_list)

    def _write_atomic(self, arrow_table: pa.Table, path: Path) -> None:
        """Write to a temp file, then atomic rename (prevents torn segments)."""
        temp_path = path.with_name(f".{path.name}.tmp")
        compression = self.config.storage_parquet_compression
        pq.write_table(
            arrow_table,
            temp_path,
            compression=None if compression == "none" else compression,
        )
        temp_path.replace(path)

    # -------------------------------------------------------------------------
    # Read Operations (delegate to DuckDB)
    # -------------------------------------------------------------------------

    async def read_table_rows(self, table: str) -> list[dict[str, str | None]]:
        return await self._duckdb.read_rows(table)

    async def read_segment_rows(self, table: str, source: str) -> list[dict[str, str | None]]:
        return await self._duckdb.read_rows(table, segment=self.segment_name(source))

    async def query(
        self,
        table: str,
        predicate: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self._duckdb.query(table, predicate, limit)

    async def table_columns(self, table: str) -> list[str]:
        return await self._duckdb.table_columns(table)

    async def column_values(self, table: str, column: str) -> set[str]:
        return await self._duckdb.column_values(table, column)

    async def duplicate_values(self, table: str, column: str) -> list[str]:
        return await self._duckdb.duplicate_values(table, column)

    async def count_rows(self, table: str) -> int:
        return await self._duckdb.count_rows(table)

    # -------------------------------------------------------------------------
    # Corpus Store
    # -------------------------------------------------------------------------

    async def replace_corpus_segment(self, source: str, chunks: list[Chunk]) -> None:
        """Clear a source's corpus segment and write the regenerated chunks."""
        def _write() -> None:
            with self._lock:
                path = self.corpus_path / self.segment_name(source)
                if not chunks:
                    path.unlink(missing_ok=True)
                    return
                data: dict[str, list[Any]] = {
                    "id": [c.id for c in chunks],
                    "source_file": [c.source_file for c in chunks],
                    "section": [c.section for c in chunks],
                    "content": [c.content for c in chunks],
                    "position": [c.position for c in chunks],
                }
                arrow_table = pa.Table.from_pydict(data, schema=self._corpus_schema())
                self.corpus_path.mkdir(parents=True, exist_ok=True)
                self._write_atomic(arrow_table, path)

        await asyncio.to_thread(_write)

    async def read_corpus(self, source: str | None = None) -> list[dict[str, Any]]:
        """Read chunk content, ordered by source segment then position."""
        def _read() -> list[dict[str, Any]]:
            if source is not None:
                paths = [self.corpus_path / self.segment_name(source)]
            else:
                paths = sorted(self.corpus_path.glob("*.parquet"))
            rows: list[dict[str, Any]] = []
            for path in paths:
                if not path.exists():
                    continue
                rows.extend(pq.read_table(path).to_pylist())
            return rows

        return await asyncio.to_thread(_read)
