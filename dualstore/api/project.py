"""
DualStoreProject - Primary Entry Point

A project is a self-contained directory holding both stores and the
ingestion state:
    - state.json: Tables, relationships, pending relationships, chunks and
      the {table}.{id} -> chunk ids index
    - tables/<table>/<source>.parquet: Structured rows, one segment per source
    - corpus/<source>.parquet: Corpus chunks, one segment per source

Example:
    >>> project = DualStoreProject("./project")
    >>> await project.ingest_file("customers.csv")
    >>> rows = await project.query("customers", {"id": 101})

    # Or with sync API
    >>> project = DualStoreProject("./project")
    >>> project.ingest_file_sync("customers.csv")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dualstore.errors import TableDeletionError

if TYPE_CHECKING:
    from dualstore.config.settings import DualStoreConfig
    from dualstore.ingestion.pipeline import IngestionPipeline
    from dualstore.providers.base import SimilarityLinker
    from dualstore.storage.parquet.backend import ParquetBackend
    from dualstore.storage.state import StateStore
    from dualstore.types import Chunk, ContentBlock, IngestionState, IngestResult

logger = logging.getLogger(__name__)


class DualStoreProject:
    """
    A dual-store ingestion project.

    Args:
        path: Project directory. Created if it doesn't exist.
        config: Optional configuration. Uses defaults if not provided.
        create: If True, create directory if missing. Default True.
        similarity: Optional similarity fallback for the linker. If None,
            one is built from config.embedding_provider.
    """

    def __init__(
        self,
        path: str | Path,
        config: "DualStoreConfig | None" = None,
        create: bool = True,
        similarity: "SimilarityLinker | None" = None,
    ) -> None:
        self._path = Path(path).resolve()
        self._create = create

        if config is None:
            from dualstore.config import DualStoreConfig
            config = DualStoreConfig()
        self._config = config
        self._similarity = similarity

        # Lazy-initialized components
        self._storage: "ParquetBackend | None" = None
        self._state_store: "StateStore | None" = None
        self._pipeline: "IngestionPipeline | None" = None
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Lazy initialization of storage and pipeline on first use."""
        if self._initialized:
            return

        if self._create:
            self._path.mkdir(parents=True, exist_ok=True)
        elif not self._path.exists():
            raise FileNotFoundError(f"Project not found: {self._path}")

        from dualstore.ingestion.pipeline import IngestionPipeline
        from dualstore.providers import similarity_linker_from_config
        from dualstore.storage.parquet.backend import ParquetBackend
        from dualstore.storage.state import StateStore

        self._storage = ParquetBackend(self._path, self._config)
        await self._storage.initialize()
        self._state_store = StateStore(self._path, self._config)

        similarity = self._similarity or similarity_linker_from_config(self._config)
        self._pipeline = IngestionPipeline(
            self._storage, self._state_store, self._config, similarity
        )
        self._initialized = True

    # === Lifecycle ===

    def __enter__(self) -> "DualStoreProject":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close_sync()

    async def __aenter__(self) -> "DualStoreProject":
        await self._ensure_initialized()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release all resources (async)."""
        if self._storage is not None:
            await self._storage.close()
            self._storage = None
        self._state_store = None
        self._pipeline = None
        self._initialized = False

    def close_sync(self) -> None:
        """Release all resources (sync)."""
        if self._initialized:
            asyncio.run(self.close())

    # === Properties ===

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> "DualStoreConfig":
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # === Ingestion ===

    async def ingest_file(
        self,
        path: str | Path,
        table_decisions: Mapping[str, str] | None = None,
    ) -> "IngestResult":
        """
        Ingest one file (markdown or CSV/TSV).

        Args:
            path: File to ingest; its file name is the source name
            table_decisions: Operator decisions for merge candidates

        Returns:
            IngestResult
        """
        await self._ensure_initialized()
        assert self._pipeline is not None
        return await self._pipeline.ingest_file(path, table_decisions)

    async def ingest_files(
        self,
        paths: Iterable[str | Path],
        table_decisions: Mapping[str, str] | None = None,
    ) -> list["IngestResult"]:
        """
        Ingest files one after another.

        A file that fails is reported in its result; the remaining files
        still run.
        """
        results = []
        for path in paths:
            result = await self.ingest_file(path, table_decisions)
            if result.failed:
                logger.error(f"Continuing after failure in {result.source}")
            results.append(result)
        return results

    async def ingest_directory(
        self,
        path: str | Path,
        pattern: str = "**/*",
        table_decisions: Mapping[str, str] | None = None,
    ) -> list["IngestResult"]:
        """Ingest every supported file under a directory, in sorted order."""
        from dualstore.ingestion.extraction import extractor_for

        supported = []
        for file_path in sorted(Path(path).glob(pattern)):
            if not file_path.is_file():
                continue
            try:
                extractor_for(file_path)
            except ValueError:
                continue
            supported.append(file_path)
        return await self.ingest_files(supported, table_decisions)

    async def ingest_blocks(
        self,
        source: str,
        blocks: Iterable["ContentBlock"],
        fingerprint: str | None = None,
        table_decisions: Mapping[str, str] | None = None,
    ) -> "IngestResult":
        """Ingest blocks produced by an external extractor as one source."""
        await self._ensure_initialized()
        assert self._pipeline is not None
        return await self._pipeline.ingest_blocks(source, blocks, fingerprint, table_decisions)

    # === Inspection ===

    async def state(self) -> "IngestionState":
        """Current persisted ingestion state."""
        await self._ensure_initialized()
        assert self._pipeline is not None
        return await self._pipeline.load_state()

    async def query(
        self,
        table: str,
        predicate: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Typed rows of a table matching an equality predicate."""
        await self._ensure_initialized()
        assert self._storage is not None and self._pipeline is not None
        # Registers column types
        await self._pipeline.load_state()
        return await self._storage.query(table, predicate, limit)

    async def chunks_for_entity(self, table: str, entity_id: Any) -> list["Chunk"]:
        """Chunks linked to one structured row."""
        state = await self.state()
        return state.chunks_for_entity(table, str(entity_id))

    async def entities_for_chunk(self, chunk_id: str) -> list[dict[str, Any]]:
        """Structured rows a chunk is linked to."""
        state = await self.state()
        chunk = state.chunks.get(chunk_id)
        if chunk is None or not chunk.linked_table:
            return []
        spec = state.tables.get(chunk.linked_table)
        if spec is None or spec.primary_key is None or not chunk.linked_ids:
            return []
        assert self._storage is not None
        wanted = set(chunk.linked_ids)
        rows = await self._storage.read_table_rows(spec.name)
        return [row for row in rows if row.get(spec.primary_key) in wanted]

    async def stats(self) -> dict[str, int]:
        """Project statistics."""
        state = await self.state()
        return {
            "sources": len(state.sources),
            "tables": len(state.tables),
            "rows": sum(spec.row_count for spec in state.tables.values()),
            "relationships": len(state.relationships),
            "pending_relationships": len(state.pending_relationships),
            "chunks": len(state.chunks),
            "linked_chunks": sum(1 for c in state.chunks.values() if c.is_linked),
        }

    async def verify(self) -> list[str]:
        """
        Check stored data against the state invariants.

        Returns:
            Human-readable problems (empty if consistent)
        """
        state = await self.state()
        assert self._storage is not None
        problems: list[str] = []

        for name, spec in sorted(state.tables.items()):
            count = await self._storage.count_rows(name)
            if count != spec.row_count:
                problems.append(f"{name}: state row_count {spec.row_count}, store has {count}")
            if spec.primary_key is not None:
                duplicates = await self._storage.duplicate_values(name, spec.primary_key)
                if duplicates:
                    problems.append(
                        f"{name}: duplicate primary key values {duplicates[:5]}"
                    )

        for name in await self._storage.list_tables():
            if name not in state.tables:
                problems.append(f"{name}: stored segments but no table in state")

        resolved = {r.key for r in state.relationships}
        for pending in state.pending_relationships:
            if pending.key in resolved:
                problems.append(
                    f"{pending.table}.{pending.column}: both resolved and pending"
                )
        for relationship in state.relationships:
            target = state.tables.get(relationship.to_table)
            if target is None or target.primary_key != relationship.to_column:
                problems.append(
                    f"{relationship.from_table}.{relationship.from_column}: "
                    f"target {relationship.to_table}.{relationship.to_column} is not a primary key"
                )

        for key, chunk_ids in state.db_to_rag_index.items():
            for chunk_id in chunk_ids:
                if chunk_id not in state.chunks:
                    problems.append(f"index entry {key} points at missing chunk {chunk_id}")
        return problems

    # === Operator actions ===

    async def drop_table(self, name: str, confirm: bool = False) -> None:
        """
        Delete a table and everything that depends on it.

        Relationships targeting the table go back to pending; chunk links to
        it are cleared.

        Raises:
            TableDeletionError: If confirm is not True
            KeyError: If the table is unknown
        """
        if not confirm:
            raise TableDeletionError(
                f"Refusing to drop table '{name}' without confirm=True"
            )
        await self._ensure_initialized()
        assert self._storage is not None and self._state_store is not None
        assert self._pipeline is not None

        from dualstore.ingestion.resolution.keys import foreign_key_candidates
        from dualstore.types import PendingRelationship

        with self._state_store.exclusive_run():
            state = await self._pipeline.load_state()
            if name not in state.tables:
                raise KeyError(f"Unknown table: {name}")

            for relationship in state.relationships_to(name):
                candidates = foreign_key_candidates([relationship.from_column])
                hint = candidates[0][1] if candidates else name
                state.add_pending(
                    PendingRelationship(
                        table=relationship.from_table,
                        column=relationship.from_column,
                        awaited_table_name_hint=hint,
                    )
                )
            state.clear_foreign_keys(name)
            del state.tables[name]
            for record in state.sources.values():
                if name in record.tables:
                    record.tables.remove(name)
            cleared = self._pipeline.linker.prune_links(state, name)

            await self._storage.drop_table(name)
            await self._state_store.save(state)
        logger.info(f"Dropped table '{name}' ({cleared} chunk links cleared)")

    # === Sync wrappers ===

    def ingest_file_sync(self, path: str | Path, **kwargs: Any) -> "IngestResult":
        """Sync wrapper for ingest_file()."""
        return asyncio.run(self._run_and_close(self.ingest_file(path, **kwargs)))

    def ingest_files_sync(self, paths: Iterable[str | Path], **kwargs: Any) -> list["IngestResult"]:
        """Sync wrapper for ingest_files()."""
        return asyncio.run(self._run_and_close(self.ingest_files(paths, **kwargs)))

    def ingest_directory_sync(self, path: str | Path, **kwargs: Any) -> list["IngestResult"]:
        """Sync wrapper for ingest_directory()."""
        return asyncio.run(self._run_and_close(self.ingest_directory(path, **kwargs)))

    def query_sync(self, table: str, *args: Any, **kwargs: Any) -> list[dict[str, Any]]:
        """Sync wrapper for query()."""
        return asyncio.run(self._run_and_close(self.query(table, *args, **kwargs)))

    def stats_sync(self) -> dict[str, int]:
        """Sync wrapper for stats()."""
        return asyncio.run(self._run_and_close(self.stats()))

    def drop_table_sync(self, name: str, confirm: bool = False) -> None:
        """Sync wrapper for drop_table()."""
        asyncio.run(self._run_and_close(self.drop_table(name, confirm=confirm)))

    async def _run_and_close(self, coro: Any) -> Any:
        # Each asyncio.run() gets its own loop; storage must not outlive it
        try:
            return await coro
        finally:
            await self.close()
