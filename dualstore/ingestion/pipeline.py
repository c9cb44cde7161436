"""
Ingestion Pipeline

Runs one source through classification, materialization, relationship
resolution and linking.

Pipeline Stages:
    1. Load state; skip the source if its fingerprint is unchanged
    2. Walk blocks in document order, tracking headings
    3. Classify each block
    4. Structured side: decide extend/merge/create, rebuild the source's
       segment, resolve foreign keys, sweep pending relationships, save
    5. Unstructured side: collect paragraphs and table rows
    6. Regenerate the source's corpus segment
    7. Link the new chunks, then re-link existing chunks
    8. Mark the source complete and save

Failure handling:
    - Per-block failures are recorded as issues; state rolls back to the
      last checkpoint, the block's table segment is restored, and the file
      continues
    - Per-file failures abort that file only; state stays at its last
      checkpoint
    - StateCorruptionError and IngestionLockedError propagate
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path

from dualstore.config import DualStoreConfig
from dualstore.errors import IngestionLockedError, SchemaConflictError, StateCorruptionError
from dualstore.ingestion.assembly import (
    DualStoreWriter,
    derive_table_name,
    group_paragraphs,
    normalize_columns,
)
from dualstore.ingestion.classification import classify
from dualstore.ingestion.extraction import extractor_for
from dualstore.ingestion.linking import CrossReferenceLinker
from dualstore.ingestion.resolution import RelationshipResolver
from dualstore.providers.base import SimilarityLinker
from dualstore.storage.base import StorageBackend
from dualstore.storage.state import StateStore
from dualstore.types import (
    BlockKind,
    ChunkInput,
    ContentBlock,
    Destination,
    IngestIssue,
    IngestionState,
    IngestResult,
    IssueKind,
    SchemaAction,
    SourceRecord,
)
from dualstore.utils.text import fingerprint_bytes, fingerprint_text

logger = logging.getLogger(__name__)


def fingerprint_blocks(blocks: Iterable[ContentBlock]) -> str:
    """Content fingerprint of a block sequence (canonical JSON)."""
    return fingerprint_text(*(block.model_dump_json() for block in blocks))


class _SourceRun:
    """Mutable bookkeeping for one source while it is being processed."""

    def __init__(self, source: str, fingerprint: str, previous: SourceRecord | None):
        self.source = source
        self.fingerprint = fingerprint
        self.previous_tables = list(previous.tables) if previous else []
        self.headings: list[tuple[int, str]] = []
        self.paragraphs: list[tuple[str, str]] = []
        self.items: list[ChunkInput] = []
        self.written: dict[str, tuple[list[str], list[list[str | None]]]] = {}
        self.produced: list[str] = []
        self.conflicts: list[str] = []
        self.failures: list[str] = []
        self.table_count = 0

    @property
    def section(self) -> str:
        return self.headings[-1][1] if self.headings else ""

    @property
    def breadcrumb(self) -> str:
        return " > ".join(title for _, title in self.headings)

    def push_heading(self, level: int, title: str) -> None:
        while self.headings and self.headings[-1][0] >= level:
            self.headings.pop()
        self.headings.append((level, title))

    def flush_paragraphs(self, max_chars: int) -> None:
        if self.paragraphs:
            self.items.extend(group_paragraphs(self.paragraphs, max_chars))
            self.paragraphs = []

    def combine(
        self,
        table: str,
        columns: list[str],
        rows: list[list[str | None]],
    ) -> tuple[list[str], list[list[str | None]]]:
        """Rows of earlier blocks of this source for the same table, plus the new rows."""
        prior_columns, prior_rows = self.written.get(table, ([], []))
        merged = prior_columns + [c for c in columns if c not in prior_columns]
        width = len(merged)
        combined = [row + [None] * (width - len(row)) for row in prior_rows]
        index = {c: i for i, c in enumerate(columns)}
        for row in rows:
            combined.append([row[index[c]] if c in index and index[c] < len(row) else None
                             for c in merged])
        return merged, combined


class IngestionPipeline:
    """
    Single-source ingestion over a project.

    Usage:
        pipeline = IngestionPipeline(storage, state_store, config)
        result = await pipeline.ingest_file(Path("customers.csv"))
        result = await pipeline.ingest_blocks("notes.md", blocks)

    Only one run may be active per project; the state store's run lock
    enforces it across processes.
    """

    def __init__(
        self,
        storage: StorageBackend,
        state_store: StateStore,
        config: DualStoreConfig | None = None,
        similarity: SimilarityLinker | None = None,
    ):
        self.storage = storage
        self.state_store = state_store
        self.config = config or DualStoreConfig()
        self.writer = DualStoreWriter(storage, self.config)
        self.resolver = RelationshipResolver(storage, self.config)
        self.linker = CrossReferenceLinker(storage, self.config, similarity)

    async def load_state(self) -> IngestionState:
        """Load state and register table types for typed queries."""
        state = await self.state_store.load()
        for name, spec in state.tables.items():
            await self.storage.register_table(name, spec.columns)
        return state

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def ingest_file(
        self,
        path: str | Path,
        table_decisions: Mapping[str, str] | None = None,
    ) -> IngestResult:
        """
        Extract and ingest one file. The source name is the file name.

        Extraction failures are reported as a file-level issue.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
            blocks = list(extractor_for(path).extract(path))
        except (OSError, ValueError, UnicodeDecodeError) as e:
            logger.error(f"Failed to extract {path}: {e}")
            return IngestResult(
                source=path.name,
                issues=[IngestIssue(kind=IssueKind.FILE_FAILED, message=f"extraction failed: {e}")],
            )
        return await self.ingest_blocks(
            path.name,
            blocks,
            fingerprint=fingerprint_bytes(data),
            table_decisions=table_decisions,
        )

    async def ingest_blocks(
        self,
        source: str,
        blocks: Iterable[ContentBlock],
        fingerprint: str | None = None,
        table_decisions: Mapping[str, str] | None = None,
    ) -> IngestResult:
        """
        Ingest pre-extracted blocks as one source.

        Args:
            source: Source name (owns its table segments and corpus segment)
            blocks: Blocks in document order
            fingerprint: Content fingerprint (defaults to a hash of the blocks)
            table_decisions: Operator decisions for merge candidates,
                {new_name: existing_name} to extend or {new_name: new_name}
                to create

        Returns:
            IngestResult

        Raises:
            StateCorruptionError: If the persisted state cannot be parsed
            IngestionLockedError: If another run holds the project lock
        """
        start = time.perf_counter()
        blocks = list(blocks)
        fingerprint = fingerprint or fingerprint_blocks(blocks)
        result = IngestResult(source=source)

        with self.state_store.exclusive_run():
            state = await self.load_state()

            if state.is_unchanged(source, fingerprint):
                logger.info(f"Skipping {source}: unchanged since last ingestion")
                result.skipped_unchanged = True
                result.relationships_resolved = len(state.relationships)
                result.pending_relationships = len(state.pending_relationships)
                result.duration_seconds = time.perf_counter() - start
                return result

            try:
                state = await self._process(source, blocks, fingerprint, state, result,
                                            table_decisions or {})
            except (StateCorruptionError, IngestionLockedError):
                raise
            except Exception as e:
                logger.error(f"Ingestion of {source} failed: {e}")
                result.issues.append(IngestIssue(kind=IssueKind.FILE_FAILED, message=str(e)))
                result.duration_seconds = time.perf_counter() - start
                return result

        result.relationships_resolved = len(state.relationships)
        result.pending_relationships = len(state.pending_relationships)
        result.duration_seconds = time.perf_counter() - start
        logger.info(
            f"Ingested {source}: {len(result.tables_created)} tables created, "
            f"{len(result.tables_extended)} extended, {result.rows_written} rows, "
            f"{result.chunks_written} chunks ({result.chunks_linked} linked), "
            f"{result.pending_relationships} pending relationships"
        )
        return result

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def _process(
        self,
        source: str,
        blocks: list[ContentBlock],
        fingerprint: str,
        state: IngestionState,
        result: IngestResult,
        decisions: Mapping[str, str],
    ) -> IngestionState:
        run = _SourceRun(source, fingerprint, state.sources.get(source))

        # Checkpoint the run as incomplete so a crash is never mistaken for
        # a finished ingestion.
        state.sources[source] = SourceRecord(
            fingerprint=fingerprint, tables=list(run.previous_tables), complete=False
        )
        await self.state_store.save(state)

        for index, block in enumerate(blocks):
            if block.kind == BlockKind.HEADING:
                run.push_heading(block.heading_level or 1, block.text.strip())
                continue

            block = block.with_section(run.section or block.section_context)
            try:
                await self._process_block(index, block, run, state, result, decisions)
            except SchemaConflictError as e:
                logger.warning(f"Schema conflict in {source} block {index}: {e}")
                run.conflicts.append(str(e))
                result.issues.append(
                    IngestIssue(
                        kind=IssueKind.SCHEMA_CONFLICT,
                        message=str(e),
                        block_index=index,
                        table=e.table,
                    )
                )
                state = await self.load_state()
            except (StateCorruptionError, IngestionLockedError):
                raise
            except Exception as e:
                logger.warning(f"Block {index} of {source} failed: {e}")
                run.failures.append(str(e))
                result.issues.append(
                    IngestIssue(kind=IssueKind.BLOCK_FAILED, message=str(e), block_index=index)
                )
                state = await self.load_state()

        run.flush_paragraphs(self.config.chunking_max_chars)
        chunks = await self.writer.materialize_chunks(source, run.items, state)

        catalog = await self.linker.build_catalog(state)
        chunks = await self.linker.link_all(chunks, state, catalog)
        await self.linker.relink(state, exclude_source=source, catalog=catalog)

        # A source with skipped or failed blocks keeps its earlier tables and
        # stays incomplete so the next run retries it.
        interrupted = bool(run.conflicts or run.failures)
        if interrupted:
            tables = sorted(set(run.previous_tables) | set(run.produced))
            orphaned: list[str] = []
        else:
            tables = list(run.produced)
            orphaned = [t for t in run.previous_tables if t not in run.produced and t in state.tables]
        for table in orphaned:
            logger.warning(
                f"{source} no longer produces table '{table}'; keeping it "
                "(drop it explicitly if it is obsolete)"
            )

        state.sources[source] = SourceRecord(
            fingerprint=fingerprint,
            tables=tables,
            chunk_count=len(chunks),
            ingested_at=datetime.now(timezone.utc).isoformat(),
            complete=not interrupted,
            conflicts=list(run.conflicts),
        )
        await self.state_store.save(state)

        result.chunks_written = len(chunks)
        result.chunks_linked = sum(1 for c in state.chunks_for_source(source) if c.is_linked)
        result.orphaned_tables = orphaned
        return state

    async def _process_block(
        self,
        index: int,
        block: ContentBlock,
        run: _SourceRun,
        state: IngestionState,
        result: IngestResult,
        decisions: Mapping[str, str],
    ) -> None:
        classification = classify(block, state.tables, self.config)
        if classification.ambiguous:
            hint = (
                f", header matches '{classification.matched_table}'"
                if classification.matched_table else ""
            )
            logger.warning(
                f"Ambiguous classification for {run.source} block {index}: "
                f"{classification.destination.value} (rule={classification.rule}{hint})"
            )
            result.issues.append(
                IngestIssue(
                    kind=IssueKind.CLASSIFICATION_AMBIGUOUS,
                    message=f"defaulted to {classification.destination.value} "
                            f"(rule={classification.rule})",
                    block_index=index,
                )
            )

        destination = classification.destination
        if destination == Destination.DISCARD:
            return

        if block.kind == BlockKind.PARAGRAPH:
            run.paragraphs.append((run.breadcrumb, block.text.strip()))
            return

        if classification.confidence_signals.is_unknown and len(block.raw_cells) < 2:
            result.issues.append(
                IngestIssue(
                    kind=IssueKind.BLOCK_SKIPPED,
                    message="table block has no data rows",
                    block_index=index,
                )
            )
            return

        run.table_count += 1
        if destination == Destination.BOTH and not classification.structured_columns:
            destination = Destination.UNSTRUCTURED

        if destination == Destination.UNSTRUCTURED:
            run.flush_paragraphs(self.config.chunking_max_chars)
            run.items.extend(self.writer.row_items(block.header, block.data_rows, run.breadcrumb))
            return

        name = derive_table_name(block.name_hint, block.section_context, run.source,
                                 run.table_count)
        header = block.header
        all_columns = normalize_columns(name, header)
        keep = classification.structured_columns
        columns = [all_columns[i] for i in keep]
        rows = [[row[i] if i < len(row) else None for i in keep] for row in block.data_rows]

        if name in run.written:
            target = name
            action = SchemaAction.EXTEND
        else:
            decision = self.resolver.decide_schema_action(name, columns, state, decisions)
            self.resolver.require_decision(decision)
            target, action = decision.table_name, decision.action

        existed = target in state.tables
        merged_columns, merged_rows = run.combine(target, columns, rows)
        produced = run.produced + ([target] if target not in run.produced else [])

        # The store has to match the last saved state if anything below fails.
        snapshot = await self.storage.snapshot_table_segment(target, run.source)
        try:
            spec = await self.writer.materialize(
                target,
                merged_rows,
                merged_columns,
                source=run.source,
                state=state,
                fingerprint=run.fingerprint,
            )
            await self.resolver.resolve_after_materialize(spec, state)
            split_items: list[ChunkInput] = []
            if destination == Destination.BOTH:
                split_items = self.writer.split_table_items(
                    spec, all_columns, block.data_rows, classification.text_columns,
                    run.breadcrumb,
                )
            state.sources[run.source] = SourceRecord(
                fingerprint=run.fingerprint,
                tables=sorted(set(run.previous_tables) | set(produced)),
                complete=False,
            )
            await self.state_store.save(state)
        except Exception:
            await self.storage.restore_table_segment(target, run.source, snapshot)
            logger.debug(f"Restored {target} segment of {run.source} after block {index} failed")
            raise

        run.written[target] = (merged_columns, merged_rows)
        run.produced = produced

        if spec.primary_key is None and spec.row_count:
            result.issues.append(
                IngestIssue(
                    kind=IssueKind.KEY_INFERENCE_FAILED,
                    message=f"no unique non-null column in '{target}'",
                    block_index=index,
                    table=target,
                )
            )

        if not existed and target not in result.tables_created:
            result.tables_created.append(target)
        elif existed and target not in result.tables_created and target not in result.tables_extended:
            result.tables_extended.append(target)
        result.rows_written += len(rows)
        logger.debug(f"{run.source} block {index} -> {target} ({action.value})")

        if split_items:
            run.flush_paragraphs(self.config.chunking_max_chars)
            run.items.extend(split_items)
