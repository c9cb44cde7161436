"""
Dual-Store Writer

Materializes structured blocks into named tables and unstructured content
into per-source corpus segments.

Structured path:
    materialize() rebuilds the segment a source contributes to a table from
    scratch, then recomputes the table's spec (columns, types, primary key,
    row counts) from everything stored. Running it twice with the same input
    yields the same rows and the same TableSpec.

Unstructured path:
    materialize_chunks() drops every chunk the source owns, assigns fresh
    deterministic ids, and rewrites the source's corpus segment whole.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from dualstore.config import DualStoreConfig
from dualstore.errors import ColumnCollisionError
from dualstore.ingestion.resolution.keys import detect_primary_key
from dualstore.storage.base import StorageBackend
from dualstore.types import (
    Chunk,
    ChunkInput,
    ColumnType,
    IngestionState,
    LinkMethod,
    LinkType,
    TableSpec,
)
from dualstore.utils.text import (
    canonical_value,
    generate_chunk_id,
    is_boolean,
    is_integer,
    is_iso_date,
    is_null,
    is_numeric,
    normalize_identifier,
    source_slug,
)

logger = logging.getLogger(__name__)


def normalize_columns(table: str, header: Sequence[str]) -> list[str]:
    """
    Normalize a header row into column names.

    Blank headers become column_{i}. Leading double underscores are dropped;
    that prefix is reserved for storage bookkeeping columns.

    Raises:
        ColumnCollisionError: If two distinct original names normalize identically
    """
    normalized: list[str] = []
    originals: dict[str, list[str]] = {}
    for i, name in enumerate(header):
        column = normalize_identifier(name)
        if column.startswith("__"):
            column = column.lstrip("_")
        column = column or f"column_{i + 1}"
        originals.setdefault(column, []).append(name)
        normalized.append(column)

    for column, names in originals.items():
        if len(names) > 1:
            raise ColumnCollisionError(table, column, names)
    return normalized


def derive_table_name(
    name_hint: str | None,
    section_context: str,
    source: str,
    sequence: int,
) -> str:
    """
    Name for a table block: name hint, else section heading, else
    {source_stem}_table_{n}.
    """
    for candidate in (name_hint, section_context):
        if candidate:
            name = normalize_identifier(candidate)
            if name:
                return name
    stem = source.rsplit(".", 1)[0]
    return f"{source_slug(stem)}_table_{sequence}"


def infer_column_type(values: Sequence[str | None]) -> ColumnType:
    """Narrowest type that fits every non-null value (text if none do)."""
    present = [v for v in values if not is_null(v)]
    if not present:
        return ColumnType.TEXT
    if all(is_integer(v) for v in present):
        return ColumnType.INTEGER
    if all(is_numeric(v) for v in present):
        return ColumnType.FLOAT
    if all(is_boolean(v) for v in present):
        return ColumnType.BOOLEAN
    if all(is_iso_date(v) for v in present):
        return ColumnType.DATE
    return ColumnType.TEXT


def canonical_rows(rows: Sequence[Sequence[str | None]], width: int) -> list[list[str | None]]:
    """Pad/trim rows to width and map blank cells to None."""
    result: list[list[str | None]] = []
    for row in rows:
        cells = [canonical_value(cell) for cell in list(row)[:width]]
        cells += [None] * (width - len(cells))
        result.append(cells)
    return result


def row_chunk_text(columns: Sequence[str], values: Sequence[str | None]) -> str:
    """Serialize one row as 'column: value' lines, skipping nulls."""
    return "\n".join(
        f"{column}: {value}" for column, value in zip(columns, values) if value is not None
    )


def group_paragraphs(
    paragraphs: Sequence[tuple[str, str]],
    max_chars: int,
) -> list[ChunkInput]:
    """
    Group consecutive paragraphs of the same section into chunks.

    A chunk closes when the section changes or the next paragraph would push
    it past max_chars. A single oversized paragraph is kept whole.

    Args:
        paragraphs: (section, text) pairs in document order
        max_chars: Soft upper bound on chunk length
    """
    chunks: list[ChunkInput] = []
    section: str | None = None
    parts: list[str] = []

    def flush() -> None:
        if parts:
            chunks.append(ChunkInput(content="\n\n".join(parts), section=section or ""))
            parts.clear()

    for para_section, text in paragraphs:
        length = sum(len(p) + 2 for p in parts) + len(text)
        if para_section != section or (parts and length > max_chars):
            flush()
            section = para_section
        parts.append(text)
    flush()
    return chunks


class DualStoreWriter:
    """
    Writes structured tables and corpus segments.

    Usage:
        writer = DualStoreWriter(storage, config)
        spec = await writer.materialize("customers", rows, columns,
                                        source="crm.csv", state=state)
        chunks = await writer.materialize_chunks("notes.md", items, state)
    """

    def __init__(self, storage: StorageBackend, config: DualStoreConfig | None = None):
        self.storage = storage
        self.config = config or DualStoreConfig()

    # -------------------------------------------------------------------------
    # Structured path
    # -------------------------------------------------------------------------

    async def materialize(
        self,
        table_name: str,
        rows: Sequence[Sequence[str | None]],
        columns: Sequence[str],
        *,
        source: str,
        state: IngestionState,
        fingerprint: str = "",
    ) -> TableSpec:
        """
        Rebuild the rows a source contributes to a table and refresh its spec.

        Args:
            table_name: Normalized table name
            rows: Every row this source contributes to the table
            columns: Normalized column names
            source: Contributing source
            state: Ingestion state (the spec is merged into it)
            fingerprint: Source content fingerprint

        Returns:
            The refreshed TableSpec
        """
        columns = list(columns)
        cells = canonical_rows(rows, len(columns))
        await self.storage.write_table_segment(table_name, source, columns, cells)

        previous = state.tables.get(table_name)
        present = await self.storage.table_columns(table_name)
        ordered = [c for c in (previous.column_names if previous else []) if c in present]
        ordered += [c for c in columns if c not in ordered]
        ordered += [c for c in present if c not in ordered]

        all_rows = await self.storage.read_table_rows(table_name)
        types = {
            column: infer_column_type([row.get(column) for row in all_rows])
            for column in ordered
        }
        primary_key = detect_primary_key(table_name, ordered, all_rows)
        if primary_key is None and all_rows:
            logger.warning(f"No primary key found for table '{table_name}'")

        sources = list(previous.sources) if previous else []
        if source not in sources:
            sources.append(source)
        source_row_counts = dict(previous.source_row_counts) if previous else {}
        source_row_counts[source] = len(cells)
        source_fingerprints = dict(previous.source_fingerprints) if previous else {}
        source_fingerprints[source] = fingerprint

        spec = TableSpec(
            name=table_name,
            source=previous.source if previous else source,
            sources=sources,
            columns=types,
            primary_key=primary_key,
            foreign_keys=dict(previous.foreign_keys) if previous else {},
            row_count=len(all_rows),
            source_row_counts=source_row_counts,
            source_fingerprints=source_fingerprints,
        )
        await self.storage.register_table(table_name, types)
        state.merge_new_table(spec)

        logger.debug(
            f"Materialized {table_name}: {len(cells)} rows from {source}, "
            f"{spec.row_count} total, pk={primary_key}"
        )
        return spec

    # -------------------------------------------------------------------------
    # Unstructured path
    # -------------------------------------------------------------------------

    async def materialize_chunks(
        self,
        source_name: str,
        items: Sequence[ChunkInput],
        state: IngestionState,
    ) -> list[Chunk]:
        """
        Clear and regenerate every chunk a source owns.

        Items pre-linked to a table row (split tables) keep that link as a
        row-identifier link.

        Returns:
            The regenerated chunks, in position order
        """
        removed = state.remove_source_chunks(source_name)

        chunks: list[Chunk] = []
        for position, item in enumerate(items):
            linked = bool(item.linked_table and item.linked_ids)
            chunks.append(
                Chunk(
                    id=generate_chunk_id(source_name, position),
                    source_file=source_name,
                    section=item.section,
                    content=item.content,
                    position=position,
                    linked_table=item.linked_table if linked else None,
                    linked_ids=list(item.linked_ids) if linked else [],
                    link_type=LinkType.DESCRIBES if linked else LinkType.NONE,
                    link_method=LinkMethod.ROW_IDENTIFIER if linked else LinkMethod.NONE,
                )
            )

        await self.storage.replace_corpus_segment(source_name, chunks)
        for chunk in chunks:
            state.record_chunk(chunk)

        logger.debug(
            f"Regenerated corpus for {source_name}: {len(removed)} removed, "
            f"{len(chunks)} written"
        )
        return chunks

    def split_table_items(
        self,
        spec: TableSpec,
        columns: Sequence[str],
        rows: Sequence[Sequence[str | None]],
        text_columns: Sequence[int],
        section: str,
    ) -> list[ChunkInput]:
        """
        Corpus items for the text side of a split table.

        One item per row holding the row's identifier and its text columns,
        pre-linked to the row when the table has a primary key. Without text
        columns the whole row is serialized.
        """
        cells = canonical_rows(rows, len(columns))
        pk_index = columns.index(spec.primary_key) if spec.primary_key in columns else None
        keep = list(text_columns) or list(range(len(columns)))
        if pk_index is not None and pk_index not in keep:
            keep = [pk_index, *keep]

        items: list[ChunkInput] = []
        for row in cells:
            content = row_chunk_text([columns[i] for i in keep], [row[i] for i in keep])
            if not content:
                continue
            pk_value = row[pk_index] if pk_index is not None else None
            items.append(
                ChunkInput(
                    content=content,
                    section=section,
                    linked_table=spec.name if pk_value is not None else None,
                    linked_ids=[pk_value] if pk_value is not None else [],
                )
            )
        return items

    def row_items(
        self,
        header: Sequence[str],
        rows: Sequence[Sequence[str | None]],
        section: str,
    ) -> list[ChunkInput]:
        """Corpus items for an unstructured table: one 'header: value' item per row."""
        labels = [h.strip() or f"column_{i + 1}" for i, h in enumerate(header)]
        items: list[ChunkInput] = []
        for row in canonical_rows(rows, len(labels)):
            content = row_chunk_text(labels, row)
            if content:
                items.append(ChunkInput(content=content, section=section))
        return items
