"""
Ingestion State

The process-wide durable aggregate persisted as state.json. It is loaded at
the start of a run, mutated incrementally, and saved after each completed
unit of work.

Persisted layout (top-level keys):
    schema_version, tables, relationships, pending_relationships, chunks,
    db_to_rag_index, sources
"""

from pydantic import BaseModel

from dualstore.types.chunks import Chunk
from dualstore.types.tables import ForeignKeyRef, PendingRelationship, Relationship, TableSpec

STATE_SCHEMA_VERSION = "1.0.0"


class SourceRecord(BaseModel):
    """
    Ingestion bookkeeping for one source file.

    Attributes:
        fingerprint: Content hash of the last ingested version
        tables: Tables the source contributed rows to
        chunk_count: Chunks in the source's corpus segment
        ingested_at: ISO timestamp of the last completed run
        complete: False while a run over this source is in progress
        conflicts: Schema conflicts surfaced for operator resolution
    """

    fingerprint: str
    tables: list[str] = []
    chunk_count: int = 0
    ingested_at: str | None = None
    complete: bool = False
    conflicts: list[str] = []


class IngestionState(BaseModel):
    """
    Durable record of tables, relationships and chunks across runs.

    Passed explicitly through the pipeline; there is no module-level
    instance.
    """

    schema_version: str = STATE_SCHEMA_VERSION
    tables: dict[str, TableSpec] = {}
    relationships: list[Relationship] = []
    pending_relationships: list[PendingRelationship] = []
    chunks: dict[str, Chunk] = {}
    db_to_rag_index: dict[str, list[str]] = {}
    sources: dict[str, SourceRecord] = {}

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    def merge_new_table(self, spec: TableSpec) -> None:
        """Insert or replace a table spec by name."""
        self.tables[spec.name] = spec

    def tables_from_source(self, source: str) -> list[str]:
        return [name for name, spec in self.tables.items() if source in spec.sources]

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------

    def add_relationship(self, relationship: Relationship) -> None:
        """Record a resolved FK, dropping any pending entry for the same column."""
        key = relationship.key
        self.pending_relationships = [p for p in self.pending_relationships if p.key != key]
        self.relationships = [r for r in self.relationships if r.key != key]
        self.relationships.append(relationship)

        spec = self.tables.get(relationship.from_table)
        if spec is not None:
            spec.foreign_keys[relationship.from_column] = ForeignKeyRef(
                table=relationship.to_table, column=relationship.to_column
            )

    def add_pending(self, pending: PendingRelationship) -> None:
        """Record an unresolved FK, dropping any resolved entry for the same column."""
        key = pending.key
        self.relationships = [r for r in self.relationships if r.key != key]
        spec = self.tables.get(pending.table)
        if spec is not None:
            spec.foreign_keys.pop(pending.column, None)
        if all(p.key != key for p in self.pending_relationships):
            self.pending_relationships.append(pending)

    def clear_foreign_keys(self, table: str) -> None:
        """Forget every resolved and pending FK originating from a table."""
        self.relationships = [r for r in self.relationships if r.from_table != table]
        self.pending_relationships = [p for p in self.pending_relationships if p.table != table]
        spec = self.tables.get(table)
        if spec is not None:
            spec.foreign_keys = {}

    def relationships_to(self, table: str) -> list[Relationship]:
        return [r for r in self.relationships if r.to_table == table]

    # -------------------------------------------------------------------------
    # Chunks and the reverse index
    # -------------------------------------------------------------------------

    @staticmethod
    def index_key(table: str, entity_id: str) -> str:
        """Reverse index key: '{table}.{id}'."""
        return f"{table}.{entity_id}"

    def record_chunk(self, chunk: Chunk) -> None:
        """Store a chunk and refresh its reverse index entries."""
        self._unindex_chunk(chunk.id)
        self.chunks[chunk.id] = chunk
        if chunk.linked_table:
            for entity_id in chunk.linked_ids:
                key = self.index_key(chunk.linked_table, entity_id)
                ids = self.db_to_rag_index.setdefault(key, [])
                if chunk.id not in ids:
                    ids.append(chunk.id)

    def remove_source_chunks(self, source: str) -> list[str]:
        """Drop every chunk owned by a source. Returns the removed ids."""
        removed = [cid for cid, chunk in self.chunks.items() if chunk.source_file == source]
        for chunk_id in removed:
            self._unindex_chunk(chunk_id)
            del self.chunks[chunk_id]
        return removed

    def chunks_for_source(self, source: str) -> list[Chunk]:
        chunks = [c for c in self.chunks.values() if c.source_file == source]
        return sorted(chunks, key=lambda c: c.position)

    def chunks_for_entity(self, table: str, entity_id: str) -> list[Chunk]:
        ids = self.db_to_rag_index.get(self.index_key(table, entity_id), [])
        return [self.chunks[cid] for cid in ids if cid in self.chunks]

    def _unindex_chunk(self, chunk_id: str) -> None:
        previous = self.chunks.get(chunk_id)
        if previous is None or not previous.linked_table:
            return
        for entity_id in previous.linked_ids:
            key = self.index_key(previous.linked_table, entity_id)
            ids = self.db_to_rag_index.get(key)
            if ids is None:
                continue
            if chunk_id in ids:
                ids.remove(chunk_id)
            if not ids:
                del self.db_to_rag_index[key]

    # -------------------------------------------------------------------------
    # Sources
    # -------------------------------------------------------------------------

    def is_unchanged(self, source: str, fingerprint: str) -> bool:
        """True if the source was fully ingested with the same fingerprint."""
        record = self.sources.get(source)
        if record is None or not record.complete or record.fingerprint != fingerprint:
            return False
        # Row counts must still agree with what the source contributed.
        for table in record.tables:
            spec = self.tables.get(table)
            if spec is None or spec.source_fingerprints.get(source) != fingerprint:
                return False
        return True
