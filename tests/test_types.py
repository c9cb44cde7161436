"""Tests for state and result types."""

import pytest
from pydantic import ValidationError

from dualstore.types import (
    Chunk,
    ColumnType,
    ContentBlock,
    IngestionState,
    IngestIssue,
    IngestResult,
    IssueKind,
    LinkMethod,
    LinkType,
    MergedRange,
    PendingRelationship,
    Relationship,
    SourceLocator,
    SourceRecord,
    TableSpec,
)


def linked_chunk(chunk_id, table, ids, source="notes.md"):
    return Chunk(
        id=chunk_id,
        source_file=source,
        content="text",
        linked_table=table,
        linked_ids=ids,
        link_type=LinkType.DESCRIBES,
        link_method=LinkMethod.EXPLICIT_ID,
    )


class TestContentBlock:
    """Tests for ContentBlock."""

    def test_blocks_are_immutable(self):
        """Blocks cannot be mutated after extraction."""
        block = ContentBlock(kind="paragraph", text="x", source_locator=SourceLocator(file_id="a"))
        with pytest.raises(ValidationError):
            block.text = "y"

    def test_header_and_rows(self):
        """header and data_rows split the grid."""
        block = ContentBlock(
            kind="table",
            raw_cells=[["a", "b"], ["1", "2"]],
            source_locator=SourceLocator(file_id="a"),
        )
        assert block.header == ["a", "b"]
        assert block.data_rows == [["1", "2"]]

    def test_merged_range_cell_count(self):
        assert MergedRange(first_row=1, first_col=0, last_row=3, last_col=1).cell_count == 6


class TestReverseIndex:
    """Tests for the {table}.{id} -> chunk ids index."""

    def test_record_chunk_indexes_ids(self):
        """Linked chunks are indexed under each id."""
        state = IngestionState()
        state.record_chunk(linked_chunk("c1", "customers", ["101", "102"]))

        assert state.db_to_rag_index == {"customers.101": ["c1"], "customers.102": ["c1"]}
        assert [c.id for c in state.chunks_for_entity("customers", "102")] == ["c1"]

    def test_relinking_replaces_entries(self):
        """Re-recording a chunk drops its stale index entries."""
        state = IngestionState()
        state.record_chunk(linked_chunk("c1", "customers", ["101"]))
        state.record_chunk(linked_chunk("c1", "customers", ["102"]))

        assert state.db_to_rag_index == {"customers.102": ["c1"]}

    def test_remove_source_chunks(self):
        """Removing a source's chunks also cleans the index."""
        state = IngestionState()
        state.record_chunk(linked_chunk("a1", "customers", ["101"], source="a.md"))
        state.record_chunk(linked_chunk("b1", "customers", ["101"], source="b.md"))

        removed = state.remove_source_chunks("a.md")

        assert removed == ["a1"]
        assert state.db_to_rag_index == {"customers.101": ["b1"]}


class TestRelationshipBookkeeping:
    """Tests for resolved and pending relationship exclusivity."""

    @pytest.fixture
    def state(self):
        state = IngestionState()
        state.merge_new_table(TableSpec(name="orders", source="o.csv",
                                        columns={"customer_id": ColumnType.INTEGER}))
        return state

    def test_resolution_removes_pending(self, state):
        """A column is never both pending and resolved."""
        state.add_pending(PendingRelationship(table="orders", column="customer_id",
                                              awaited_table_name_hint="customer"))
        state.add_relationship(Relationship(from_table="orders", from_column="customer_id",
                                            to_table="customers", to_column="id"))

        assert state.pending_relationships == []
        assert state.tables["orders"].foreign_keys["customer_id"].column == "id"

    def test_pending_removes_resolution(self, state):
        """Demoting a relationship clears the foreign key."""
        state.add_relationship(Relationship(from_table="orders", from_column="customer_id",
                                            to_table="customers", to_column="id"))
        state.add_pending(PendingRelationship(table="orders", column="customer_id",
                                              awaited_table_name_hint="customer"))

        assert state.relationships == []
        assert state.tables["orders"].foreign_keys == {}

    def test_pending_is_deduplicated(self, state):
        pending = PendingRelationship(table="orders", column="customer_id",
                                      awaited_table_name_hint="customer")
        state.add_pending(pending)
        state.add_pending(pending)
        assert len(state.pending_relationships) == 1


class TestIsUnchanged:
    """Tests for source fingerprint comparison."""

    def test_complete_with_matching_fingerprint(self):
        state = IngestionState()
        state.merge_new_table(TableSpec(name="t", source="a.csv", source_fingerprints={"a.csv": "f"}))
        state.sources["a.csv"] = SourceRecord(fingerprint="f", tables=["t"], complete=True)
        assert state.is_unchanged("a.csv", "f")
        assert not state.is_unchanged("a.csv", "g")

    def test_incomplete_run_is_not_unchanged(self):
        """An interrupted run is always redone."""
        state = IngestionState()
        state.sources["a.csv"] = SourceRecord(fingerprint="f", complete=False)
        assert not state.is_unchanged("a.csv", "f")

    def test_missing_table_is_not_unchanged(self):
        """A dropped table forces re-ingestion of its sources."""
        state = IngestionState()
        state.sources["a.csv"] = SourceRecord(fingerprint="f", tables=["t"], complete=True)
        assert not state.is_unchanged("a.csv", "f")


class TestIngestResult:
    """Tests for IngestResult."""

    def test_failed_flag(self):
        """Only file-level issues mark the result as failed."""
        result = IngestResult(
            source="a.md",
            issues=[IngestIssue(kind=IssueKind.SCHEMA_CONFLICT, message="x")],
        )
        assert not result.failed
        result.issues.append(IngestIssue(kind=IssueKind.FILE_FAILED, message="y"))
        assert result.failed
