"""Tests for the dual-store writer."""

import pytest

from dualstore.errors import ColumnCollisionError, SchemaConflictError
from dualstore.ingestion.assembly import (
    DualStoreWriter,
    derive_table_name,
    group_paragraphs,
    infer_column_type,
    normalize_columns,
)
from dualstore.storage.parquet.backend import ParquetBackend
from dualstore.types import ChunkInput, ColumnType, IngestionState, LinkMethod, LinkType, TableSpec
from dualstore.utils.text import generate_chunk_id


class TestNormalizeColumns:
    """Tests for header normalization."""

    def test_normalizes_names(self):
        """Headers are lower-cased and underscored."""
        assert normalize_columns("t", ["Customer ID", "Full Name"]) == ["customer_id", "full_name"]

    def test_blank_header_gets_positional_name(self):
        """Blank headers become column_{n}."""
        assert normalize_columns("t", ["id", "  "]) == ["id", "column_2"]

    def test_collision_raises(self):
        """Distinct headers normalizing to the same name are a schema conflict."""
        with pytest.raises(ColumnCollisionError) as exc_info:
            normalize_columns("customers", ["Name", "name"])
        assert isinstance(exc_info.value, SchemaConflictError)
        assert exc_info.value.normalized == "name"
        assert exc_info.value.table == "customers"

    def test_reserved_prefix_dropped(self):
        """Headers cannot take the bookkeeping column prefix."""
        assert normalize_columns("t", ["__row", "Filename"]) == ["row", "filename"]


class TestDeriveTableName:
    """Tests for table naming."""

    def test_name_hint_wins(self):
        assert derive_table_name("Q3 Sales", "Revenue", "report.md", 1) == "q3_sales"

    def test_section_fallback(self):
        assert derive_table_name(None, "Customers", "crm.md", 1) == "customers"

    def test_source_fallback(self):
        """Without hint or section the source stem and sequence name the table."""
        assert derive_table_name(None, "", "Annual Report.md", 2) == "annual_report_table_2"


class TestInferColumnType:
    """Tests for column type inference."""

    @pytest.mark.parametrize(
        "values,expected",
        [
            (["1", "-2", None], ColumnType.INTEGER),
            (["1.5", "2"], ColumnType.FLOAT),
            (["yes", "No"], ColumnType.BOOLEAN),
            (["2024-01-31", "2023-12-01"], ColumnType.DATE),
            (["Acme", "12"], ColumnType.TEXT),
            ([None, None], ColumnType.TEXT),
            (["1", "NA", "-"], ColumnType.INTEGER),
        ],
    )
    def test_narrowest_type(self, values, expected):
        """The narrowest type fitting all non-null values is chosen."""
        assert infer_column_type(values) == expected


class TestGroupParagraphs:
    """Tests for paragraph chunking."""

    def test_groups_by_section(self):
        """A section change closes the current chunk."""
        chunks = group_paragraphs([("A", "one"), ("A", "two"), ("B", "three")], max_chars=1000)
        assert [(c.section, c.content) for c in chunks] == [("A", "one\n\ntwo"), ("B", "three")]

    def test_respects_max_chars(self):
        """Chunks close before exceeding max_chars."""
        chunks = group_paragraphs([("A", "x" * 60), ("A", "y" * 60)], max_chars=100)
        assert len(chunks) == 2

    def test_oversized_paragraph_kept_whole(self):
        """A single long paragraph is never split."""
        chunks = group_paragraphs([("A", "z" * 500)], max_chars=100)
        assert chunks[0].content == "z" * 500


class TestMaterialize:
    """Tests for structured materialization."""

    async def _writer(self, tmp_path):
        storage = ParquetBackend(tmp_path)
        await storage.initialize()
        return DualStoreWriter(storage)

    @pytest.mark.asyncio
    async def test_materialize_is_idempotent(self, tmp_path):
        """Materializing the same input twice gives identical rows and spec."""
        writer = await self._writer(tmp_path)
        state = IngestionState()
        rows = [["101", "Acme Corp", "2024-01-31"], ["102", "Globex", "n/a"]]
        columns = ["id", "name", "since"]

        first = await writer.materialize(
            "customers", rows, columns, source="crm.csv", state=state, fingerprint="f1"
        )
        first_rows = await writer.storage.read_table_rows("customers")
        second = await writer.materialize(
            "customers", rows, columns, source="crm.csv", state=state, fingerprint="f1"
        )
        second_rows = await writer.storage.read_table_rows("customers")

        assert first == second
        assert first_rows == second_rows
        assert second.row_count == 2
        assert second.primary_key == "id"
        assert second.columns == {
            "id": ColumnType.INTEGER,
            "name": ColumnType.TEXT,
            "since": ColumnType.DATE,
        }
        assert second_rows[1]["since"] == "n/a"

    @pytest.mark.asyncio
    async def test_sources_accumulate(self, tmp_path):
        """Two sources extending one table sum their rows."""
        writer = await self._writer(tmp_path)
        state = IngestionState()

        await writer.materialize(
            "customers", [["1", "A"], ["2", "B"]], ["id", "name"], source="a.csv", state=state
        )
        spec = await writer.materialize(
            "customers", [["3", "C", "EU"]], ["id", "name", "region"], source="b.csv", state=state
        )

        assert spec.row_count == 3
        assert spec.sources == ["a.csv", "b.csv"]
        assert spec.source_row_counts == {"a.csv": 2, "b.csv": 1}
        assert spec.column_names == ["id", "name", "region"]
        assert await writer.storage.count_rows("customers") == 3

    @pytest.mark.asyncio
    async def test_rebuild_replaces_source_rows(self, tmp_path):
        """Re-materializing a source replaces only that source's rows."""
        writer = await self._writer(tmp_path)
        state = IngestionState()

        await writer.materialize("t", [["1"], ["2"]], ["id"], source="a.csv", state=state)
        await writer.materialize("t", [["3"]], ["id"], source="b.csv", state=state)
        spec = await writer.materialize("t", [["1"]], ["id"], source="a.csv", state=state)

        assert spec.row_count == 2
        assert await writer.storage.column_values("t", "id") == {"1", "3"}

    @pytest.mark.asyncio
    async def test_duplicate_keys_leave_no_primary_key(self, tmp_path):
        """A table without a unique column is still materialized."""
        writer = await self._writer(tmp_path)
        state = IngestionState()

        spec = await writer.materialize(
            "events", [["x", "1"], ["x", "1"]], ["kind", "count"], source="e.csv", state=state
        )

        assert spec.primary_key is None
        assert spec.row_count == 2
        assert "events" in state.tables

    @pytest.mark.asyncio
    async def test_null_like_values_are_kept(self, tmp_path):
        """Values such as NA are stored verbatim; only blank cells are null."""
        writer = await self._writer(tmp_path)
        state = IngestionState()

        spec = await writer.materialize(
            "regions", [["1", "NA"], ["2", "EU"], ["3", " "]], ["id", "region_code"],
            source="regions.csv", state=state,
        )

        rows = await writer.storage.query("regions")
        assert [r["region_code"] for r in rows] == ["NA", "EU", None]
        assert spec.columns["region_code"] == ColumnType.TEXT

    @pytest.mark.asyncio
    async def test_sources_with_colliding_slugs_stay_separate(self, tmp_path):
        """Sources whose names differ only in punctuation keep their own rows."""
        writer = await self._writer(tmp_path)
        state = IngestionState()

        await writer.materialize(
            "customers", [["1", "A"], ["2", "B"]], ["id", "name"], source="sales-2024.csv",
            state=state,
        )
        spec = await writer.materialize(
            "customers", [["3", "C"]], ["id", "name"], source="sales_2024.csv", state=state,
        )

        assert spec.row_count == 3
        assert await writer.storage.column_values("customers", "id") == {"1", "2", "3"}
        assert await writer.storage.read_segment_rows("customers", "sales-2024.csv") == [
            {"id": "1", "name": "A"},
            {"id": "2", "name": "B"},
        ]


class TestMaterializeChunks:
    """Tests for corpus regeneration."""

    @pytest.mark.asyncio
    async def test_chunks_are_regenerated(self, tmp_path):
        """Re-ingesting a source replaces all of its chunks."""
        storage = ParquetBackend(tmp_path)
        await storage.initialize()
        writer = DualStoreWriter(storage)
        state = IngestionState()

        await writer.materialize_chunks(
            "notes.md", [ChunkInput(content=f"p{i}") for i in range(3)], state
        )
        chunks = await writer.materialize_chunks(
            "notes.md", [ChunkInput(content="a"), ChunkInput(content="b")], state
        )

        expected = [generate_chunk_id("notes.md", 0), generate_chunk_id("notes.md", 1)]
        assert [c.id for c in chunks] == expected
        assert sorted(state.chunks) == expected
        corpus = await storage.read_corpus("notes.md")
        assert [row["content"] for row in corpus] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_prelinked_items_use_row_identifier(self, tmp_path):
        """Split-table rows keep their link to the originating row."""
        storage = ParquetBackend(tmp_path)
        await storage.initialize()
        writer = DualStoreWriter(storage)
        state = IngestionState()

        items = [ChunkInput(content="id: 7\nnotes: long", linked_table="deals", linked_ids=["7"])]
        chunks = await writer.materialize_chunks("deals.md", items, state)

        assert chunks[0].link_type == LinkType.DESCRIBES
        assert chunks[0].link_method == LinkMethod.ROW_IDENTIFIER
        assert state.db_to_rag_index == {"deals.7": [chunks[0].id]}


class TestSplitTableItems:
    """Tests for the text side of split tables."""

    def test_items_carry_primary_key(self):
        """Each row item holds the key and the text columns."""
        writer = DualStoreWriter.__new__(DualStoreWriter)
        spec = TableSpec(name="deals", source="d.md", primary_key="id")

        items = writer.split_table_items(
            spec,
            ["id", "amount", "notes"],
            [["7", "100", "Long negotiation notes"], ["8", "50", ""]],
            text_columns=[2],
            section="Deals",
        )

        assert [i.content for i in items] == ["id: 7\nnotes: Long negotiation notes", "id: 8"]
        assert items[0].linked_table == "deals"
        assert items[0].linked_ids == ["7"]
        assert items[0].section == "Deals"
