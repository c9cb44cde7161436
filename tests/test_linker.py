"""Tests for the cross-reference linker."""

from unittest.mock import AsyncMock

import pytest

from dualstore.config import DualStoreConfig
from dualstore.ingestion.assembly import DualStoreWriter
from dualstore.ingestion.linking import CrossReferenceLinker
from dualstore.providers.base import SimilarityLinker, SimilarityMatch
from dualstore.storage.parquet.backend import ParquetBackend
from dualstore.types import Chunk, IngestionState, LinkMethod, LinkType


async def setup_customers(tmp_path, similarity=None):
    """Storage and state holding a small customers table."""
    storage = ParquetBackend(tmp_path)
    await storage.initialize()
    state = IngestionState()
    await DualStoreWriter(storage).materialize(
        "customers",
        [["101", "Acme Corp", "Enterprise"], ["102", "Globex", "SMB"]],
        ["id", "name", "segment"],
        source="crm.csv",
        state=state,
    )
    linker = CrossReferenceLinker(storage, DualStoreConfig(), similarity)
    return linker, state


def make_chunk(content, section="", **kwargs):
    return Chunk(id="notes_md_chunk_0000", source_file="notes.md", section=section,
                 content=content, **kwargs)


class TestDetection:
    """Tests for the detection methods in priority order."""

    @pytest.mark.asyncio
    async def test_explicit_id_with_table_mention(self, tmp_path):
        """'Customer 101' links to customers row 101."""
        linker, state = await setup_customers(tmp_path)

        chunk = await linker.link(make_chunk("Customer 101 renewed their contract."), state)

        assert chunk.linked_table == "customers"
        assert chunk.linked_ids == ["101"]
        assert chunk.link_type == LinkType.DESCRIBES
        assert chunk.link_method == LinkMethod.EXPLICIT_ID
        assert state.db_to_rag_index["customers.101"] == [chunk.id]

    @pytest.mark.asyncio
    async def test_several_ids_reference(self, tmp_path):
        """Several identifiers make a references link."""
        linker, state = await setup_customers(tmp_path)

        chunk = await linker.link(make_chunk("Customers 101 and 102 churned."), state)

        assert chunk.linked_ids == ["101", "102"]
        assert chunk.link_type == LinkType.REFERENCES

    @pytest.mark.asyncio
    async def test_bare_number_without_mention(self, tmp_path):
        """A bare number alone never creates a link."""
        linker, state = await setup_customers(tmp_path)

        chunk = await linker.link(make_chunk("Revenue grew 101 percent this year."), state)

        assert not chunk.is_linked
        assert state.db_to_rag_index == {}

    @pytest.mark.asyncio
    async def test_entity_name(self, tmp_path):
        """Display names link to their row."""
        linker, state = await setup_customers(tmp_path)

        chunk = await linker.link(make_chunk("Globex expanded into two new regions."), state)

        assert chunk.linked_ids == ["102"]
        assert chunk.link_method == LinkMethod.ENTITY_NAME

    @pytest.mark.asyncio
    async def test_section_names_table(self, tmp_path):
        """A heading equal to a table name contextualizes the whole table."""
        linker, state = await setup_customers(tmp_path)

        chunk = await linker.link(make_chunk("General notes.", section="Customers"), state)

        assert chunk.linked_table == "customers"
        assert chunk.linked_ids == []
        assert chunk.link_type == LinkType.CONTEXTUALIZES
        assert chunk.link_method == LinkMethod.SECTION_CONTEXT

    @pytest.mark.asyncio
    async def test_section_names_category(self, tmp_path):
        """A heading equal to a category summarizes that category's rows."""
        linker, state = await setup_customers(tmp_path)

        chunk = await linker.link(
            make_chunk("Renewal outlook is stable.", section="Accounts > Enterprise"), state
        )

        assert chunk.linked_ids == ["101"]
        assert chunk.link_type == LinkType.SUMMARIZES

    @pytest.mark.asyncio
    async def test_nothing_matches(self, tmp_path):
        """An unlinked chunk is a valid outcome."""
        linker, state = await setup_customers(tmp_path)

        chunk = await linker.link(make_chunk("The weather was pleasant."), state)

        assert chunk.link_type == LinkType.NONE
        assert chunk.linked_table is None


class TestSimilarityFallback:
    """Tests for the similarity fallback."""

    @pytest.mark.asyncio
    async def test_match_above_threshold(self, tmp_path):
        """A confident similarity match becomes a references link."""
        similarity = AsyncMock(spec=SimilarityLinker)
        similarity.similarity_link.return_value = [
            SimilarityMatch(table="customers", entity_id="101", score=0.93)
        ]
        linker, state = await setup_customers(tmp_path, similarity)

        chunk = await linker.link(make_chunk("An industrial supplier of anvils."), state)

        assert chunk.linked_ids == ["101"]
        assert chunk.link_type == LinkType.REFERENCES
        assert chunk.link_method == LinkMethod.SIMILARITY
        candidates = similarity.similarity_link.call_args.args[1]
        assert {c.label for c in candidates} == {"Acme Corp", "Globex"}

    @pytest.mark.asyncio
    async def test_match_below_threshold(self, tmp_path):
        """Weak similarity matches are ignored."""
        similarity = AsyncMock(spec=SimilarityLinker)
        similarity.similarity_link.return_value = [
            SimilarityMatch(table="customers", entity_id="101", score=0.5)
        ]
        linker, state = await setup_customers(tmp_path, similarity)

        chunk = await linker.link(make_chunk("An industrial supplier of anvils."), state)

        assert not chunk.is_linked

    @pytest.mark.asyncio
    async def test_not_consulted_when_stronger_method_matches(self, tmp_path):
        """The fallback only runs when every other method fails."""
        similarity = AsyncMock(spec=SimilarityLinker)
        linker, state = await setup_customers(tmp_path, similarity)

        await linker.link(make_chunk("Customer 101 renewed."), state)

        similarity.similarity_link.assert_not_called()


class TestRelinking:
    """Tests for link monotonicity and maintenance."""

    @pytest.mark.asyncio
    async def test_stronger_link_is_kept(self, tmp_path):
        """A weaker method never replaces an existing stronger link."""
        linker, state = await setup_customers(tmp_path)
        existing = make_chunk(
            "Notes.",
            section="Customers",
            linked_table="customers",
            linked_ids=["102"],
            link_type=LinkType.DESCRIBES,
            link_method=LinkMethod.EXPLICIT_ID,
        )
        state.record_chunk(existing)

        chunk = await linker.link(existing, state)

        assert chunk == existing
        assert chunk.link_method == LinkMethod.EXPLICIT_ID

    @pytest.mark.asyncio
    async def test_row_identifier_links_untouched(self, tmp_path):
        """Row-identifier links are never revisited."""
        linker, state = await setup_customers(tmp_path)
        existing = make_chunk(
            "Customer 102 notes.",
            linked_table="deals",
            linked_ids=["7"],
            link_type=LinkType.DESCRIBES,
            link_method=LinkMethod.ROW_IDENTIFIER,
        )

        assert await linker.link(existing, state) == existing

    @pytest.mark.asyncio
    async def test_relink_after_table_arrives(self, tmp_path):
        """Chunks stored before a table existed are linked on relink."""
        storage = ParquetBackend(tmp_path)
        await storage.initialize()
        state = IngestionState()
        state.record_chunk(make_chunk("Customer 101 renewed their contract."))
        linker = CrossReferenceLinker(storage)

        assert await linker.relink(state) == 0

        await DualStoreWriter(storage).materialize(
            "customers", [["101", "Acme Corp"]], ["id", "name"], source="crm.csv", state=state
        )
        assert await linker.relink(state) == 1
        assert state.chunks_for_entity("customers", "101")[0].id == "notes_md_chunk_0000"

    @pytest.mark.asyncio
    async def test_prune_links(self, tmp_path):
        """Dropping a table clears links and index entries pointing at it."""
        linker, state = await setup_customers(tmp_path)
        await linker.link(make_chunk("Customer 101 renewed."), state)

        assert linker.prune_links(state, "customers") == 1

        assert not state.chunks["notes_md_chunk_0000"].is_linked
        assert state.db_to_rag_index == {}
