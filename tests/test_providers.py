"""Tests for the similarity fallback providers."""

from unittest.mock import AsyncMock, Mock

import pytest

from dualstore.config import DualStoreConfig
from dualstore.providers import similarity_linker_from_config
from dualstore.providers.base import CandidateEntity, EmbeddingProvider
from dualstore.providers.embedding.openai import OpenAIEmbeddingProvider, prepare_input
from dualstore.providers.similarity import EmbeddingSimilarityLinker
from dualstore.providers.similarity.embedding import cosine_similarities


class TestCosineSimilarities:
    """Tests for cosine_similarities."""

    def test_scores(self):
        scores = cosine_similarities([1.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        assert scores[0] == pytest.approx(1.0)
        assert scores[1] == pytest.approx(0.0)
        assert scores[2] == pytest.approx(0.7071, abs=1e-4)

    def test_empty(self):
        assert len(cosine_similarities([1.0], [])) == 0


class TestEmbeddingSimilarityLinker:
    """Tests for EmbeddingSimilarityLinker."""

    @pytest.fixture
    def provider(self):
        provider = AsyncMock(spec=EmbeddingProvider)
        provider.embed.return_value = [[1.0, 0.0], [0.0, 1.0]]
        provider.embed_single.return_value = [0.1, 0.9]
        return provider

    @pytest.fixture
    def candidates(self):
        return [
            CandidateEntity(table="customers", entity_id="101", label="Acme Corp"),
            CandidateEntity(table="customers", entity_id="102", label="Globex"),
        ]

    @pytest.mark.asyncio
    async def test_ranks_best_first(self, provider, candidates):
        """Matches come back ordered by similarity."""
        linker = EmbeddingSimilarityLinker(provider)

        matches = await linker.similarity_link("a text about globex", candidates)

        assert [m.entity_id for m in matches] == ["102", "101"]
        assert matches[0].score > 0.9

    @pytest.mark.asyncio
    async def test_label_embeddings_cached(self, provider, candidates):
        """Labels are only embedded once per linker."""
        linker = EmbeddingSimilarityLinker(provider)

        await linker.similarity_link("first", candidates)
        await linker.similarity_link("second", candidates)

        provider.embed.assert_awaited_once_with(["Acme Corp", "Globex"])
        assert provider.embed_single.await_count == 2

    @pytest.mark.asyncio
    async def test_no_candidates(self, provider):
        linker = EmbeddingSimilarityLinker(provider)
        assert await linker.similarity_link("text", []) == []
        provider.embed.assert_not_awaited()


class TestSimilarityFromConfig:
    """Tests for similarity_linker_from_config."""

    def test_disabled(self):
        assert similarity_linker_from_config(DualStoreConfig(embedding_provider="none")) is None

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            similarity_linker_from_config(DualStoreConfig(embedding_provider="carrier-pigeon"))


class TestOpenAIEmbeddingProvider:
    """Tests for OpenAIEmbeddingProvider input handling (client stubbed)."""

    @pytest.fixture
    def provider(self):
        provider = OpenAIEmbeddingProvider(model="text-embedding-3-large", batch_size=2,
                                           max_input_chars=10)
        provider._client = Mock()
        provider._client.embed_documents.side_effect = lambda batch: [[float(len(t))] for t in batch]
        provider._client.embed_query.return_value = [0.5]
        return provider

    def test_prepare_input(self):
        assert prepare_input("  Acme\n\n Corp ", 100) == "Acme Corp"
        assert prepare_input("abcdefghij", 4) == "abcd"
        assert prepare_input("   ", 100) == "-"

    @pytest.mark.asyncio
    async def test_labels_embedded_in_batches(self, provider):
        """Labels are sent in batch_size groups and come back in order."""
        vectors = await provider.embed(["a", "bb", "ccc"])

        assert vectors == [[1.0], [2.0], [3.0]]
        assert [c.args[0] for c in provider._client.embed_documents.call_args_list] == [
            ["a", "bb"],
            ["ccc"],
        ]

    @pytest.mark.asyncio
    async def test_chunk_text_is_truncated(self, provider):
        assert await provider.embed_single("x" * 50) == [0.5]
        provider._client.embed_query.assert_called_once_with("x" * 10)

    @pytest.mark.asyncio
    async def test_empty_input(self, provider):
        assert await provider.embed([]) == []
        provider._client.embed_documents.assert_not_called()

    def test_from_config(self):
        config = DualStoreConfig(embedding_provider="openai", embedding_model="text-embedding-3-large")
        provider = OpenAIEmbeddingProvider.from_config(config)
        assert provider.model_name == "text-embedding-3-large"
        assert provider.dimensions == 3072
