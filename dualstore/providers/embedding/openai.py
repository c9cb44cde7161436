"""
OpenAI Embedding Provider

Embeds candidate row labels and chunk text for the linker's similarity
fallback, through langchain-openai (install the `openai` extra).

Inputs are prepared for the two shapes this project sends:
    - row labels: many short strings, embedded in batches
    - chunk text: one longer string, whitespace-collapsed and truncated to
      max_input_chars before embedding
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from dualstore.providers.base import EmbeddingProvider

if TYPE_CHECKING:
    from langchain_openai import OpenAIEmbeddings

    from dualstore.config import DualStoreConfig

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def prepare_input(text: str, max_chars: int) -> str:
    """Collapse whitespace and truncate; the API rejects empty input."""
    cleaned = _WHITESPACE.sub(" ", text).strip()
    return cleaned[:max_chars] or "-"


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embeddings for similarity linking.

    Args:
        api_key: OpenAI API key. If None, OPENAI_API_KEY is used.
        model: Embedding model name
        batch_size: Labels sent per embedding request
        max_input_chars: Chunk text beyond this length is cut off

    Usage:
        provider = OpenAIEmbeddingProvider.from_config(config)
        linker = EmbeddingSimilarityLinker(provider)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        batch_size: int = 256,
        max_input_chars: int = 8000,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self.batch_size = batch_size
        self.max_input_chars = max_input_chars
        self._client: OpenAIEmbeddings | None = None

    @classmethod
    def from_config(cls, config: "DualStoreConfig") -> "OpenAIEmbeddingProvider":
        return cls(api_key=config.openai_api_key, model=config.embedding_model)

    @property
    def client(self) -> "OpenAIEmbeddings":
        if self._client is None:
            try:
                from langchain_openai import OpenAIEmbeddings
            except ImportError as e:
                raise ImportError(
                    "Similarity linking with embedding_provider = 'openai' needs "
                    "langchain-openai. Install with: pip install dualstore[openai]"
                ) from e

            if self._api_key:
                from pydantic import SecretStr

                self._client = OpenAIEmbeddings(model=self._model, api_key=SecretStr(self._api_key))
            else:
                self._client = OpenAIEmbeddings(model=self._model)
        return self._client

    @property
    def dimensions(self) -> int:
        return _DIMENSIONS.get(self._model, 1536)

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed row labels in batches, preserving input order."""
        inputs = [prepare_input(text, self.max_input_chars) for text in texts]
        vectors: list[list[float]] = []
        for start in range(0, len(inputs), self.batch_size):
            batch = inputs[start:start + self.batch_size]
            # embed_documents blocks
            vectors.extend(await asyncio.to_thread(self.client.embed_documents, batch))
        if inputs:
            logger.debug(f"Embedded {len(inputs)} labels with {self._model}")
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        """Embed one chunk's text."""
        prepared = prepare_input(text, self.max_input_chars)
        return await asyncio.to_thread(self.client.embed_query, prepared)
