"""
Embedding and Similarity Providers

Provider-agnostic interfaces for the linker's similarity fallback.

Modules:
    base: Abstract interfaces (EmbeddingProvider, SimilarityLinker)
    embedding/: Embedding provider implementations
    similarity/: SimilarityLinker implementations

Design:
    - The similarity fallback is optional; with embedding_provider = "none"
      the linker stops after section-context matching
    - Lazy import of provider SDKs to avoid requiring optional dependencies
"""

from __future__ import annotations

from dualstore.config import DualStoreConfig
from dualstore.providers.base import (
    CandidateEntity,
    EmbeddingProvider,
    SimilarityLinker,
    SimilarityMatch,
)


def similarity_linker_from_config(config: DualStoreConfig) -> SimilarityLinker | None:
    """
    Build the configured similarity fallback, or None if disabled.

    Raises:
        ValueError: If the configured provider is unknown
    """
    provider = config.embedding_provider.lower()
    if provider == "none":
        return None
    if provider == "openai":
        from dualstore.providers.embedding.openai import OpenAIEmbeddingProvider
        from dualstore.providers.similarity.embedding import EmbeddingSimilarityLinker

        return EmbeddingSimilarityLinker(OpenAIEmbeddingProvider.from_config(config))
    raise ValueError(f"Unknown embedding provider: {config.embedding_provider}")


__all__ = [
    "CandidateEntity",
    "EmbeddingProvider",
    "SimilarityLinker",
    "SimilarityMatch",
    "similarity_linker_from_config",
]
