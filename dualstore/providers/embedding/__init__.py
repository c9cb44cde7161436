"""
Embedding Provider Implementations

Modules:
    openai: OpenAI embeddings via langchain-openai (optional extra)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dualstore.providers.embedding.openai import OpenAIEmbeddingProvider


def __getattr__(name: str):
    """Lazy import of providers to avoid requiring optional dependencies."""
    if name == "OpenAIEmbeddingProvider":
        from dualstore.providers.embedding.openai import OpenAIEmbeddingProvider
        return OpenAIEmbeddingProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["OpenAIEmbeddingProvider"]
