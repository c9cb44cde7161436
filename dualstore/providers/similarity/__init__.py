"""
Similarity Fallback Implementations

Modules:
    embedding: Cosine similarity over embeddings (numpy + scipy)
"""

from dualstore.providers.similarity.embedding import (
    EmbeddingSimilarityLinker,
    cosine_similarities,
)

__all__ = ["EmbeddingSimilarityLinker", "cosine_similarities"]
