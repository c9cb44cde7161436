"""
Embedding Similarity Linker

Ranks candidate entities by cosine similarity between the chunk embedding
and each candidate label embedding.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.spatial.distance import cdist

from dualstore.providers.base import (
    CandidateEntity,
    EmbeddingProvider,
    SimilarityLinker,
    SimilarityMatch,
)

logger = logging.getLogger(__name__)


def cosine_similarities(query: list[float], vectors: list[list[float]]) -> np.ndarray:
    """Cosine similarity of one vector against many (1-D array)."""
    if not vectors:
        return np.zeros(0, dtype=np.float64)
    q = np.array([query], dtype=np.float64)
    arr = np.array(vectors, dtype=np.float64)
    # cdist returns distance (1 - similarity)
    similarity = 1 - cdist(q, arr, metric="cosine")[0]
    return np.nan_to_num(similarity, nan=0.0)


class EmbeddingSimilarityLinker(SimilarityLinker):
    """
    Similarity fallback backed by an EmbeddingProvider.

    Candidate label embeddings are cached by label, so re-linking across a
    run only embeds new labels.

    Usage:
        linker = EmbeddingSimilarityLinker(OpenAIEmbeddingProvider())
        matches = await linker.similarity_link(text, candidates)
    """

    def __init__(self, provider: EmbeddingProvider, top_k: int = 5):
        self.provider = provider
        self.top_k = top_k
        self._label_cache: dict[str, list[float]] = {}

    async def similarity_link(
        self,
        chunk_text: str,
        candidate_entities: list[CandidateEntity],
    ) -> list[SimilarityMatch]:
        if not candidate_entities or not chunk_text.strip():
            return []

        missing = sorted({c.label for c in candidate_entities} - set(self._label_cache))
        if missing:
            vectors = await self.provider.embed(missing)
            self._label_cache.update(zip(missing, vectors))

        query = await self.provider.embed_single(chunk_text)
        scores = cosine_similarities(query, [self._label_cache[c.label] for c in candidate_entities])

        order = np.argsort(-scores, kind="stable")[: self.top_k]
        matches = [
            SimilarityMatch(
                table=candidate_entities[i].table,
                entity_id=candidate_entities[i].entity_id,
                score=float(scores[i]),
            )
            for i in order
        ]
        if matches:
            logger.debug(f"Best similarity match {matches[0].table}.{matches[0].entity_id} "
                         f"score={matches[0].score:.3f}")
        return matches
