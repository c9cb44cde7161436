"""
Abstract Provider Interfaces

Base classes for embedding providers and the similarity fallback used by
the cross-reference linker.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for texts."""
        ...

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Embedding dimensions."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Current model name."""
        ...


class CandidateEntity(BaseModel):
    """A structured row offered to the similarity fallback."""

    table: str
    entity_id: str
    label: str


class SimilarityMatch(BaseModel):
    """A ranked similarity hit."""

    table: str
    entity_id: str
    score: float


class SimilarityLinker(ABC):
    """
    Last-resort link detection.

    Only consulted when identifier, name and section matching all fail.
    """

    @abstractmethod
    async def similarity_link(
        self,
        chunk_text: str,
        candidate_entities: list[CandidateEntity],
    ) -> list[SimilarityMatch]:
        """Rank candidate entities by similarity to the chunk, best first."""
        ...
