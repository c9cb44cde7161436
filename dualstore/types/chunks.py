"""
Chunk Types

Chunks are the retrievable units of the unstructured corpus.

Storage Models:
    - Chunk: Persisted chunk with link metadata
    - LinkType / LinkMethod: What a link means and how it was found

Input Models (used during materialization):
    - ChunkInput: Content waiting for an id
"""

from enum import Enum

from pydantic import BaseModel, Field


class LinkType(str, Enum):
    """Semantic relationship between a chunk and a structured entity."""

    DESCRIBES = "describes"
    SUMMARIZES = "summarizes"
    REFERENCES = "references"
    CONTEXTUALIZES = "contextualizes"
    NONE = "none"


class LinkMethod(str, Enum):
    """Detection method that produced a link, strongest first."""

    ROW_IDENTIFIER = "row_identifier"
    EXPLICIT_ID = "explicit_id"
    ENTITY_NAME = "entity_name"
    SECTION_CONTEXT = "section_context"
    SIMILARITY = "similarity"
    NONE = "none"

    @property
    def rank(self) -> int:
        """Priority rank, lower is stronger."""
        return _METHOD_RANK[self]


_METHOD_RANK = {
    LinkMethod.ROW_IDENTIFIER: 0,
    LinkMethod.EXPLICIT_ID: 1,
    LinkMethod.ENTITY_NAME: 2,
    LinkMethod.SECTION_CONTEXT: 3,
    LinkMethod.SIMILARITY: 4,
    LinkMethod.NONE: 5,
}


class Chunk(BaseModel):
    """
    A persisted corpus chunk.

    Attributes:
        id: Deterministic id ({source_key}_chunk_{n:04d})
        source_file: Source that owns the chunk
        section: Heading breadcrumb the content sat under
        content: Text content (immutable once written)
        position: Order within the source (0-indexed)
        linked_table: Structured table the chunk is linked to
        linked_ids: Primary key values of linked rows
        link_type: Semantic relationship of the link
        link_method: Detection method of the link
    """

    id: str
    source_file: str
    section: str = ""
    content: str
    position: int = 0
    linked_table: str | None = None
    linked_ids: list[str] = []
    link_type: LinkType = LinkType.NONE
    link_method: LinkMethod = LinkMethod.NONE

    @property
    def is_linked(self) -> bool:
        return self.link_type != LinkType.NONE


class ChunkInput(BaseModel):
    """
    Corpus content before id assignment.

    Rows of a split table arrive pre-linked to their row identifier.
    """

    content: str = Field(..., description="Text content of the chunk")
    section: str = Field(default="", description="Heading breadcrumb")
    linked_table: str | None = Field(default=None, description="Pre-linked table")
    linked_ids: list[str] = Field(default_factory=list, description="Pre-linked row ids")
