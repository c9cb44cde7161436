"""
Extractor Interface

Extractors turn a source file into ContentBlocks in document order,
preserving merged-cell metadata for tables.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path

from dualstore.types import ContentBlock


class BlockExtractor(ABC):
    """Abstract interface for content block extractors."""

    suffixes: tuple[str, ...] = ()

    @abstractmethod
    def extract(self, path: Path) -> Iterator[ContentBlock]:
        """Yield blocks of a file in document order."""
        ...

    def handles(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes
