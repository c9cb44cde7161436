"""
Content Block Extraction

Text-format extractors yielding ContentBlocks in document order. Binary
formats (xlsx, docx, pdf) are expected to come from external readers that
implement BlockExtractor.

Modules:
    base: BlockExtractor interface
    markdown: Headings, paragraphs, pipe tables and HTML tables
    csv: One table block per CSV/TSV file
"""

from pathlib import Path

from dualstore.ingestion.extraction.base import BlockExtractor
from dualstore.ingestion.extraction.csv import CsvExtractor
from dualstore.ingestion.extraction.markdown import MarkdownExtractor

_EXTRACTORS: list[BlockExtractor] = [MarkdownExtractor(), CsvExtractor()]


def extractor_for(path: str | Path) -> BlockExtractor:
    """
    Pick the extractor for a file by suffix.

    Raises:
        ValueError: If no extractor handles the file type
    """
    path = Path(path)
    for extractor in _EXTRACTORS:
        if extractor.handles(path):
            return extractor
    raise ValueError(f"Unsupported file type: {path.suffix or path.name}")


__all__ = ["BlockExtractor", "CsvExtractor", "MarkdownExtractor", "extractor_for"]
