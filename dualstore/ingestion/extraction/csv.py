"""
CSV Extractor

A CSV file is a single table block named after the file stem.
"""

import csv
from collections.abc import Iterator
from pathlib import Path

from dualstore.ingestion.extraction.base import BlockExtractor
from dualstore.types import BlockKind, ContentBlock, SourceLocator


class CsvExtractor(BlockExtractor):
    """Extract one table block per CSV/TSV file."""

    suffixes = (".csv", ".tsv")

    def extract(self, path: Path) -> Iterator[ContentBlock]:
        path = Path(path)
        delimiter = "\t" if path.suffix.lower() == ".tsv" else ","
        with open(path, newline="", encoding="utf-8-sig") as f:
            rows = [row for row in csv.reader(f, delimiter=delimiter) if any(c.strip() for c in row)]

        if not rows:
            return

        width = max(len(row) for row in rows)
        grid = [row + [""] * (width - len(row)) for row in rows]
        yield ContentBlock(
            kind=BlockKind.TABLE,
            raw_cells=grid,
            name_hint=path.stem,
            source_locator=SourceLocator(file_id=path.name, sheet=path.stem),
        )
