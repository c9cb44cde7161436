"""
Markdown Extractor

Splits markdown into heading, paragraph and table blocks in document order.

Algorithm:
    1. Walk lines, tracking the header stack for section breadcrumbs
    2. Collect pipe tables (header row + separator row) and HTML <table>
       regions as table blocks; colspan/rowspan are expanded into a grid
       and recorded as merged ranges
    3. Everything else is grouped into blank-line separated paragraphs,
       keeping fenced code blocks atomic
"""

import re
from collections.abc import Iterator
from html.parser import HTMLParser
from pathlib import Path

from dualstore.ingestion.extraction.base import BlockExtractor
from dualstore.types import BlockKind, ContentBlock, MergedRange, SourceLocator

# Regex patterns
_HEADER_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_PIPE_ROW_PATTERN = re.compile(r"^\s*\|.*\|\s*$")
_PIPE_SEPARATOR_PATTERN = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")
_TABLE_OPEN_PATTERN = re.compile(r"<table\b", re.IGNORECASE)
_TABLE_CLOSE_PATTERN = re.compile(r"</table\s*>", re.IGNORECASE)
_FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")


class _HTMLTableParser(HTMLParser):
    """Collects rows of <td>/<th> cells with their spans and the caption."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.rows: list[list[tuple[str, int, int]]] = []
        self.caption: str | None = None
        self._cell: list[str] | None = None
        self._span = (1, 1)
        self._in_caption = False
        self._caption_parts: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "tr":
            self.rows.append([])
        elif tag in ("td", "th"):
            values = dict(attrs)
            self._cell = []
            self._span = (_span(values.get("rowspan")), _span(values.get("colspan")))
        elif tag == "caption":
            self._in_caption = True
        elif tag == "br" and self._cell is not None:
            self._cell.append(" ")

    def handle_endtag(self, tag: str) -> None:
        if tag in ("td", "th") and self._cell is not None:
            if not self.rows:
                self.rows.append([])
            text = " ".join("".join(self._cell).split())
            self.rows[-1].append((text, self._span[0], self._span[1]))
            self._cell = None
        elif tag == "caption":
            self._in_caption = False
            self.caption = " ".join("".join(self._caption_parts).split()) or None

    def handle_data(self, data: str) -> None:
        if self._cell is not None:
            self._cell.append(data)
        elif self._in_caption:
            self._caption_parts.append(data)


def _span(value: str | None) -> int:
    try:
        return max(1, int(value or 1))
    except ValueError:
        return 1


def parse_html_table(html: str) -> tuple[list[list[str]], list[MergedRange], str | None]:
    """
    Expand an HTML table into a rectangular grid.

    A spanning cell's text sits in its top-left grid cell; the other covered
    cells are empty strings. Each span larger than one cell becomes a
    MergedRange.

    Returns:
        (grid, merged_ranges, caption)
    """
    parser = _HTMLTableParser()
    parser.feed(html)
    parser.close()

    occupied: dict[tuple[int, int], str] = {}
    merged: list[MergedRange] = []
    width = 0

    for r, row in enumerate(parser.rows):
        c = 0
        for text, rowspan, colspan in row:
            while (r, c) in occupied:
                c += 1
            for dr in range(rowspan):
                for dc in range(colspan):
                    occupied[(r + dr, c + dc)] = text if (dr, dc) == (0, 0) else ""
            if rowspan > 1 or colspan > 1:
                merged.append(
                    MergedRange(
                        first_row=r,
                        first_col=c,
                        last_row=r + rowspan - 1,
                        last_col=c + colspan - 1,
                    )
                )
            c += colspan
            width = max(width, c)

    height = max((r for r, _ in occupied), default=-1) + 1
    grid = [[occupied.get((r, c), "") for c in range(width)] for r in range(height)]
    return grid, merged, parser.caption


def _split_pipe_row(line: str) -> list[str]:
    text = line.strip()
    if text.startswith("|"):
        text = text[1:]
    if text.endswith("|") and not text.endswith("\\|"):
        text = text[:-1]
    cells = re.split(r"(?<!\\)\|", text)
    return [cell.strip().replace("\\|", "|") for cell in cells]


def parse_pipe_table(lines: list[str]) -> list[list[str]]:
    """Parse a GitHub pipe table (header, separator, rows) into a padded grid."""
    header = _split_pipe_row(lines[0])
    rows = [_split_pipe_row(line) for line in lines[2:]]
    width = max([len(header)] + [len(row) for row in rows])
    return [row + [""] * (width - len(row)) for row in [header, *rows]]


class MarkdownExtractor(BlockExtractor):
    """
    Extract blocks from markdown text.

    Usage:
        extractor = MarkdownExtractor()
        for block in extractor.extract(Path("report.md")):
            ...
    """

    suffixes = (".md", ".markdown")

    def extract(self, path: Path) -> Iterator[ContentBlock]:
        content = Path(path).read_text(encoding="utf-8")
        yield from self.extract_text(content, file_id=Path(path).name)

    def extract_text(self, content: str, file_id: str) -> Iterator[ContentBlock]:
        """Yield blocks from markdown content."""
        lines = content.split("\n")
        header_stack: list[tuple[int, str]] = []
        paragraph: list[str] = []
        i = 0

        def locator() -> SourceLocator:
            section = " > ".join(h[1] for h in header_stack) or None
            return SourceLocator(file_id=file_id, section=section)

        def current_heading() -> str:
            return header_stack[-1][1] if header_stack else ""

        def flush_paragraph() -> Iterator[ContentBlock]:
            text = "\n".join(paragraph).strip()
            paragraph.clear()
            if text:
                yield ContentBlock(
                    kind=BlockKind.PARAGRAPH,
                    text=text,
                    section_context=current_heading(),
                    source_locator=locator(),
                )

        while i < len(lines):
            line = lines[i]

            if _FENCE_PATTERN.match(line):
                # Fenced code stays one paragraph regardless of blank lines
                fence = _FENCE_PATTERN.match(line).group(1)  # type: ignore[union-attr]
                paragraph.append(line)
                i += 1
                while i < len(lines):
                    paragraph.append(lines[i])
                    if lines[i].strip().startswith(fence):
                        i += 1
                        break
                    i += 1
                continue

            header = _HEADER_PATTERN.match(line)
            if header:
                yield from flush_paragraph()
                hashes, title = header.groups()
                level = len(hashes)
                while header_stack and header_stack[-1][0] >= level:
                    header_stack.pop()
                header_stack.append((level, title.strip()))
                yield ContentBlock(
                    kind=BlockKind.HEADING,
                    text=title.strip(),
                    heading_level=level,
                    section_context=title.strip(),
                    source_locator=locator(),
                )
                i += 1
                continue

            if _TABLE_OPEN_PATTERN.search(line):
                yield from flush_paragraph()
                region = [line]
                while not _TABLE_CLOSE_PATTERN.search(region[-1]) and i + 1 < len(lines):
                    i += 1
                    region.append(lines[i])
                i += 1
                grid, merged, caption = parse_html_table("\n".join(region))
                yield ContentBlock(
                    kind=BlockKind.TABLE,
                    raw_cells=grid,
                    merged_ranges=merged,
                    name_hint=caption,
                    section_context=current_heading(),
                    source_locator=locator(),
                )
                continue

            if (
                _PIPE_ROW_PATTERN.match(line)
                and i + 1 < len(lines)
                and _PIPE_SEPARATOR_PATTERN.match(lines[i + 1])
            ):
                yield from flush_paragraph()
                region = [line, lines[i + 1]]
                i += 2
                while i < len(lines) and _PIPE_ROW_PATTERN.match(lines[i]):
                    region.append(lines[i])
                    i += 1
                yield ContentBlock(
                    kind=BlockKind.TABLE,
                    raw_cells=parse_pipe_table(region),
                    section_context=current_heading(),
                    source_locator=locator(),
                )
                continue

            if line.strip():
                paragraph.append(line)
            else:
                yield from flush_paragraph()
            i += 1

        yield from flush_paragraph()
