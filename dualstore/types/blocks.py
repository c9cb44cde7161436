"""
Content Block Types

Blocks are the unit of extracted content handed to the classifier.

Models:
    - BlockKind: table, paragraph or heading
    - SourceLocator: where the block came from (file + sheet/page/section)
    - MergedRange: rectangle of grid cells that were merged in the source
    - ContentBlock: one immutable extracted block
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BlockKind(str, Enum):
    """Kind of extracted content block."""

    TABLE = "table"
    PARAGRAPH = "paragraph"
    HEADING = "heading"


class SourceLocator(BaseModel):
    """
    Position of a block inside its source document.

    Attributes:
        file_id: Source file identifier (usually the file name)
        sheet: Sheet name for spreadsheet-like sources
        page: Page number for paginated sources
        section: Section breadcrumb at extraction time
    """

    file_id: str
    sheet: str | None = None
    page: int | None = None
    section: str | None = None

    model_config = ConfigDict(frozen=True)


class MergedRange(BaseModel):
    """
    A merged-cell rectangle, inclusive on both ends, in grid coordinates.

    Row 0 is the header row of the block's raw_cells.
    """

    first_row: int = Field(..., ge=0)
    first_col: int = Field(..., ge=0)
    last_row: int = Field(..., ge=0)
    last_col: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def cell_count(self) -> int:
        """Number of grid cells covered by this range."""
        return (self.last_row - self.first_row + 1) * (self.last_col - self.first_col + 1)


class ContentBlock(BaseModel):
    """
    One unit of extracted content.

    Attributes:
        kind: table, paragraph or heading
        raw_cells: Table grid, header row first (tables only)
        text: Text content (paragraphs and headings)
        section_context: Nearest preceding heading text
        source_locator: Where the block came from
        merged_ranges: Merged-cell metadata for tables
        name_hint: Sheet name or caption usable as a table name
        heading_level: 1-6 for headings, None otherwise

    Blocks are immutable once extracted.
    """

    kind: BlockKind
    raw_cells: list[list[str]] = []
    text: str = ""
    section_context: str = ""
    source_locator: SourceLocator
    merged_ranges: list[MergedRange] = []
    name_hint: str | None = None
    heading_level: int | None = None

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    @property
    def header(self) -> list[str]:
        """Header row of a table block (empty for non-tables)."""
        return list(self.raw_cells[0]) if self.raw_cells else []

    @property
    def data_rows(self) -> list[list[str]]:
        """Data rows of a table block, excluding the header."""
        return [list(row) for row in self.raw_cells[1:]]

    def with_section(self, section_context: str) -> "ContentBlock":
        """Return a copy bound to a different section context."""
        return self.model_copy(update={"section_context": section_context})
