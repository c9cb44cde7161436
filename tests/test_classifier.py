"""Tests for the block classifier."""

import pytest

from dualstore.config import DualStoreConfig
from dualstore.ingestion.classification import (
    classify,
    compute_signals,
    numeric_columns,
    split_columns,
)
from dualstore.types import (
    BlockKind,
    ColumnType,
    ContentBlock,
    Destination,
    MergedRange,
    SourceLocator,
    TableSpec,
)


def table_block(rows, merged=None, name_hint=None):
    return ContentBlock(
        kind=BlockKind.TABLE,
        raw_cells=rows,
        merged_ranges=merged or [],
        name_hint=name_hint,
        source_locator=SourceLocator(file_id="test.md"),
    )


def paragraph_block(text):
    return ContentBlock(
        kind=BlockKind.PARAGRAPH,
        text=text,
        source_locator=SourceLocator(file_id="test.md"),
    )


@pytest.fixture
def merged_sales_block():
    """4x5 grid with a 3-cell vertical merge (ratio 0.15) and a 50-char note."""
    return table_block(
        [
            ["Region", "Product", "Units", "Notes"],
            ["North", "Widget", "10", "x" * 50],
            ["", "Gadget", "12", "ok"],
            ["", "Gizmo", "7", "fine"],
            ["South", "Widget", "3", "good"],
        ],
        merged=[MergedRange(first_row=1, first_col=0, last_row=3, last_col=0)],
    )


@pytest.fixture
def customers_block():
    return table_block(
        [
            ["id", "name", "city"],
            ["101", "Acme Corp", "Berlin"],
            ["102", "Globex", "Paris"],
            ["103", "Initech", "Austin"],
        ],
        name_hint="customers",
    )


class TestComputeSignals:
    """Tests for signal computation."""

    def test_merged_ratio_counts_covered_cells(self, merged_sales_block):
        """Merged ratio is covered grid cells over all grid cells."""
        signals = compute_signals(merged_sales_block)
        assert signals.merged_ratio == pytest.approx(0.15)
        assert signals.max_text_len == 50

    def test_numeric_columns_excluded_from_text_lengths(self, merged_sales_block):
        """Numeric columns do not contribute to text length signals."""
        assert numeric_columns(merged_sales_block) == {2}
        signals = compute_signals(merged_sales_block)
        assert signals.avg_text_len == pytest.approx(9.3)

    def test_null_ratio(self, merged_sales_block):
        """Null ratio covers data cells only."""
        signals = compute_signals(merged_sales_block)
        assert signals.null_ratio == pytest.approx(2 / 16)

    def test_header_only_raises(self):
        """A table without data rows has no signals."""
        with pytest.raises(ValueError):
            compute_signals(table_block([["a", "b"]]))


class TestClassifyTables:
    """Tests for table classification rules."""

    def test_merged_cells_route_to_both(self, merged_sales_block):
        """Merged ratio above the threshold splits the table."""
        result = classify(merged_sales_block)
        assert result.destination == Destination.BOTH
        assert result.rule == "merged_cells"
        assert not result.ambiguous

    def test_merged_threshold_is_configurable(self, merged_sales_block):
        """Raising the merged threshold falls through to short_dense."""
        config = DualStoreConfig(classification_merged_ratio=0.2)
        result = classify(merged_sales_block, config=config)
        assert result.destination == Destination.STRUCTURED
        assert result.rule == "short_dense"

    def test_long_text_routes_to_unstructured(self):
        """Tables of long prose go entirely to the corpus."""
        block = table_block([["Description"], ["a" * 600], ["b" * 600]])
        result = classify(block)
        assert result.destination == Destination.UNSTRUCTURED
        assert result.rule == "long_text"

    def test_mixed_text_splits_columns(self):
        """One long column among short ones routes to both with a column split."""
        block = table_block([
            ["id", "name", "notes"],
            ["1", "Acme", "a" * 600],
            ["2", "Beta", "short"],
        ])
        result = classify(block)
        assert result.destination == Destination.BOTH
        assert result.rule == "mixed_text"
        assert result.structured_columns == [0, 1]
        assert result.text_columns == [2]

    def test_short_dense_routes_to_structured(self, customers_block):
        """Short, dense tables are structured."""
        result = classify(customers_block)
        assert result.destination == Destination.STRUCTURED
        assert result.rule == "short_dense"
        assert result.structured_columns == [0, 1, 2]

    def test_sparse_table_matching_known_table(self):
        """A header match is only an audit hint; the tie-break still picks both."""
        block = table_block([["a", "b", "c"], ["x", "", ""], ["", "y", ""]])
        existing = {
            "t": TableSpec(
                name="t",
                source="s.md",
                columns={"a": ColumnType.TEXT, "b": ColumnType.TEXT, "c": ColumnType.TEXT},
            )
        }
        result = classify(block, existing_tables=existing)
        assert result.destination == Destination.BOTH
        assert result.rule == "tie_break"
        assert result.ambiguous
        assert result.matched_table == "t"
        assert classify(block).matched_table is None

    def test_tie_break_defaults_to_both(self):
        """Without a matching rule the table goes to both and is flagged."""
        block = table_block([["a", "b", "c"], ["x", "", ""], ["", "y", ""]])
        result = classify(block)
        assert result.destination == Destination.BOTH
        assert result.rule == "tie_break"
        assert result.ambiguous

    def test_malformed_table_gets_unknown_signals(self):
        """A table whose signals cannot be computed is sent to the corpus."""
        result = classify(table_block([]))
        assert result.destination == Destination.UNSTRUCTURED
        assert result.rule == "unknown_signals"
        assert result.confidence_signals.is_unknown

    def test_classification_is_deterministic(self, merged_sales_block):
        """Same block and thresholds give the same result."""
        assert classify(merged_sales_block) == classify(merged_sales_block)

    def test_tables_are_never_discarded(self, customers_block, merged_sales_block):
        """Table blocks always land in at least one store."""
        for block in (customers_block, merged_sales_block, table_block([])):
            assert classify(block).destination != Destination.DISCARD


class TestClassifyText:
    """Tests for paragraph and heading classification."""

    def test_short_paragraph_is_noise(self):
        """Paragraphs below the minimum length are discarded."""
        result = classify(paragraph_block("Page 3 of 12"))
        assert result.destination == Destination.DISCARD
        assert result.rule == "paragraph_noise"

    def test_long_paragraph_is_unstructured(self):
        """Long paragraphs are unambiguously unstructured."""
        result = classify(paragraph_block("word " * 60))
        assert result.destination == Destination.UNSTRUCTURED
        assert not result.ambiguous

    def test_medium_paragraph_is_ambiguous(self):
        """Paragraphs between the thresholds are unstructured but flagged."""
        result = classify(paragraph_block("x" * 100))
        assert result.destination == Destination.UNSTRUCTURED
        assert result.ambiguous

    def test_heading_is_discarded(self):
        """Headings only provide section context."""
        block = ContentBlock(
            kind=BlockKind.HEADING,
            text="Customers",
            heading_level=1,
            source_locator=SourceLocator(file_id="test.md"),
        )
        result = classify(block)
        assert result.destination == Destination.DISCARD
        assert result.rule == "heading"


class TestSplitColumns:
    """Tests for column splitting."""

    def test_numeric_and_short_columns_are_structured(self):
        """Long free-text columns go to the corpus."""
        block = table_block([
            ["code", "amount", "comment"],
            ["A1", "10.5", "c" * 150],
            ["A2", "3", "fine"],
        ])
        structured, text = split_columns(block, DualStoreConfig())
        assert structured == [0, 1]
        assert text == [2]
