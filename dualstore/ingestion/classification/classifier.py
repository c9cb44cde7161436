"""
Block Classifier

Routes each content block to the structured store, the corpus, or both.

Classification is a pure function of the block, the known tables and the
configured thresholds: no I/O, no randomness, and it never raises. A block
whose signals cannot be computed defaults to the corpus with unknown
signals.

Table rules (first match wins):
    1. long_text:     max_text_len > long_text_max and avg_text_len > long_text_avg
                      -> unstructured
    2. merged_cells:  merged_ratio > merged_ratio threshold -> both
       mixed_text:    max_text_len > long_text_max and avg_text_len <= long_text_avg
                      -> both
    3. short_dense:   null_ratio < null_ratio threshold and avg_text_len < short_text_avg
                      -> structured
    4. tie_break:     otherwise -> both (ambiguous); a header equal to an
                      existing table's columns is recorded as matched_table

Paragraph rules:
    - shorter than paragraph_min_chars -> discard (noise)
    - longer than paragraph_max_chars -> unstructured
    - in between -> unstructured, flagged ambiguous
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from dualstore.config import DualStoreConfig
from dualstore.types import (
    BlockKind,
    ClassificationResult,
    ConfidenceSignals,
    ContentBlock,
    Destination,
    TableSpec,
)
from dualstore.utils.text import is_null, is_numeric, normalize_identifier

logger = logging.getLogger(__name__)


def numeric_columns(block: ContentBlock) -> set[int]:
    """Indices of columns whose non-null data values are all numeric."""
    rows = block.data_rows
    width = len(block.header)
    numeric: set[int] = set()
    for col in range(width):
        values = [row[col] for row in rows if col < len(row) and not is_null(row[col])]
        if values and all(is_numeric(v) for v in values):
            numeric.add(col)
    return numeric


def compute_signals(block: ContentBlock) -> ConfidenceSignals:
    """
    Compute classification signals for a table block.

    - merged_ratio: grid cells inside multi-cell merged ranges / all grid cells
    - avg_text_len / max_text_len: over non-null values of non-numeric columns
      in data rows
    - null_ratio: null data cells / all data cells

    Raises:
        ValueError: If the block has no header or no data rows
    """
    grid = block.raw_cells
    if not grid or not grid[0]:
        raise ValueError("table block has no header row")
    if len(grid) < 2:
        raise ValueError("table block has no data rows")

    width = max(len(row) for row in grid)
    height = len(grid)
    total_cells = width * height

    merged_cells = 0
    for rng in block.merged_ranges:
        if rng.cell_count <= 1:
            continue
        rows = min(rng.last_row, height - 1) - rng.first_row + 1
        cols = min(rng.last_col, width - 1) - rng.first_col + 1
        if rows > 0 and cols > 0:
            merged_cells += rows * cols
    merged_ratio = min(1.0, merged_cells / total_cells)

    data_rows = block.data_rows
    data_cells = width * len(data_rows)
    nulls = 0
    for row in data_rows:
        nulls += width - len(row)
        nulls += sum(1 for value in row if is_null(value))

    numeric = numeric_columns(block)
    lengths = [
        len(value.strip())
        for row in data_rows
        for col, value in enumerate(row)
        if col not in numeric and not is_null(value)
    ]

    return ConfidenceSignals(
        merged_ratio=merged_ratio,
        avg_text_len=(sum(lengths) / len(lengths)) if lengths else 0.0,
        max_text_len=max(lengths) if lengths else 0,
        null_ratio=nulls / data_cells if data_cells else 0.0,
    )


def split_columns(
    block: ContentBlock,
    config: DualStoreConfig,
) -> tuple[list[int], list[int]]:
    """
    Split a table's columns for a `both` destination.

    Numeric columns and columns whose longest value stays under the
    short-text threshold go to the structured store; the rest go to the
    corpus.

    Returns:
        (structured_columns, text_columns)
    """
    numeric = numeric_columns(block)
    structured: list[int] = []
    text: list[int] = []
    for col in range(len(block.header)):
        values = [
            row[col].strip() for row in block.data_rows
            if col < len(row) and not is_null(row[col])
        ]
        longest = max((len(v) for v in values), default=0)
        if col in numeric or longest < config.classification_short_text_avg:
            structured.append(col)
        else:
            text.append(col)
    return structured, text


def _matches_existing_table(
    block: ContentBlock,
    existing_tables: Mapping[str, TableSpec],
) -> str | None:
    header = {normalize_identifier(h) for h in block.header if h.strip()}
    if not header:
        return None
    for name, spec in existing_tables.items():
        if header == set(spec.columns):
            return name
    return None


def _classify_table(
    block: ContentBlock,
    existing_tables: Mapping[str, TableSpec],
    config: DualStoreConfig,
) -> ClassificationResult:
    signals = compute_signals(block)
    max_len = signals.max_text_len or 0
    avg_len = signals.avg_text_len or 0.0
    merged_ratio = signals.merged_ratio or 0.0
    null_ratio = signals.null_ratio or 0.0

    long_max = max_len > config.classification_long_text_max
    long_avg = avg_len > config.classification_long_text_avg

    if long_max and long_avg:
        return ClassificationResult(
            destination=Destination.UNSTRUCTURED,
            confidence_signals=signals,
            rule="long_text",
        )

    if merged_ratio > config.classification_merged_ratio or long_max:
        structured, text = split_columns(block, config)
        return ClassificationResult(
            destination=Destination.BOTH,
            confidence_signals=signals,
            rule="merged_cells" if merged_ratio > config.classification_merged_ratio else "mixed_text",
            structured_columns=structured,
            text_columns=text,
        )

    if (
        null_ratio < config.classification_null_ratio
        and avg_len < config.classification_short_text_avg
    ):
        return ClassificationResult(
            destination=Destination.STRUCTURED,
            confidence_signals=signals,
            rule="short_dense",
            structured_columns=list(range(len(block.header))),
        )

    structured, text = split_columns(block, config)
    return ClassificationResult(
        destination=Destination.BOTH,
        confidence_signals=signals,
        rule="tie_break",
        ambiguous=True,
        structured_columns=structured,
        text_columns=text,
        matched_table=_matches_existing_table(block, existing_tables),
    )


def _classify_paragraph(block: ContentBlock, config: DualStoreConfig) -> ClassificationResult:
    length = len(block.text.strip())
    if length < config.classification_paragraph_min_chars:
        return ClassificationResult(destination=Destination.DISCARD, rule="paragraph_noise")
    if length > config.classification_paragraph_max_chars:
        return ClassificationResult(destination=Destination.UNSTRUCTURED, rule="paragraph_text")
    return ClassificationResult(
        destination=Destination.UNSTRUCTURED,
        rule="paragraph_short",
        ambiguous=True,
    )


def classify(
    block: ContentBlock,
    existing_tables: Mapping[str, TableSpec] | None = None,
    config: DualStoreConfig | None = None,
) -> ClassificationResult:
    """
    Classify one content block.

    Args:
        block: Block to classify
        existing_tables: Known tables by name (used by the tie-break rule)
        config: Thresholds (defaults if None)

    Returns:
        ClassificationResult. Headings come back as DISCARD; they only
        update section context. Never raises: blocks whose signals cannot
        be computed are routed to the corpus with unknown signals.
    """
    config = config or DualStoreConfig()
    existing_tables = existing_tables or {}

    if block.kind == BlockKind.HEADING:
        return ClassificationResult(destination=Destination.DISCARD, rule="heading")

    if block.kind == BlockKind.PARAGRAPH:
        result = _classify_paragraph(block, config)
    else:
        try:
            result = _classify_table(block, existing_tables, config)
        except (ValueError, IndexError) as e:
            logger.warning(
                f"Could not compute signals for table in {block.source_locator.file_id} "
                f"({e}); routing to corpus"
            )
            return ClassificationResult(
                destination=Destination.UNSTRUCTURED,
                confidence_signals=ConfidenceSignals(),
                rule="unknown_signals",
            )

    logger.debug(
        f"Classified {block.kind.value} block in {block.source_locator.file_id} as "
        f"{result.destination.value} (rule={result.rule})"
    )
    return result
