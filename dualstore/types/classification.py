"""
Classification Types

Output of the block classifier. One result is produced per block and never
mutated afterwards.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Destination(str, Enum):
    """
    Where a block's content is materialized.

    DISCARD is reserved for paragraph noise and headings; tables are always
    routed to one of the three stores.
    """

    STRUCTURED = "structured"
    UNSTRUCTURED = "unstructured"
    BOTH = "both"
    DISCARD = "discard"


class ConfidenceSignals(BaseModel):
    """
    Numeric signals the decision was based on.

    A value of None means the signal could not be computed (malformed or
    non-table block).
    """

    merged_ratio: float | None = None
    avg_text_len: float | None = None
    max_text_len: int | None = None
    null_ratio: float | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_unknown(self) -> bool:
        return all(
            value is None
            for value in (self.merged_ratio, self.avg_text_len, self.max_text_len, self.null_ratio)
        )


class ClassificationResult(BaseModel):
    """
    Routing decision for a single block.

    Attributes:
        destination: structured, unstructured, both or discard
        confidence_signals: Signals retained for auditability
        rule: Name of the decision rule that fired
        ambiguous: True when a tie-break default decided the outcome
        structured_columns: Header indices routed to the structured store
        text_columns: Header indices routed to the corpus
        matched_table: Existing table whose columns equal the header, kept as
            an audit hint only
    """

    destination: Destination
    confidence_signals: ConfidenceSignals = ConfidenceSignals()
    rule: str = ""
    ambiguous: bool = False
    structured_columns: list[int] = []
    text_columns: list[int] = []
    matched_table: str | None = None

    model_config = ConfigDict(frozen=True)
