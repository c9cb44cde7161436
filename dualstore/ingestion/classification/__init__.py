"""
Block Classification

Modules:
    classifier: Signal computation and the structured/unstructured/both rules
"""

from dualstore.ingestion.classification.classifier import (
    classify,
    compute_signals,
    numeric_columns,
    split_columns,
)

__all__ = ["classify", "compute_signals", "numeric_columns", "split_columns"]
