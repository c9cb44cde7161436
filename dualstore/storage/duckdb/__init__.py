"""
DuckDB Query Layer

Relational queries on the Parquet segments of structured tables.

Modules:
    queries: SQL query implementations

Query Patterns:
    - Raw row reads (deterministic segment/row order)
    - Distinct values and duplicate detection (key inference, FK value matching)
    - Typed equality queries (TRY_CAST to inferred column types)
"""

from dualstore.storage.duckdb.queries import DuckDBQueries

__all__ = ["DuckDBQueries"]
