"""
DuckDB Query Layer

SQL queries over the per-source Parquet segments of structured tables.
"""

import asyncio
import threading
from pathlib import Path
from typing import Any

import duckdb

from dualstore.config import DualStoreConfig
from dualstore.types import ColumnType

# Bookkeeping columns written into every table segment
SEGMENT_COLUMN = "__segment"
ROW_COLUMN = "__row"
_META_COLUMNS = (SEGMENT_COLUMN, ROW_COLUMN)
_ORDER_BY = f'ORDER BY "{SEGMENT_COLUMN}", "{ROW_COLUMN}"'


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _typed_expression(column: str, column_type: ColumnType | None) -> str:
    """SQL expression casting a raw string column to its inferred type."""
    col = _quote(column)
    if column_type == ColumnType.INTEGER:
        return f"TRY_CAST(replace({col}, ',', '') AS BIGINT) AS {col}"
    if column_type == ColumnType.FLOAT:
        return f"TRY_CAST(replace({col}, ',', '') AS DOUBLE) AS {col}"
    if column_type == ColumnType.DATE:
        return f"TRY_CAST({col} AS DATE) AS {col}"
    if column_type == ColumnType.BOOLEAN:
        return (
            f"CASE lower(trim({col})) WHEN 'true' THEN true WHEN 'yes' THEN true "
            f"WHEN 'false' THEN false WHEN 'no' THEN false ELSE NULL END AS {col}"
        )
    return col


class DuckDBQueries:
    """
    DuckDB query layer for table segments.

    Each table lives in tables/<table>/ as one Parquet file per contributing
    source. Reads union all segments by column name and order rows by
    segment file, then by row position, so results are deterministic.

    Raw reads return stored strings (used for key inference and value
    matching). Typed reads cast each column to its registered ColumnType.

    Thread safety:
        Uses thread-local storage for connections since DuckDB connections
        are not thread-safe and asyncio.to_thread() may use different threads.
    """

    def __init__(self, tables_path: Path, config: DualStoreConfig):
        self.tables_path = tables_path
        self.config = config
        self._local = threading.local()
        self._column_types: dict[str, dict[str, ColumnType]] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize DuckDB (marks as ready, connections created per-thread)."""
        self._initialized = True

    async def close(self) -> None:
        """Close the current thread's DuckDB connection."""
        self._initialized = False
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _get_conn(self) -> duckdb.DuckDBPyConnection:
        """Get thread-local DuckDB connection, creating if needed."""
        if not self._initialized:
            raise RuntimeError("DuckDB not initialized. Call initialize() first.")

        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = duckdb.connect()
            self._local.conn = conn
        return conn

    def register_table(self, table: str, column_types: dict[str, ColumnType]) -> None:
        """Remember column types for typed queries."""
        self._column_types[table] = dict(column_types)

    def forget_table(self, table: str) -> None:
        self._column_types.pop(table, None)

    # -------------------------------------------------------------------------
    # SQL helpers
    # -------------------------------------------------------------------------

    def _segment_glob(self, table: str, segment: str | None = None) -> str | None:
        """Glob over a table's segments (or one segment file), None if absent."""
        table_dir = self.tables_path / table
        pattern = segment or "*.parquet"
        if not table_dir.is_dir() or not any(table_dir.glob(pattern)):
            return None
        return str(table_dir / pattern).replace("'", "''")

    def _scan(self, glob: str) -> str:
        return f"read_parquet('{glob}', union_by_name=true)"

    def _data_columns(self, conn: duckdb.DuckDBPyConnection, glob: str) -> list[str]:
        conn.execute(f"SELECT * FROM {self._scan(glob)} LIMIT 0")
        return [desc[0] for desc in conn.description if desc[0] not in _META_COLUMNS]

    def _fetch_dicts(
        self,
        conn: duckdb.DuckDBPyConnection,
        sql: str,
        params: list[Any] | None = None,
    ) -> list[dict[str, Any]]:
        rows = conn.execute(sql, params or []).fetchall()
        col_names = [desc[0] for desc in conn.description]
        return [dict(zip(col_names, row)) for row in rows]

    # -------------------------------------------------------------------------
    # Raw reads
    # -------------------------------------------------------------------------

    async def read_rows(self, table: str, segment: str | None = None) -> list[dict[str, Any]]:
        """Raw rows in segment/row order, optionally restricted to one segment file."""
        def _query() -> list[dict[str, Any]]:
            glob = self._segment_glob(table, segment)
            if glob is None:
                return []
            conn = self._get_conn()
            columns = self._data_columns(conn, glob)
            select = ", ".join(_quote(c) for c in columns)
            sql = (
                f"SELECT {select} FROM {self._scan(glob)} {_ORDER_BY}"
            )
            return self._fetch_dicts(conn, sql)

        return await asyncio.to_thread(_query)

    async def table_columns(self, table: str) -> list[str]:
        """Column names unioned across segments (empty segments included)."""
        def _query() -> list[str]:
            glob = self._segment_glob(table)
            if glob is None:
                return []
            return self._data_columns(self._get_conn(), glob)

        return await asyncio.to_thread(_query)

    async def column_values(self, table: str, column: str) -> set[str]:
        """Distinct non-null raw values of a column."""
        def _query() -> set[str]:
            glob = self._segment_glob(table)
            if glob is None:
                return set()
            conn = self._get_conn()
            if column not in self._data_columns(conn, glob):
                return set()
            col = _quote(column)
            rows = conn.execute(
                f"SELECT DISTINCT {col} FROM {self._scan(glob)} WHERE {col} IS NOT NULL"
            ).fetchall()
            return {row[0] for row in rows}

        return await asyncio.to_thread(_query)

    async def duplicate_values(self, table: str, column: str) -> list[str]:
        """Raw values occurring more than once in a column."""
        def _query() -> list[str]:
            glob = self._segment_glob(table)
            if glob is None:
                return []
            conn = self._get_conn()
            if column not in self._data_columns(conn, glob):
                return []
            col = _quote(column)
            rows = conn.execute(
                f"SELECT {col} FROM {self._scan(glob)} WHERE {col} IS NOT NULL "
                f"GROUP BY {col} HAVING COUNT(*) > 1 ORDER BY {col}"
            ).fetchall()
            return [row[0] for row in rows]

        return await asyncio.to_thread(_query)

    async def count_rows(self, table: str) -> int:
        def _query() -> int:
            glob = self._segment_glob(table)
            if glob is None:
                return 0
            conn = self._get_conn()
            result = conn.execute(f"SELECT COUNT(*) FROM {self._scan(glob)}").fetchone()
            return int(result[0]) if result else 0

        return await asyncio.to_thread(_query)

    # -------------------------------------------------------------------------
    # Typed queries
    # -------------------------------------------------------------------------

    async def query(
        self,
        table: str,
        predicate: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Typed rows matching an equality predicate.

        Args:
            table: Table name
            predicate: {column: value}; None values match SQL NULL
            limit: Optional row limit

        Raises:
            KeyError: If the predicate names an unknown column
        """
        def _query() -> list[dict[str, Any]]:
            glob = self._segment_glob(table)
            if glob is None:
                return []
            conn = self._get_conn()
            columns = self._data_columns(conn, glob)
            types = self._column_types.get(table, {})
            select = ", ".join(_typed_expression(c, types.get(c)) for c in columns)
            meta = ", ".join(_quote(c) for c in _META_COLUMNS)
            typed = f"SELECT {select}, {meta} FROM {self._scan(glob)}"

            clauses: list[str] = []
            params: list[Any] = []
            for column, value in (predicate or {}).items():
                if column not in columns:
                    raise KeyError(f"Unknown column '{column}' in table '{table}'")
                if value is None:
                    clauses.append(f"{_quote(column)} IS NULL")
                else:
                    clauses.append(f"{_quote(column)} = ?")
                    params.append(value)

            outer = ", ".join(_quote(c) for c in columns)
            sql = f"SELECT {outer} FROM ({typed})"
            if clauses:
                sql += " WHERE " + " AND ".join(clauses)
            sql += f" {_ORDER_BY}"
            if limit is not None:
                sql += f" LIMIT {int(limit)}"
            return self._fetch_dicts(conn, sql, params)

        return await asyncio.to_thread(_query)
