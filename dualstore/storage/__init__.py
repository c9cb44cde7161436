"""
Storage Backends

Embedded storage using Parquet segments + DuckDB, plus the JSON state store.

Modules:
    base: Abstract dual-store interface
    parquet/: Segment storage implementation
    duckdb/: Relational queries
    state: Ingestion state persistence

Project Directory Structure:
    project/
    ├── state.json              # IngestionState
    ├── tables/<table>/*.parquet
    ├── corpus/*.parquet
    ├── .state.lock
    ├── .ingest.lock
    └── .store.lock

Design Principles:
    - Zero infrastructure (embedded databases)
    - Portable (a project is just a directory)
    - Rebuildable (every segment is owned by exactly one source)
"""

from dualstore.storage.base import StorageBackend
from dualstore.storage.parquet.backend import ParquetBackend
from dualstore.storage.state import StateStore

__all__ = [
    "StorageBackend",
    "ParquetBackend",
    "StateStore",
]
