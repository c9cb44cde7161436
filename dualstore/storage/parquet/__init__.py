"""
Parquet Storage Backend

Primary storage for structured tables and the unstructured corpus.

Modules:
    backend: ParquetBackend class

Segment Schemas:
    tables/<table>/<source-slug>.parquet:
        one string column per normalized table column

    corpus/<source-slug>.parquet:
        id, source_file, section, content, position
"""

from dualstore.storage.parquet.backend import ParquetBackend

__all__ = ["ParquetBackend"]
