"""
dualstore - Document Classification & Dual-Store Ingestion

Routes extracted document content into a queryable structured store, a
retrieval corpus, or both; infers primary and foreign keys across sources;
and links corpus chunks back to the structured rows they talk about.

Example:
    >>> from dualstore import DualStoreProject
    >>> project = DualStoreProject("./project")
    >>> result = await project.ingest_file("customers.csv")
    >>> rows = await project.query("customers", {"id": 101})
    >>> chunks = await project.chunks_for_entity("customers", 101)

Main Classes:
    DualStoreProject: Primary entry point for all operations
    DualStoreConfig: Configuration management
"""

__version__ = "0.1.0"


# Public API - lazy imports to avoid loading storage dependencies on import
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "DualStoreProject":
        from dualstore.api.project import DualStoreProject
        return DualStoreProject

    if name == "DualStoreConfig":
        from dualstore.config.settings import DualStoreConfig
        return DualStoreConfig

    # Convenience functions
    if name in ("ingest_file", "ingest_directory", "query"):
        from dualstore.api import convenience
        return getattr(convenience, name)

    # Types
    if name in ("ContentBlock", "Chunk", "TableSpec", "IngestionState", "IngestResult"):
        from dualstore import types
        return getattr(types, name)

    raise AttributeError(f"module 'dualstore' has no attribute {name!r}")


__all__ = [
    # Main classes
    "DualStoreProject",
    "DualStoreConfig",

    # Convenience functions
    "ingest_file",
    "ingest_directory",
    "query",

    # Types
    "ContentBlock",
    "Chunk",
    "TableSpec",
    "IngestionState",
    "IngestResult",

    # Version
    "__version__",
]
