"""
Convenience Functions

Top-level functions for common operations without explicit DualStoreProject
instantiation. These are designed for quick scripts and REPL usage.

Example:
    >>> from dualstore import ingest_file, query
    >>> ingest_file("customers.csv", project="./project")
    >>> rows = query("customers", {"id": 101}, project="./project")
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dualstore.types import IngestResult


def ingest_file(
    path: str | Path,
    *,
    project: str | Path,
    **kwargs: Any,
) -> "IngestResult":
    """
    Ingest one file into a project.

    Args:
        path: File to ingest
        project: Project directory
        **kwargs: Additional arguments passed to DualStoreProject.ingest_file()
    """
    from dualstore.api.project import DualStoreProject

    return DualStoreProject(project).ingest_file_sync(path, **kwargs)


def ingest_directory(
    path: str | Path,
    *,
    project: str | Path,
    **kwargs: Any,
) -> list["IngestResult"]:
    """Ingest every supported file under a directory."""
    from dualstore.api.project import DualStoreProject

    return DualStoreProject(project).ingest_directory_sync(path, **kwargs)


def query(
    table: str,
    predicate: dict[str, Any] | None = None,
    *,
    project: str | Path,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Typed rows of a table matching an equality predicate."""
    from dualstore.api.project import DualStoreProject

    return DualStoreProject(project, create=False).query_sync(table, predicate, limit)
