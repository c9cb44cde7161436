"""
Public API

Modules:
    project: DualStoreProject, the primary entry point
    convenience: One-call helpers for scripts and the REPL
"""

from dualstore.api.project import DualStoreProject

__all__ = ["DualStoreProject"]
