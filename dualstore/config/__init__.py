"""
Configuration System

Configuration Priority (highest to lowest):
    1. Programmatic (passed to DualStoreConfig())
    2. Environment variables (DUALSTORE_* prefix)
    3. Config file (DualStoreConfig.from_file)
    4. Built-in defaults
"""

from dualstore.config.settings import DualStoreConfig

__all__ = ["DualStoreConfig"]
