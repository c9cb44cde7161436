"""
DualStoreConfig - Configuration Management

Sensible defaults with full override capability. Every heuristic threshold
used by the classifier, resolver and linker is a tunable here.

Example:
    >>> # Use defaults (reads from environment)
    >>> project = DualStoreProject("./project")

    >>> # Explicit configuration
    >>> config = DualStoreConfig(
    ...     classification_merged_ratio=0.2,
    ...     resolution_merge_overlap=0.8,
    ... )
    >>> project = DualStoreProject("./project", config=config)

    >>> # From config file
    >>> config = DualStoreConfig.from_file("./dualstore.toml")

Environment Variables:
    DUALSTORE_MERGED_RATIO - Merged-cell ratio above which tables split
    DUALSTORE_MERGE_OVERLAP - Column overlap flagging a merge candidate
    DUALSTORE_EMBEDDING_PROVIDER - Similarity fallback provider ("none", "openai")
    DUALSTORE_EMBEDDING_MODEL - Embedding model for the similarity fallback
    DUALSTORE_LOCK_TIMEOUT - Seconds to wait for project locks
    OPENAI_API_KEY - OpenAI API key (standard name)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

# TOML support: tomllib is built-in for Python 3.11+, use tomli for 3.10
try:
    import tomllib

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomllib.load(f))

except ImportError:
    import tomli

    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return cast(dict[str, Any], tomli.load(f))


class DualStoreConfig:
    """Configuration for dualstore."""

    # === Classification ===

    classification_long_text_max: int = 500
    """Max cell length marking a table as long-text"""

    classification_long_text_avg: float = 200.0
    """Average cell length above which long-text tables go fully unstructured"""

    classification_merged_ratio: float = 0.10
    """Merged-cell ratio above which a table is split across both stores"""

    classification_null_ratio: float = 0.30
    """Null ratio below which a short-text table is structured"""

    classification_short_text_avg: float = 100.0
    """Average cell length below which a table counts as short-text"""

    classification_paragraph_min_chars: int = 50
    """Paragraphs shorter than this are discarded as noise"""

    classification_paragraph_max_chars: int = 200
    """Paragraphs longer than this are unambiguously unstructured"""

    # === Key & Relationship Resolution ===

    resolution_merge_overlap: float = 0.70
    """Column-name overlap (Jaccard) above which tables are merge candidates"""

    # === Linking ===

    linking_max_linked_ids: int = 50
    """Maximum entity ids attached to a single chunk"""

    linking_min_name_length: int = 3
    """Display-name values shorter than this are ignored for name matching"""

    linking_similarity_threshold: float = 0.80
    """Minimum similarity score accepted from the similarity fallback"""

    linking_similarity_candidates: int = 200
    """Maximum candidate entities sent to the similarity fallback"""

    # === Chunking ===

    chunking_max_chars: int = 1500
    """Maximum characters per paragraph chunk within one section"""

    # === Storage ===

    storage_parquet_compression: str = "zstd"
    """Parquet compression: "zstd", "snappy", "gzip", "none" """

    storage_lock_timeout: float = 30.0
    """Seconds to wait for project/state locks"""

    # === Embedding (similarity fallback) ===

    embedding_provider: str = "none"
    """Embedding provider: "none" disables the similarity fallback, "openai" """

    embedding_model: str = "text-embedding-3-small"
    """Embedding model name"""

    openai_api_key: str | None = None

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Args:
            **kwargs: Override any configuration option
        """
        # Load from environment first
        self._load_from_env()

        # Apply explicit overrides
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration option: {key}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        import os

        self.openai_api_key = os.getenv("OPENAI_API_KEY")

        if ratio := os.getenv("DUALSTORE_MERGED_RATIO"):
            self.classification_merged_ratio = float(ratio)
        if overlap := os.getenv("DUALSTORE_MERGE_OVERLAP"):
            self.resolution_merge_overlap = float(overlap)
        if provider := os.getenv("DUALSTORE_EMBEDDING_PROVIDER"):
            self.embedding_provider = provider
        if model := os.getenv("DUALSTORE_EMBEDDING_MODEL"):
            self.embedding_model = model
        if timeout := os.getenv("DUALSTORE_LOCK_TIMEOUT"):
            self.storage_lock_timeout = float(timeout)

    @classmethod
    def from_file(cls, path: str | Path) -> "DualStoreConfig":
        """
        Load configuration from TOML file.

        Nested sections are flattened with their prefix.

        Example TOML:
            [classification]
            merged_ratio = 0.15

            [resolution]
            merge_overlap = 0.8

            [embedding]
            provider = "openai"

        Args:
            path: Path to TOML configuration file

        Returns:
            DualStoreConfig instance with values from file

        Raises:
            FileNotFoundError: If config file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)

        flat_config: dict[str, Any] = {}
        section_mapping = {
            "classification": "classification_",
            "resolution": "resolution_",
            "linking": "linking_",
            "chunking": "chunking_",
            "storage": "storage_",
            "embedding": "embedding_",
        }

        for section, prefix in section_mapping.items():
            if section in data:
                for key, value in data[section].items():
                    flat_config[f"{prefix}{key}"] = value

        # Also support flat top-level keys
        for key, value in data.items():
            if key not in section_mapping and not isinstance(value, dict):
                flat_config[key] = value

        return cls(**flat_config)

    @classmethod
    def from_env(cls) -> "DualStoreConfig":
        """Load configuration from environment variables only."""
        return cls()

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to TOML file.

        API keys are never written.

        Args:
            path: Path to write TOML configuration file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sections: dict[str, dict[str, str | int | float | bool | None]] = {
            "classification": {
                "long_text_max": self.classification_long_text_max,
                "long_text_avg": self.classification_long_text_avg,
                "merged_ratio": self.classification_merged_ratio,
                "null_ratio": self.classification_null_ratio,
                "short_text_avg": self.classification_short_text_avg,
                "paragraph_min_chars": self.classification_paragraph_min_chars,
                "paragraph_max_chars": self.classification_paragraph_max_chars,
            },
            "resolution": {
                "merge_overlap": self.resolution_merge_overlap,
            },
            "linking": {
                "max_linked_ids": self.linking_max_linked_ids,
                "min_name_length": self.linking_min_name_length,
                "similarity_threshold": self.linking_similarity_threshold,
                "similarity_candidates": self.linking_similarity_candidates,
            },
            "chunking": {
                "max_chars": self.chunking_max_chars,
            },
            "storage": {
                "parquet_compression": self.storage_parquet_compression,
                "lock_timeout": self.storage_lock_timeout,
            },
            "embedding": {
                "provider": self.embedding_provider,
                "model": self.embedding_model,
            },
        }

        lines = ["# dualstore configuration", ""]

        for section_name, section_values in sections.items():
            lines.append(f"[{section_name}]")
            for key, value in section_values.items():
                if isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, (int, float)):
                    lines.append(f"{key} = {value}")
            lines.append("")

        lines.extend([
            "# API keys should be set via environment variables:",
            "# OPENAI_API_KEY",
            "",
        ])

        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "DualStoreConfig":
        """Return new config with specified overrides."""
        new_config = DualStoreConfig.__new__(DualStoreConfig)
        for key in dir(self):
            if not key.startswith("_") and not callable(getattr(self, key)):
                setattr(new_config, key, getattr(self, key))
        for key, value in kwargs.items():
            setattr(new_config, key, value)
        return new_config
