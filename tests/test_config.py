"""Tests for DualStoreConfig."""

import pytest

from dualstore.config import DualStoreConfig


class TestDualStoreConfig:
    """Tests for configuration loading and overrides."""

    def test_defaults(self, monkeypatch):
        """Defaults match the documented thresholds."""
        monkeypatch.delenv("DUALSTORE_MERGED_RATIO", raising=False)
        monkeypatch.delenv("DUALSTORE_MERGE_OVERLAP", raising=False)
        monkeypatch.delenv("DUALSTORE_EMBEDDING_PROVIDER", raising=False)
        config = DualStoreConfig()

        assert config.classification_merged_ratio == 0.10
        assert config.classification_long_text_max == 500
        assert config.classification_long_text_avg == 200.0
        assert config.classification_null_ratio == 0.30
        assert config.classification_short_text_avg == 100.0
        assert config.resolution_merge_overlap == 0.70
        assert config.embedding_provider == "none"

    def test_explicit_overrides(self):
        """Keyword arguments override defaults."""
        config = DualStoreConfig(classification_merged_ratio=0.2, chunking_max_chars=800)
        assert config.classification_merged_ratio == 0.2
        assert config.chunking_max_chars == 800

    def test_unknown_option_raises(self):
        """Unknown options are rejected."""
        with pytest.raises(ValueError, match="Unknown configuration option"):
            DualStoreConfig(not_an_option=1)

    def test_environment(self, monkeypatch):
        """Environment variables are read before explicit overrides."""
        monkeypatch.setenv("DUALSTORE_MERGED_RATIO", "0.25")
        monkeypatch.setenv("DUALSTORE_LOCK_TIMEOUT", "5")

        config = DualStoreConfig()
        assert config.classification_merged_ratio == 0.25
        assert config.storage_lock_timeout == 5.0

        assert DualStoreConfig(classification_merged_ratio=0.3).classification_merged_ratio == 0.3

    def test_file_round_trip(self, tmp_path):
        """Configuration written to TOML loads back identically."""
        path = tmp_path / "dualstore.toml"
        original = DualStoreConfig(
            classification_merged_ratio=0.15,
            resolution_merge_overlap=0.8,
            storage_parquet_compression="snappy",
        )
        original.to_file(path)

        loaded = DualStoreConfig.from_file(path)

        assert loaded.classification_merged_ratio == 0.15
        assert loaded.resolution_merge_overlap == 0.8
        assert loaded.storage_parquet_compression == "snappy"

    def test_missing_file(self, tmp_path):
        """A missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            DualStoreConfig.from_file(tmp_path / "missing.toml")

    def test_with_overrides_copies(self):
        """with_overrides leaves the original untouched."""
        base = DualStoreConfig(linking_similarity_threshold=0.8)
        changed = base.with_overrides(linking_similarity_threshold=0.9)

        assert base.linking_similarity_threshold == 0.8
        assert changed.linking_similarity_threshold == 0.9
        assert changed.resolution_merge_overlap == base.resolution_merge_overlap
