"""
Settings Tests

Tests for environment-driven configuration and validation.
"""
from pathlib import Path

import pytest

from secop.config.constants import DEFAULT_BATCH_SIZE
from secop.config.settings import ImportSettings
from secop.errors import ConfigurationError


class TestDefaults:
    """Test derived defaults."""

    def test_checkpoint_beside_database(self, tmp_path):
        settings = ImportSettings(db_path=tmp_path / "secop.db")
        assert settings.checkpoint_path == tmp_path / "secop.checkpoint.json"

    def test_explicit_checkpoint_kept(self, tmp_path):
        settings = ImportSettings(db_path=tmp_path / "secop.db", checkpoint_path=tmp_path / "cp.json")
        assert settings.checkpoint_path == tmp_path / "cp.json"


class TestValidation:
    """Invalid values are configuration errors."""

    @pytest.mark.parametrize("field", ["batch_size", "pool_size", "flush_threshold", "cache_size"])
    def test_non_positive_sizes(self, field):
        with pytest.raises(ConfigurationError):
            ImportSettings(**{field: 0})

    def test_negative_interval(self):
        with pytest.raises(ConfigurationError):
            ImportSettings(checkpoint_interval=-1)


class TestFromEnv:
    """Test SECOP_* environment variables."""

    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SECOP_DATABASE_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("SECOP_BATCH_SIZE", "750")
        monkeypatch.setenv("SECOP_CHECKPOINT_INTERVAL", "3000")
        settings = ImportSettings.from_env()
        assert settings.db_path == tmp_path / "env.db"
        assert settings.batch_size == 750
        assert settings.checkpoint_interval == 3000

    def test_blank_variable_uses_default(self, monkeypatch):
        monkeypatch.setenv("SECOP_BATCH_SIZE", " ")
        assert ImportSettings.from_env().batch_size == DEFAULT_BATCH_SIZE

    def test_non_integer_rejected(self, monkeypatch):
        monkeypatch.setenv("SECOP_POOL_SIZE", "four")
        with pytest.raises(ConfigurationError):
            ImportSettings.from_env()


class TestOverride:
    """Test command-line overrides."""

    def test_none_values_ignored(self, tmp_path):
        settings = ImportSettings(db_path=tmp_path / "a.db", batch_size=100)
        assert settings.override(batch_size=None).batch_size == 100

    def test_new_database_moves_derived_checkpoint(self, tmp_path):
        settings = ImportSettings(db_path=tmp_path / "a.db")
        moved = settings.override(db_path=Path(tmp_path / "b.db"))
        assert moved.checkpoint_path == tmp_path / "b.checkpoint.json"

    def test_new_database_keeps_explicit_checkpoint(self, tmp_path):
        settings = ImportSettings(db_path=tmp_path / "a.db", checkpoint_path=tmp_path / "cp.json")
        moved = settings.override(db_path=tmp_path / "b.db")
        assert moved.checkpoint_path == tmp_path / "cp.json"
