"""Tests for partydeco.core.config: configuration management.

Tests cover:
- Default values for all configuration fields.
- Environment variable overrides via the PARTYDECO_ prefix and the plain
  OPENROUTER_ provider variables.
- Automatic database directory creation on initialisation.
- Pydantic validation constraints (port range, log level literals, etc.).
"""

from __future__ import annotations

from pathlib import Path

import pytest

from partydeco.core.config import (
    DEFAULT_OPENROUTER_API_URL,
    DEFAULT_OPENROUTER_MODEL_ID,
    PartyDecoConfig,
)

_PROVIDER_ENV = (
    "OPENROUTER_API_KEY",
    "OPENROUTER_MODEL_ID",
    "OPENROUTER_SITE_URL",
    "OPENROUTER_APP_NAME",
    "PARTYDECO_OPENROUTER_API_KEY",
    "PARTYDECO_OPENROUTER_MODEL_ID",
    "PARTYDECO_SERVER_PORT",
    "PARTYDECO_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove provider and server variables that could leak into defaults."""
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigDefaults:
    """Verify that PartyDecoConfig provides sensible defaults."""

    def test_provider_defaults(self, clean_env, temp_dir: Path):
        """Provider settings should default to no key and the stock model."""
        cfg = PartyDecoConfig(_env_file=None, database_path=temp_dir / "party.db")
        assert cfg.openrouter_api_key is None
        assert cfg.openrouter_model_id == DEFAULT_OPENROUTER_MODEL_ID
        assert cfg.openrouter_api_url == DEFAULT_OPENROUTER_API_URL
        assert cfg.openrouter_site_url is None
        assert cfg.openrouter_app_name is None

    def test_default_timeout(self, test_config: PartyDecoConfig):
        """Default provider timeout should be 120 seconds."""
        assert test_config.request_timeout == 120.0

    def test_default_server_settings(self, clean_env, temp_dir: Path):
        """Server host, port and log level should have defaults."""
        cfg = PartyDecoConfig(_env_file=None, database_path=temp_dir / "party.db")
        assert cfg.server_host == "0.0.0.0"
        assert cfg.server_port == 7860
        assert cfg.log_level == "INFO"

    def test_default_database_path(self, clean_env, monkeypatch):
        """The database path should default to party.db in the working directory."""
        monkeypatch.delenv("PARTYDECO_DATABASE_PATH", raising=False)
        cfg = PartyDecoConfig(_env_file=None)
        assert cfg.database_path == Path("party.db")


class TestConfigEnvironment:
    """Verify environment variable loading."""

    def test_plain_openrouter_variables(self, clean_env, temp_dir: Path):
        """Unprefixed OPENROUTER_* variables should be read."""
        clean_env.setenv("OPENROUTER_API_KEY", "sk-env")
        clean_env.setenv("OPENROUTER_MODEL_ID", "vendor/other-model")
        clean_env.setenv("OPENROUTER_APP_NAME", "Party Studio")

        cfg = PartyDecoConfig(_env_file=None, database_path=temp_dir / "party.db")
        assert cfg.openrouter_api_key == "sk-env"
        assert cfg.openrouter_model_id == "vendor/other-model"
        assert cfg.openrouter_app_name == "Party Studio"

    def test_prefixed_api_key(self, clean_env, temp_dir: Path):
        """The PARTYDECO_ prefixed API key should also be accepted."""
        clean_env.setenv("PARTYDECO_OPENROUTER_API_KEY", "sk-prefixed")
        cfg = PartyDecoConfig(_env_file=None, database_path=temp_dir / "party.db")
        assert cfg.openrouter_api_key == "sk-prefixed"

    def test_prefixed_server_port(self, clean_env, temp_dir: Path):
        """PARTYDECO_SERVER_PORT should override the port."""
        clean_env.setenv("PARTYDECO_SERVER_PORT", "8123")
        cfg = PartyDecoConfig(_env_file=None, database_path=temp_dir / "party.db")
        assert cfg.server_port == 8123

    def test_database_path_from_env(self, clean_env, temp_dir: Path):
        """PARTYDECO_DATABASE_PATH should override the database path."""
        db_path = temp_dir / "env" / "party.db"
        clean_env.setenv("PARTYDECO_DATABASE_PATH", str(db_path))
        cfg = PartyDecoConfig(_env_file=None)
        assert cfg.database_path == db_path

    def test_env_file_is_read(self, clean_env, temp_dir: Path):
        """Values in a .env file should be loaded."""
        env_file = temp_dir / ".env"
        env_file.write_text("OPENROUTER_API_KEY=sk-from-file\nPARTYDECO_LOG_LEVEL=DEBUG\n")
        cfg = PartyDecoConfig(_env_file=env_file, database_path=temp_dir / "party.db")
        assert cfg.openrouter_api_key == "sk-from-file"
        assert cfg.log_level == "DEBUG"


class TestConfigDirectoryCreation:
    """Verify that PartyDecoConfig creates the database directory."""

    def test_database_parent_created(self, test_config: PartyDecoConfig):
        """The database directory should be created on init."""
        assert test_config.database_path.parent.is_dir()

    def test_creates_nested_directories(self, temp_dir: Path):
        """Config should create deeply nested directories via parents=True."""
        db_path = temp_dir / "a" / "b" / "c" / "party.db"
        PartyDecoConfig(_env_file=None, database_path=db_path)
        assert db_path.parent.is_dir()
        assert not db_path.exists()


class TestConfigValidation:
    """Verify Pydantic validation constraints on config fields."""

    @pytest.mark.parametrize("port", [80, 70000])
    def test_invalid_port(self, temp_dir: Path, port: int):
        """Out-of-range ports should be rejected."""
        with pytest.raises(Exception):
            PartyDecoConfig(_env_file=None, server_port=port, database_path=temp_dir / "p.db")

    def test_invalid_log_level(self, temp_dir: Path):
        """Unknown log levels should be rejected."""
        with pytest.raises(Exception):
            PartyDecoConfig(_env_file=None, log_level="LOUD", database_path=temp_dir / "p.db")

    def test_non_positive_timeout(self, temp_dir: Path):
        """A zero request timeout should be rejected."""
        with pytest.raises(Exception):
            PartyDecoConfig(_env_file=None, request_timeout=0, database_path=temp_dir / "p.db")
