"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from app.core.config import Settings


class TestYamlSource:
    def test_values_from_yaml_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "portfolios.yaml"
        config_file.write_text("MARKET_DATA_CACHE_TTL_SECONDS: 42\nSNAPSHOT_SCHEDULE: '@every 6h'\n")
        monkeypatch.setenv("APP_CONFIG_FILE", str(config_file))

        settings = Settings()
        assert settings.MARKET_DATA_CACHE_TTL_SECONDS == 42
        assert settings.SNAPSHOT_SCHEDULE == "@every 6h"

    def test_environment_wins_over_yaml(self, tmp_path, monkeypatch):
        config_file = tmp_path / "portfolios.yaml"
        config_file.write_text("LOG_LEVEL: WARNING\n")
        monkeypatch.setenv("APP_CONFIG_FILE", str(config_file))
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        assert Settings().LOG_LEVEL == "DEBUG"


class TestValidators:
    def test_postgres_url_gets_async_driver(self):
        settings = Settings(DATABASE_URL="postgres://u:p@db:5432/portfolios")
        assert settings.DATABASE_URL == "postgresql+asyncpg://u:p@db:5432/portfolios"
        assert not settings.is_sqlite

    def test_short_secret_is_refused(self):
        with pytest.raises(ValidationError):
            Settings(SECRET_KEY="too-short")

    def test_weak_bcrypt_rounds_are_refused(self):
        with pytest.raises(ValidationError):
            Settings(BCRYPT_ROUNDS=4)

    def test_cors_origins_from_string(self):
        settings = Settings(CORS_ORIGINS="https://a.example, https://b.example")
        assert settings.CORS_ORIGINS == ["https://a.example", "https://b.example"]
