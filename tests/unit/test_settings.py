"""Unit tests for settings validation."""

import pytest
from pydantic import ValidationError

from affiliates.config.settings import Settings

BASE = {
    "database_url": "sqlite+aiosqlite://",
    "webhook_secret": "x" * 40,
    "base_url": "https://example.com/",
    "environment": "test",
}


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **{**BASE, **overrides})


class TestSettings:
    """Tests for Settings."""

    def test_plain_postgres_url_gets_async_driver(self):
        settings = make_settings(database_url="postgresql://u:p@db/affiliates")
        assert settings.database_url == "postgresql+asyncpg://u:p@db/affiliates"

    def test_unsupported_database_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(database_url="mysql://u:p@db/affiliates")

    def test_base_url_trailing_slash_removed(self):
        assert make_settings().base_url == "https://example.com"

    def test_relative_base_url_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(base_url="example.com")

    def test_short_webhook_secret_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(webhook_secret="short")

    def test_production_requires_long_secret(self):
        with pytest.raises(ValidationError, match="WEBHOOK_SECRET"):
            make_settings(environment="production", webhook_secret="y" * 20)

    def test_production_rejects_debug(self):
        with pytest.raises(ValidationError, match="DEBUG"):
            make_settings(environment="production", debug=True)

    def test_defaults(self):
        settings = make_settings()
        assert settings.default_payout_term == "NET-30"
        assert settings.default_cookie_duration_days == 30
        assert settings.click_velocity_backend == "database"
