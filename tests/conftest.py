"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

# Minimal environment for Settings()
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("WEBHOOK_SECRET", "test_webhook_secret_for_testing_only_0001")
os.environ.setdefault("BASE_URL", "https://example.com")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", "")

# Make the project root importable
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

WEBHOOK_SECRET = os.environ["WEBHOOK_SECRET"]
START_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock passed to services instead of utc_now."""

    def __init__(self, now: datetime = START_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock starting at START_TIME."""
    return FakeClock()


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.info = {}
    return session


@pytest.fixture
def mock_redis_client():
    """Mock Redis client for click velocity tests."""
    client = AsyncMock()
    client.incr = AsyncMock(return_value=1)
    client.expire = AsyncMock()
    return client
