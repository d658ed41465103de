"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like temp DBs and a controllable clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("REPORT_START_HOUR", "8")
os.environ.setdefault("REPORT_END_HOUR", "22")

import zoneinfo
from datetime import datetime

import pytest

TZ = zoneinfo.ZoneInfo("UTC")


class FakeClock:
    """Clock port whose time only moves when a test says so."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now


def at(hour: int, minute: int = 0, day: int = 15) -> datetime:
    """A moment on 2025-01-<day> in the test timezone."""
    return datetime(2025, 1, day, hour, minute, tzinfo=TZ)


@pytest.fixture
def config():
    """Window 08:00–22:00 UTC with every feature flag on."""
    from src.core.status_config import StatusConfig
    return StatusConfig(start_hour=8, end_hour=22, timezone=TZ)


@pytest.fixture
def clock():
    """FakeClock starting at 2025-01-15 10:00 UTC."""
    return FakeClock(at(10))


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_reports.db")


@pytest.fixture
def report_db(tmp_db_path):
    """Return a ReportDB instance backed by a temp file."""
    from src.data.db import ReportDB
    return ReportDB(db_path=tmp_db_path, tz=TZ)


@pytest.fixture
def kv_db(tmp_db_path):
    """Return a KeyValueDB instance backed by a temp file."""
    from src.data.db import KeyValueDB
    return KeyValueDB(db_path=tmp_db_path)
