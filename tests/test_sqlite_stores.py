"""Tests for src.adapters.sqlite_stores — storage ports over SQLite."""

import sqlite3
from datetime import date, time
from unittest.mock import MagicMock

import pytest

from conftest import at
from src.adapters.sqlite_stores import (
    KEY_AUTO_SEND_TIME,
    KEY_FORCE_UNLOCK,
    KEY_REPORT_STATUS,
    SqliteAutoSendSettingsStore,
    SqlitePostsProvider,
    SqliteStatusStore,
)
from src.data.models import AutoSendSettings, ReportStatus
from src.ports.storage_port import StorageError

TODAY = date(2025, 1, 15)


# ---------------------------------------------------------------------------
# SqlitePostsProvider
# ---------------------------------------------------------------------------


class TestPostsProvider:
    @pytest.mark.asyncio
    async def test_no_report(self, report_db):
        reports = await SqlitePostsProvider(report_db).get_today_reports(TODAY)
        assert reports.has_regular is False
        assert reports.is_published is False

    @pytest.mark.asyncio
    async def test_draft_report(self, report_db):
        report_db.save_draft("x", at(10))
        reports = await SqlitePostsProvider(report_db).get_today_reports(TODAY)
        assert reports.has_regular is True
        assert reports.is_published is False

    @pytest.mark.asyncio
    async def test_set_published(self, report_db):
        record = report_db.save_draft("x", at(10))
        provider = SqlitePostsProvider(report_db)

        await provider.set_published(record.id, True)

        assert (await provider.get_today_reports(TODAY)).is_published is True

    @pytest.mark.asyncio
    async def test_set_published_unknown_raises(self, report_db):
        with pytest.raises(StorageError):
            await SqlitePostsProvider(report_db).set_published(404, True)

    @pytest.mark.asyncio
    async def test_sqlite_error_becomes_storage_error(self):
        db = MagicMock()
        db.get_for_day.side_effect = sqlite3.OperationalError("locked")
        with pytest.raises(StorageError):
            await SqlitePostsProvider(db).get_today_reports(TODAY)


# ---------------------------------------------------------------------------
# SqliteStatusStore
# ---------------------------------------------------------------------------


class TestStatusStore:
    @pytest.mark.asyncio
    async def test_defaults_on_first_run(self, kv_db):
        store = SqliteStatusStore(kv_db)
        assert await store.get_status() == ReportStatus.NOT_STARTED
        assert await store.get_force_unlock() is False

    @pytest.mark.asyncio
    async def test_status_round_trip(self, kv_db):
        store = SqliteStatusStore(kv_db)
        await store.save_status(ReportStatus.NOT_SENT)
        assert await store.get_status() == ReportStatus.NOT_SENT
        assert kv_db.get(KEY_REPORT_STATUS) == "notSent"

    @pytest.mark.asyncio
    async def test_legacy_done_is_migrated_on_read(self, kv_db):
        kv_db.set(KEY_REPORT_STATUS, "done")
        store = SqliteStatusStore(kv_db)

        assert await store.get_status() == ReportStatus.SENT
        assert kv_db.get(KEY_REPORT_STATUS) == "sent"

    @pytest.mark.asyncio
    async def test_saving_done_writes_sent(self, kv_db):
        await SqliteStatusStore(kv_db).save_status(ReportStatus.DONE)
        assert kv_db.get(KEY_REPORT_STATUS) == "sent"

    @pytest.mark.asyncio
    async def test_unknown_value_reads_as_not_started(self, kv_db):
        kv_db.set(KEY_REPORT_STATUS, "archived")
        assert await SqliteStatusStore(kv_db).get_status() == ReportStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_force_unlock_round_trip(self, kv_db):
        store = SqliteStatusStore(kv_db)
        await store.save_force_unlock(True)
        assert await store.get_force_unlock() is True
        assert kv_db.get(KEY_FORCE_UNLOCK) is True

    @pytest.mark.asyncio
    async def test_sqlite_error_becomes_storage_error(self):
        kv = MagicMock()
        kv.set.side_effect = sqlite3.OperationalError("read-only")
        with pytest.raises(StorageError):
            await SqliteStatusStore(kv).save_force_unlock(True)


# ---------------------------------------------------------------------------
# SqliteAutoSendSettingsStore
# ---------------------------------------------------------------------------


class TestAutoSendSettingsStore:
    @pytest.mark.asyncio
    async def test_defaults_when_empty(self, kv_db):
        defaults = AutoSendSettings(enabled=True, time=time(20, 30))
        settings = await SqliteAutoSendSettingsStore(kv_db, defaults).load()
        assert settings.enabled is True
        assert settings.time == time(20, 30)
        assert settings.last_status is None
        assert settings.last_send_date is None

    @pytest.mark.asyncio
    async def test_save_and_load(self, kv_db):
        store = SqliteAutoSendSettingsStore(kv_db)
        saved = AutoSendSettings(
            enabled=True,
            time=time(21, 15),
            last_status="Last sent: 2025-01-15 21:15",
            last_send_date=TODAY,
        )

        await store.save(saved)

        assert await store.load() == saved
        assert kv_db.get(KEY_AUTO_SEND_TIME) == "21:15"

    @pytest.mark.asyncio
    async def test_malformed_time_falls_back(self, kv_db):
        kv_db.set(KEY_AUTO_SEND_TIME, "quarter past nine")
        settings = await SqliteAutoSendSettingsStore(kv_db).load()
        assert settings.time == time(21, 0)
