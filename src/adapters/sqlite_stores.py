"""SQLite adapters — implement the storage ports on top of ReportDB/KeyValueDB.

The DB classes are synchronous; calls are wrapped with asyncio.to_thread so
the event loop never blocks on disk I/O. sqlite3 errors surface as
StorageError.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date, datetime

from src.data.db import KeyValueDB, ReportDB
from src.data.models import AutoSendSettings, ReportStatus, TodayReports
from src.data.status_migration import needs_migration, normalize_status
from src.ports.storage_port import StorageError

logger = logging.getLogger(__name__)

# Persisted keys
KEY_REPORT_STATUS = "reportStatus"
KEY_FORCE_UNLOCK = "forceUnlock"
KEY_AUTO_SEND_ENABLED = "autoSendEnabled"
KEY_AUTO_SEND_TIME = "autoSendTime"
KEY_LAST_AUTO_SEND_STATUS = "lastAutoSendStatus"
KEY_LAST_AUTO_SEND_DATE = "lastAutoSendDate"


class SqlitePostsProvider:
    """PostsProvider backed by ReportDB."""

    def __init__(self, db: ReportDB) -> None:
        self._db = db

    async def get_today_reports(self, day: date) -> TodayReports:
        try:
            regular = await asyncio.to_thread(self._db.get_for_day, day)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read reports for {day}: {exc}") from exc
        return TodayReports(regular=regular)

    async def set_published(self, report_id: int, value: bool) -> None:
        try:
            updated = await asyncio.to_thread(self._db.set_published, report_id, value)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to update report {report_id}: {exc}") from exc
        if not updated:
            raise StorageError(f"Report {report_id} not found")


class SqliteStatusStore:
    """PersistentStatusStore backed by KeyValueDB.

    A legacy ``"done"`` value is rewritten to ``"sent"`` the first time it
    is read.
    """

    def __init__(self, kv: KeyValueDB) -> None:
        self._kv = kv

    async def get_status(self) -> ReportStatus:
        try:
            raw = await asyncio.to_thread(self._kv.get, KEY_REPORT_STATUS)
            status = normalize_status(raw)
            if needs_migration(raw):
                await asyncio.to_thread(self._kv.set, KEY_REPORT_STATUS, status.value)
                logger.info("Migrated report status from %r to %r", raw, status.value)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read report status: {exc}") from exc
        return status

    async def save_status(self, status: ReportStatus) -> None:
        status = normalize_status(status.value)
        try:
            await asyncio.to_thread(self._kv.set, KEY_REPORT_STATUS, status.value)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save report status: {exc}") from exc

    async def get_force_unlock(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self._kv.get, KEY_FORCE_UNLOCK, False))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read force unlock flag: {exc}") from exc

    async def save_force_unlock(self, value: bool) -> None:
        try:
            await asyncio.to_thread(self._kv.set, KEY_FORCE_UNLOCK, bool(value))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save force unlock flag: {exc}") from exc


class SqliteAutoSendSettingsStore:
    """AutoSendSettingsStore backed by KeyValueDB."""

    def __init__(self, kv: KeyValueDB, defaults: AutoSendSettings | None = None) -> None:
        self._kv = kv
        self._defaults = defaults or AutoSendSettings()

    def _read(self) -> AutoSendSettings:
        enabled = self._kv.get(KEY_AUTO_SEND_ENABLED, self._defaults.enabled)
        raw_time = self._kv.get(KEY_AUTO_SEND_TIME)
        last_status = self._kv.get(KEY_LAST_AUTO_SEND_STATUS)
        raw_date = self._kv.get(KEY_LAST_AUTO_SEND_DATE)

        send_time = self._defaults.time
        if isinstance(raw_time, str):
            try:
                send_time = datetime.strptime(raw_time, "%H:%M").time()
            except ValueError:
                logger.warning("Ignoring malformed auto-send time %r", raw_time)

        last_date = None
        if isinstance(raw_date, str):
            try:
                last_date = date.fromisoformat(raw_date)
            except ValueError:
                logger.warning("Ignoring malformed last auto-send date %r", raw_date)

        return AutoSendSettings(
            enabled=bool(enabled),
            time=send_time,
            last_status=last_status if isinstance(last_status, str) else None,
            last_send_date=last_date,
        )

    def _write(self, settings: AutoSendSettings) -> None:
        self._kv.set(KEY_AUTO_SEND_ENABLED, settings.enabled)
        self._kv.set(KEY_AUTO_SEND_TIME, settings.time.strftime("%H:%M"))
        self._kv.set(KEY_LAST_AUTO_SEND_STATUS, settings.last_status)
        self._kv.set(
            KEY_LAST_AUTO_SEND_DATE,
            settings.last_send_date.isoformat() if settings.last_send_date else None,
        )

    async def load(self) -> AutoSendSettings:
        try:
            return await asyncio.to_thread(self._read)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load auto-send settings: {exc}") from exc

    async def save(self, settings: AutoSendSettings) -> None:
        try:
            await asyncio.to_thread(self._write, settings)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save auto-send settings: {exc}") from exc
