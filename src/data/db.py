"""
Daily Report Assistant — Report and key/value storage.

Reports and the status engine's persisted keys live in one SQLite file so
that any process with access to it (the bot, a widget renderer) sees the
same state.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import zoneinfo
from datetime import date, datetime
from pathlib import Path

from src.data.models import ReportRecord

logger = logging.getLogger(__name__)


class ReportDB:
    """SQLite-backed storage for daily reports (one per calendar day)."""

    def __init__(self, db_path: str, tz: zoneinfo.ZoneInfo | None = None) -> None:
        self._db_path = db_path
        self._tz = tz or zoneinfo.ZoneInfo("UTC")
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the reports table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reports (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    day         TEXT    NOT NULL,
                    created_at  TEXT    NOT NULL,
                    text        TEXT    NOT NULL DEFAULT '',
                    published   INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reports_day ON reports (day)"
            )
        logger.debug("Reports table initialized at %s", self._db_path)

    def _row_to_report(self, row: sqlite3.Row) -> ReportRecord:
        created = datetime.fromisoformat(row["created_at"])
        if created.tzinfo is None:
            created = created.replace(tzinfo=self._tz)
        return ReportRecord(
            id=row["id"],
            date=created,
            published=bool(row["published"]),
            text=row["text"],
        )

    def _day_of(self, moment: datetime) -> str:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=self._tz)
        return moment.astimezone(self._tz).date().isoformat()

    def save_draft(self, text: str, now: datetime) -> ReportRecord:
        """Create today's report or replace the text of the existing one.

        Saving a draft never changes the published flag.
        """
        day = self._day_of(now)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reports WHERE day = ? ORDER BY id LIMIT 1", (day,)
            ).fetchone()
            if row is None:
                cursor = conn.execute(
                    "INSERT INTO reports (day, created_at, text, published) VALUES (?, ?, ?, 0)",
                    (day, now.isoformat(), text),
                )
                report_id = cursor.lastrowid
                logger.info("Report #%d created for %s", report_id, day)
            else:
                report_id = row["id"]
                conn.execute(
                    "UPDATE reports SET text = ? WHERE id = ?", (text, report_id),
                )
                logger.info("Report #%d updated for %s", report_id, day)
            row = conn.execute(
                "SELECT * FROM reports WHERE id = ?", (report_id,)
            ).fetchone()
        return self._row_to_report(row)

    def get_for_day(self, day: date) -> ReportRecord | None:
        """Fetch the report filed on a given calendar day."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM reports WHERE day = ? ORDER BY id LIMIT 1",
                (day.isoformat(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_report(row)

    def set_published(self, report_id: int, value: bool) -> bool:
        """Flip the published flag. Returns False if the report doesn't exist."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE reports SET published = ? WHERE id = ?",
                (int(value), report_id),
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Report #%d published=%s", report_id, value)
        return updated

    def list_unpublished_before(self, day: date) -> list[ReportRecord]:
        """Unpublished reports from days before ``day``, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM reports WHERE published = 0 AND day < ? ORDER BY day, id",
                (day.isoformat(),),
            ).fetchall()
        return [self._row_to_report(r) for r in rows]


class KeyValueDB:
    """SQLite-backed key/value store with JSON-encoded values."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key    TEXT PRIMARY KEY,
                    value  TEXT NOT NULL
                )
            """)
        logger.debug("Key/value table initialized at %s", self._db_path)

    def get(self, key: str, default: object = None) -> object:
        """Return the stored value, or ``default`` if missing or undecodable."""
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable value for key %r", key)
            return default

    def set(self, key: str, value: object) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, json.dumps(value)),
            )

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        return cursor.rowcount > 0
