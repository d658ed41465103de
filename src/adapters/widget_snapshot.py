"""Widget snapshot adapter — implements WidgetRefresher.

Writes the persisted status keys plus the live countdown to a small JSON
file that an external widget renderer can poll without touching the
database. Inside a running event loop the write goes to a worker thread so
callers never block on disk I/O.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from src.adapters.sqlite_stores import (
    KEY_AUTO_SEND_ENABLED,
    KEY_AUTO_SEND_TIME,
    KEY_FORCE_UNLOCK,
    KEY_LAST_AUTO_SEND_STATUS,
    KEY_REPORT_STATUS,
)
from src.data.db import KeyValueDB
from src.data.status_migration import normalize_status

logger = logging.getLogger(__name__)


class WidgetSnapshotWriter:
    """Dump persisted state to JSON on every refresh request."""

    def __init__(self, kv: KeyValueDB, path: str) -> None:
        self._kv = kv
        self._path = Path(path)
        self._countdown_text = ""
        self._countdown_progress = 0.0
        self._write_lock = threading.Lock()
        self._pending: set[asyncio.Task] = set()

    def snapshot(self) -> dict:
        status = normalize_status(self._kv.get(KEY_REPORT_STATUS))
        return {
            "status": status.value,
            "status_text": status.display_name,
            "countdown_text": self._countdown_text,
            "countdown_progress": round(self._countdown_progress, 4),
            "force_unlock": bool(self._kv.get(KEY_FORCE_UNLOCK, False)),
            "auto_send_enabled": bool(self._kv.get(KEY_AUTO_SEND_ENABLED, False)),
            "auto_send_time": self._kv.get(KEY_AUTO_SEND_TIME),
            "last_auto_send_status": self._kv.get(KEY_LAST_AUTO_SEND_STATUS),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

    def update_countdown(self, text: str, progress: float) -> None:
        """AdaptiveClock listener: remember the countdown and republish."""
        self._countdown_text = text
        self._countdown_progress = progress
        self.reload_all()

    def reload_all(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside the bot's loop (startup, scripts): write inline.
            self.write_snapshot()
            return
        task = loop.create_task(asyncio.to_thread(self.write_snapshot))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_idle(self) -> None:
        """Wait for writes dispatched by reload_all to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    def write_snapshot(self) -> None:
        """Write the snapshot file atomically; failures are logged."""
        with self._write_lock:
            try:
                data = self.snapshot()
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp = self._path.with_suffix(self._path.suffix + ".tmp")
                tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
                tmp.replace(self._path)
            except (OSError, sqlite3.Error) as exc:
                logger.warning("Widget snapshot not written: %s", exc)
                return
        logger.debug("Widget snapshot written to %s", self._path)
