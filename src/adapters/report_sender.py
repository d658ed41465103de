"""Report sender — implements SendAction on top of NotificationPort.

Sends today's report to the report chat and marks it published, then
catches up on reports from earlier days that never went out. Failures are
logged and reported through the return value, never raised.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import TYPE_CHECKING

from src.ports.notification_port import NotificationError

if TYPE_CHECKING:
    from src.core.status_config import StatusConfig
    from src.data.db import ReportDB
    from src.data.models import ReportRecord
    from src.ports.notification_port import NotificationPort
    from src.ports.scheduling_port import Clock

logger = logging.getLogger(__name__)

NO_REPORT_TEXT = "No report was filed today."


def format_report(report: ReportRecord, backlog: bool = False) -> str:
    """Plain-text message for a report."""
    day = report.date.date().isoformat()
    header = f"📅 Report for {day}" + (" (late)" if backlog else "")
    body = report.text.strip() or "(empty report)"
    return f"{header}\n\n{body}"


class TelegramReportSender:
    """SendAction that delivers reports through a NotificationPort."""

    def __init__(
        self,
        db: ReportDB,
        notifier: NotificationPort,
        chat_id: int,
        config: StatusConfig,
        clock: Clock,
    ) -> None:
        self._db = db
        self._notifier = notifier
        self._chat_id = chat_id
        self._config = config
        self._clock = clock

    async def perform(self) -> bool:
        """Send today's report plus any unsent backlog. Returns overall success."""
        if not self._chat_id:
            logger.error("No report chat configured, cannot auto-send")
            return False

        try:
            ok = await self._send_today()
            ok = await self._send_backlog() and ok
        except sqlite3.Error as exc:
            logger.error("Auto-send aborted, report store unavailable: %s", exc)
            return False
        return ok

    async def send_report(self, report: ReportRecord, backlog: bool = False) -> bool:
        """Send one report and mark it published on success."""
        try:
            await self._notifier.send_message(self._chat_id, format_report(report, backlog))
        except NotificationError as exc:
            logger.warning("Report #%d not sent: %s", report.id, exc)
            return False
        await asyncio.to_thread(self._db.set_published, report.id, True)
        logger.info("Report #%d sent to chat %d", report.id, self._chat_id)
        return True

    async def _send_today(self) -> bool:
        today = self._config.day_of(self._clock.now())
        report = await asyncio.to_thread(self._db.get_for_day, today)

        if report is None:
            try:
                await self._notifier.send_message(self._chat_id, NO_REPORT_TEXT)
            except NotificationError as exc:
                logger.warning("No-report notice not sent: %s", exc)
                return False
            logger.info("No report for %s, notice sent", today)
            return True

        if report.published:
            logger.info("Report for %s already sent, skipping", today)
            return True

        return await self.send_report(report)

    async def _send_backlog(self) -> bool:
        today = self._config.day_of(self._clock.now())
        pending = await asyncio.to_thread(self._db.list_unpublished_before, today)
        ok = True
        for report in pending:
            ok = await self.send_report(report, backlog=True) and ok
        if pending:
            logger.info("Backlog: %d earlier report(s) processed", len(pending))
        return ok
