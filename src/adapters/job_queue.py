"""python-telegram-bot JobQueue adapters.

JobQueueWakeRegistrar implements BackgroundWakeRegistrar: the auto-send
wake is a one-shot job. JobQueueReminderScheduler implements
NotificationRescheduler: reminders are daily jobs inside the window.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from datetime import time as dt_time
from typing import TYPE_CHECKING, Awaitable, Callable

from telegram.ext import ContextTypes, JobQueue

from src.core.clock import SystemClock
from src.core.reminders import REMINDER_TEXT, reminder_hours
from src.ports.notification_port import NotificationError
from src.ports.scheduling_port import WakeRegistrationError

if TYPE_CHECKING:
    from src.core.status_config import StatusConfig
    from src.data.models import ReportStatus
    from src.ports.notification_port import NotificationPort
    from src.ports.scheduling_port import Clock

logger = logging.getLogger(__name__)

WAKE_JOB_NAME = "auto_send_wake"
REMINDER_JOB_PREFIX = "report_reminder_"
CATCH_UP_JOB_NAME = f"{REMINDER_JOB_PREFIX}catch_up"
REMINDER_CATCH_UP = timedelta(minutes=5)


class JobQueueWakeRegistrar:
    """One-shot auto-send wake on the bot's job queue."""

    def __init__(self, job_queue: JobQueue | None) -> None:
        self._job_queue = job_queue
        self._handler: Callable[[], Awaitable[None]] | None = None

    def set_handler(self, handler: Callable[[], Awaitable[None]]) -> None:
        """Coroutine function to run when the wake fires."""
        self._handler = handler

    def register(self, at: datetime) -> None:
        if self._job_queue is None:
            raise WakeRegistrationError("Job queue is not available")
        if self._handler is None:
            raise WakeRegistrationError("No wake handler configured")
        try:
            self._job_queue.run_once(self._fire, when=at, name=WAKE_JOB_NAME)
        except Exception as exc:
            raise WakeRegistrationError(f"Job queue rejected wake at {at}: {exc}") from exc

    def cancel_all(self) -> None:
        if self._job_queue is None:
            return
        for job in self._job_queue.get_jobs_by_name(WAKE_JOB_NAME):
            job.schedule_removal()

    async def _fire(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        if self._handler is not None:
            await self._handler()


class JobQueueReminderScheduler:
    """Daily report reminders, rebuilt whenever the status changes.

    A rebuild that happens just after a reminder hour (the window-start
    recompute lands right after ``start_hour:00``) sends that hour's
    reminder at once instead of losing it until tomorrow.
    """

    def __init__(
        self,
        job_queue: JobQueue | None,
        config: StatusConfig,
        notifier: NotificationPort,
        chat_id: int,
        current_status: Callable[[], ReportStatus],
        is_editable: Callable[[ReportStatus], bool],
        mode: str = "hourly",
        clock: Clock | None = None,
    ) -> None:
        self._job_queue = job_queue
        self._config = config
        self._notifier = notifier
        self._chat_id = chat_id
        self._current_status = current_status
        self._is_editable = is_editable
        self._mode = mode
        self._clock = clock or SystemClock(config.timezone)
        self._last_reminded: tuple[date, int] | None = None

    def cancel_all(self) -> None:
        if self._job_queue is None:
            return
        for job in self._job_queue.jobs():
            if job.name and job.name.startswith(REMINDER_JOB_PREFIX):
                job.schedule_removal()

    def schedule_if_needed(self) -> None:
        self.cancel_all()
        if self._job_queue is None or not self._config.enable_notifications:
            return

        status = self._current_status()
        if not self._is_editable(status):
            logger.info("Report status %s needs no reminders", status.value)
            return

        hours = reminder_hours(self._mode, self._config.start_hour, self._config.end_hour)
        for hour in hours:
            self._job_queue.run_daily(
                self._remind,
                time=dt_time(hour=hour, minute=0, tzinfo=self._config.timezone),
                name=f"{REMINDER_JOB_PREFIX}{hour}",
            )
        logger.info("Scheduled %d report reminder(s) (%s)", len(hours), self._mode)
        self._catch_up(hours)

    def _catch_up(self, hours: list[int]) -> None:
        now = self._config.localize(self._clock.now())
        if now.hour not in hours or self._last_reminded == (now.date(), now.hour):
            return
        if now - now.replace(minute=0, second=0, microsecond=0) >= REMINDER_CATCH_UP:
            return
        logger.info("Sending the %02d:00 reminder that was just missed", now.hour)
        self._job_queue.run_once(self._remind, when=0, name=CATCH_UP_JOB_NAME)

    async def _remind(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        status = self._current_status()
        if not self._is_editable(status):
            return
        now = self._config.localize(self._clock.now())
        slot = (now.date(), now.hour)
        if slot == self._last_reminded:
            return
        self._last_reminded = slot
        try:
            await self._notifier.send_message(self._chat_id, REMINDER_TEXT)
        except NotificationError as exc:
            logger.warning("Reminder not delivered: %s", exc)
