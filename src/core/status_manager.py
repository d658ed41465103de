"""Report status orchestrator.

Owns the in-memory (status, force unlock, current day) triple and keeps it
consistent with the persisted copy, today's reports and the calendar. Every
trigger (bot command, periodic tick, window boundary, auto-send completion)
funnels into ``recompute()``, which is serialized so one read-decide-persist-
notify sequence never interleaves with another.

The persisted copy is shared with other processes (the widget may flip the
force-unlock flag), so it is re-read at the top of every recompute.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING, Callable

from src.data.models import ReportStatus, TodayReports
from src.ports.storage_port import StorageError

if TYPE_CHECKING:
    from src.core.countdown import AdaptiveClock
    from src.core.status_factory import StatusFactory
    from src.ports.scheduling_port import Clock, NotificationRescheduler, WidgetRefresher
    from src.ports.storage_port import PersistentStatusStore, PostsProvider

logger = logging.getLogger(__name__)

StatusListener = Callable[[ReportStatus], None]


class StatusManager:
    """Single writer of the report status state."""

    def __init__(
        self,
        factory: StatusFactory,
        posts: PostsProvider,
        store: PersistentStatusStore,
        clock: Clock,
        countdown: AdaptiveClock | None = None,
        rescheduler: NotificationRescheduler | None = None,
        widgets: WidgetRefresher | None = None,
    ) -> None:
        self._factory = factory
        self._config = factory.config
        self._posts = posts
        self._store = store
        self._clock = clock
        self._countdown = countdown
        self._rescheduler = rescheduler
        self._widgets = widgets

        self._status = ReportStatus.NOT_STARTED
        self._force_unlock = False
        self._current_day = self._today()
        self._reports_loaded = False
        self._lock = asyncio.Lock()
        self._listeners: list[StatusListener] = []

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> ReportStatus:
        return self._status

    @property
    def force_unlock(self) -> bool:
        return self._force_unlock

    @property
    def current_day(self) -> date:
        return self._current_day

    @property
    def is_editable(self) -> bool:
        return self._factory.is_editable(self._status)

    def add_listener(self, listener: StatusListener) -> None:
        """Subscribe to status change events."""
        self._listeners.append(listener)

    def mark_reports_loaded(self) -> None:
        """Signal that the posts store has finished its initial load."""
        self._reports_loaded = True

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Load persisted state; missing or unreadable values fall back to first-run defaults."""
        async with self._lock:
            try:
                self._status = await self._store.get_status()
            except StorageError as exc:
                logger.warning("Could not load report status, using default: %s", exc)
                self._status = ReportStatus.NOT_STARTED
            try:
                self._force_unlock = await self._store.get_force_unlock()
            except StorageError as exc:
                logger.warning("Could not load force unlock flag, using default: %s", exc)
                self._force_unlock = False
            self._current_day = self._today()
            if self._countdown is not None:
                self._countdown.update_status(self._status)
            logger.info(
                "Status loaded: %s (force_unlock=%s, day=%s)",
                self._status.value, self._force_unlock, self._current_day,
            )

    async def recompute(self) -> ReportStatus:
        """Re-derive the status from the calendar, storage and today's reports."""
        async with self._lock:
            await self._check_new_day()

            unlock_changed = await self._sync_force_unlock()

            now = self._clock.now()
            is_period_active = self._factory.is_period_active(now)
            reports = await self._fetch_today_reports()

            if reports is None:
                # Reports unavailable: keep what we have.
                if unlock_changed:
                    self._notify(self._status)
                return self._status

            if not reports.has_regular and not self._reports_loaded:
                # Cold start: state loaded before the report store did.
                if self._force_unlock or is_period_active:
                    new_status = ReportStatus.NOT_STARTED
                else:
                    new_status = ReportStatus.NOT_CREATED
            elif self._force_unlock and not reports.is_published:
                new_status = ReportStatus.NOT_STARTED
            else:
                if self._force_unlock:
                    # The unlocked report went out again; the override is spent.
                    logger.info("Unlocked report published, clearing force unlock")
                    self._force_unlock = False
                    await self._persist_force_unlock(False)
                    unlock_changed = True
                new_status = self._factory.decide(
                    has_report=reports.has_regular,
                    is_published=reports.is_published,
                    is_period_active=is_period_active,
                    force_unlock=False,
                )

            if new_status != self._status:
                logger.info("Report status: %s -> %s", self._status.value, new_status.value)
                self._status = new_status
                await self._persist_status(new_status)
                self._notify(new_status)
            elif unlock_changed:
                self._notify(new_status)

            return self._status

    async def unlock_report_creation(self) -> bool:
        """Reopen today's report for editing without deleting anything.

        Returns False when unlocking is disabled or already in effect.
        """
        if not self._config.enable_force_unlock:
            logger.info("Force unlock is disabled by configuration")
            return False

        async with self._lock:
            await self._check_new_day()
            if self._force_unlock:
                return False

            self._force_unlock = True
            reports = await self._fetch_today_reports()
            if reports is not None and reports.is_published:
                try:
                    await self._posts.set_published(reports.regular.id, False)
                    logger.info("Report #%d reopened for editing", reports.regular.id)
                except StorageError as exc:
                    logger.error("Failed to unpublish report #%d: %s", reports.regular.id, exc)

            await self._persist_force_unlock(True)
            self._status = ReportStatus.NOT_STARTED
            await self._persist_status(ReportStatus.NOT_STARTED)
            self._notify(ReportStatus.NOT_STARTED)
            return True

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _today(self) -> date:
        return self._config.day_of(self._clock.now())

    async def _check_new_day(self) -> None:
        today = self._today()
        if today == self._current_day:
            return

        logger.info("New day detected: %s -> %s", self._current_day, today)
        self._force_unlock = False
        await self._persist_force_unlock(False)
        self._current_day = today

        if self._factory.should_reset_on_new_day(self._status):
            self._status = ReportStatus.NOT_STARTED
            await self._persist_status(ReportStatus.NOT_STARTED)
            self._notify(ReportStatus.NOT_STARTED)
        else:
            self._reload_widgets()

    async def _sync_force_unlock(self) -> bool:
        """Adopt the persisted force-unlock flag; return True if it differed."""
        try:
            persisted = await self._store.get_force_unlock()
        except StorageError as exc:
            logger.warning("Could not re-read force unlock flag: %s", exc)
            return False
        if persisted == self._force_unlock:
            return False
        logger.info("Force unlock changed externally: %s -> %s", self._force_unlock, persisted)
        self._force_unlock = persisted
        return True

    async def _fetch_today_reports(self) -> TodayReports | None:
        try:
            return await self._posts.get_today_reports(self._today())
        except StorageError as exc:
            logger.error("Failed to fetch today's reports: %s", exc)
            return None

    async def _persist_status(self, status: ReportStatus) -> None:
        try:
            await self._store.save_status(status)
        except StorageError as exc:
            logger.warning("Failed to persist status %s: %s", status.value, exc)

    async def _persist_force_unlock(self, value: bool) -> None:
        try:
            await self._store.save_force_unlock(value)
        except StorageError as exc:
            logger.warning("Failed to persist force unlock=%s: %s", value, exc)

    def _notify(self, status: ReportStatus) -> None:
        if self._countdown is not None:
            self._countdown.update_status(status)
        if self._rescheduler is not None:
            try:
                self._rescheduler.schedule_if_needed()
            except Exception as exc:
                logger.error("Reminder rescheduling failed: %s", exc)
        self._reload_widgets()
        for listener in self._listeners:
            try:
                listener(status)
            except Exception as exc:
                logger.error("Status listener failed: %s", exc)

    def _reload_widgets(self) -> None:
        if self._widgets is None:
            return
        try:
            self._widgets.reload_all()
        except Exception as exc:
            logger.error("Widget refresh failed: %s", exc)
