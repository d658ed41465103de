"""Auto-send scheduler.

Arms a one-shot wake at the configured auto-send time, sends the day's
report when it fires, and immediately arms the next cycle. A rejected
wake registration is retried locally after a fixed delay until it sticks
or the feature is turned off.

Send band: from the auto-send time until the end of the reporting window.
Inside the band the wake is due immediately; outside it, the next wake is
the band start (today or tomorrow).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from datetime import time as dt_time
from typing import TYPE_CHECKING, Awaitable, Callable

from src.data.models import AutoSendSettings
from src.ports.scheduling_port import WakeRegistrationError
from src.ports.storage_port import StorageError

if TYPE_CHECKING:
    from src.core.status_config import StatusConfig
    from src.ports.scheduling_port import (
        BackgroundWakeRegistrar,
        Clock,
        SendAction,
        WidgetRefresher,
    )
    from src.ports.storage_port import AutoSendSettingsStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_LEAD_TIME = timedelta(minutes=20)
DEFAULT_RETRY_DELAY_SECONDS = 60.0


class AutoSendScheduler:
    """Self-renewing auto-send cycle."""

    def __init__(
        self,
        config: StatusConfig,
        store: AutoSendSettingsStore,
        registrar: BackgroundWakeRegistrar,
        send_action: SendAction,
        clock: Clock,
        refresh_status: Callable[[], Awaitable[object]] | None = None,
        widgets: WidgetRefresher | None = None,
        min_lead_time: timedelta = DEFAULT_MIN_LEAD_TIME,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        defaults: AutoSendSettings | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._registrar = registrar
        self._send_action = send_action
        self._clock = clock
        self._refresh_status = refresh_status
        self._widgets = widgets
        self._min_lead_time = min_lead_time
        self._retry_delay = retry_delay
        self._settings = defaults or AutoSendSettings()
        self._retry_task: asyncio.Task | None = None
        self._wake_lock = asyncio.Lock()

    @property
    def settings(self) -> AutoSendSettings:
        return self._settings

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def retry_pending(self) -> bool:
        return self._retry_task is not None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def load(self) -> AutoSendSettings:
        """Load persisted settings; on failure keep the current defaults."""
        try:
            self._settings = await self._store.load()
        except StorageError as exc:
            logger.warning("Could not load auto-send settings, using defaults: %s", exc)
        logger.info(
            "Auto-send settings loaded: enabled=%s time=%s",
            self._settings.enabled, self._settings.time.strftime("%H:%M"),
        )
        return self._settings

    async def set_enabled(self, enabled: bool) -> None:
        if enabled == self._settings.enabled:
            return
        await self._update(enabled=enabled)
        if enabled:
            self.schedule_if_needed()
        else:
            self.cancel()
        logger.info("Auto-send %s", "enabled" if enabled else "disabled")

    async def set_time(self, send_time: dt_time) -> None:
        await self._update(time=send_time.replace(second=0, microsecond=0, tzinfo=None))
        self.schedule_if_needed()
        logger.info("Auto-send time set to %s", send_time.strftime("%H:%M"))

    async def _update(self, **changes: object) -> None:
        self._settings = replace(self._settings, **changes)
        try:
            await self._store.save(self._settings)
        except StorageError as exc:
            logger.warning("Failed to persist auto-send settings: %s", exc)
        if self._widgets is not None:
            try:
                self._widgets.reload_all()
            except Exception as exc:
                logger.error("Widget refresh failed: %s", exc)

    # ------------------------------------------------------------------
    # Wake computation
    # ------------------------------------------------------------------

    def compute_next_wake(self, now: datetime) -> datetime:
        """When the next auto-send should happen, relative to ``now``."""
        local = self._config.localize(now)
        send_at = self._settings.time
        band_start = local.replace(
            hour=send_at.hour, minute=send_at.minute, second=0, microsecond=0,
        )
        _, band_end = self._config.window_bounds(local)
        tomorrow = band_start + timedelta(days=1)

        if self._settings.last_send_date == local.date():
            return tomorrow
        if local < band_start:
            return band_start
        if local < band_end:
            return local
        return tomorrow

    def earliest_wake(self, now: datetime) -> datetime:
        """Next wake, pushed out to respect the minimum lead time."""
        local = self._config.localize(now)
        return max(self.compute_next_wake(local), local + self._min_lead_time)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def schedule_if_needed(self) -> datetime | None:
        """Replace any pending wake with a fresh one. Returns the requested time."""
        self.cancel()
        if not self._settings.enabled:
            logger.info("Auto-send is disabled, skipping scheduling")
            return None
        wake_at = self.earliest_wake(self._clock.now())
        self.register_wake(wake_at)
        return wake_at

    def register_wake(self, at: datetime) -> bool:
        """Register a wake; on rejection schedule a local retry."""
        try:
            self._registrar.register(at)
        except WakeRegistrationError as exc:
            logger.error("Failed to register auto-send wake for %s: %s", at.isoformat(), exc)
            self._schedule_retry()
            return False
        logger.info("Auto-send wake registered for %s", at.isoformat())
        return True

    def cancel(self) -> None:
        """Drop the pending wake and any local retry. Nothing fires after this returns."""
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None
        self._registrar.cancel_all()

    def _schedule_retry(self) -> None:
        if self._retry_task is not None:
            self._retry_task.cancel()
        self._retry_task = asyncio.get_running_loop().create_task(
            self._retry_after_delay(), name="auto_send_retry",
        )

    async def _retry_after_delay(self) -> None:
        await asyncio.sleep(self._retry_delay)
        self._retry_task = None
        if not self._settings.enabled:
            return
        logger.info("Retrying auto-send wake registration")
        self.schedule_if_needed()

    # ------------------------------------------------------------------
    # Wake handling
    # ------------------------------------------------------------------

    async def on_wake(self) -> None:
        """Handle a fired wake: send, record the outcome, arm the next cycle."""
        async with self._wake_lock:
            if not self._settings.enabled:
                logger.info("Auto-send wake fired while disabled, ignoring")
                return

            logger.info("Auto-send wake fired, sending report")
            success = await self._send_action.perform()
            now = self._config.localize(self._clock.now())
            stamp = now.strftime("%Y-%m-%d %H:%M")
            if success:
                await self._update(last_status=f"Last sent: {stamp}", last_send_date=now.date())
            else:
                logger.warning("Auto-send failed, will retry on the next wake")
                await self._update(last_status=f"Send failed: {stamp}")

            if self._refresh_status is not None:
                try:
                    await self._refresh_status()
                except Exception as exc:
                    logger.error("Status refresh after auto-send failed: %s", exc)

            self.schedule_if_needed()
