"""Scheduling ports — clock, wake registration, send action, fan-out targets."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class WakeRegistrationError(Exception):
    """Raised when the host scheduler refuses a wake request."""


class Clock(Protocol):
    """Source of the current time. All window arithmetic goes through it."""

    def now(self) -> datetime: ...


class BackgroundWakeRegistrar(Protocol):
    """Registers a one-shot wake with the host scheduler."""

    def register(self, at: datetime) -> None: ...

    def cancel_all(self) -> None: ...


class SendAction(Protocol):
    """Sends today's report. Never raises; returns whether it succeeded."""

    async def perform(self) -> bool: ...


class NotificationRescheduler(Protocol):
    """Fire-and-forget request to rebuild user-facing reminders."""

    def schedule_if_needed(self) -> None: ...


class WidgetRefresher(Protocol):
    """Fire-and-forget request to refresh external views of persisted state."""

    def reload_all(self) -> None: ...
