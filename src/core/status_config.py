"""Reporting window and status-engine feature flags.

Immutable for the process lifetime; tests build their own instances.
"""

from __future__ import annotations

import zoneinfo
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.config import Settings


@dataclass(frozen=True)
class StatusConfig:
    """Reporting window plus the status engine's feature flags.

    The window never wraps midnight: ``start_hour`` must be strictly
    before ``end_hour`` on the same calendar day.
    """

    start_hour: int = 8
    end_hour: int = 22
    timezone: zoneinfo.ZoneInfo = zoneinfo.ZoneInfo("UTC")
    enable_force_unlock: bool = True
    auto_reset_on_new_day: bool = True
    enable_notifications: bool = True

    def __post_init__(self) -> None:
        for name in ("start_hour", "end_hour"):
            value = getattr(self, name)
            if not 0 <= value <= 23:
                raise ValueError(f"{name} must be within 0..23, got {value}")
        if self.start_hour >= self.end_hour:
            raise ValueError(
                f"start_hour ({self.start_hour}) must be before end_hour ({self.end_hour})"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> StatusConfig:
        """Create from Settings fields."""
        return cls(
            start_hour=settings.REPORT_START_HOUR,
            end_hour=settings.REPORT_END_HOUR,
            timezone=zoneinfo.ZoneInfo(settings.TIMEZONE),
            enable_force_unlock=settings.ENABLE_FORCE_UNLOCK,
            auto_reset_on_new_day=settings.AUTO_RESET_ON_NEW_DAY,
            enable_notifications=settings.NOTIFICATIONS_ENABLED,
        )

    def localize(self, now: datetime) -> datetime:
        """Express ``now`` in the configured timezone (naive values are taken as local)."""
        if now.tzinfo is None:
            return now.replace(tzinfo=self.timezone)
        return now.astimezone(self.timezone)

    def day_of(self, now: datetime) -> date:
        """Calendar day of ``now`` in the configured timezone."""
        return self.localize(now).date()

    def window_bounds(self, now: datetime) -> tuple[datetime, datetime]:
        """Start and end of the reporting window on ``now``'s calendar day."""
        local = self.localize(now)
        start = local.replace(hour=self.start_hour, minute=0, second=0, microsecond=0)
        end = local.replace(hour=self.end_hour, minute=0, second=0, microsecond=0)
        return start, end

    def next_window_start(self, now: datetime) -> datetime:
        """Start of tomorrow's reporting window."""
        start, _ = self.window_bounds(now)
        return start + timedelta(days=1)
