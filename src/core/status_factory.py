"""Report status decisions — pure business logic.

Maps (report exists, published, window active, force unlock) to a
ReportStatus and answers the two policy questions the rest of the engine
asks about a status: does it reset at midnight, and may the user edit.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from datetime import datetime

from src.core.status_config import StatusConfig
from src.data.models import ReportStatus

_RESET_ON_NEW_DAY = frozenset({
    ReportStatus.SENT,
    ReportStatus.NOT_CREATED,
    ReportStatus.NOT_SENT,
    ReportStatus.DONE,
})

_EDITABLE = frozenset({ReportStatus.NOT_STARTED, ReportStatus.IN_PROGRESS})


class StatusFactory:
    """Decides report status from the current inputs."""

    def __init__(self, config: StatusConfig) -> None:
        self._config = config

    @property
    def config(self) -> StatusConfig:
        return self._config

    def decide(
        self,
        has_report: bool,
        is_published: bool,
        is_period_active: bool,
        force_unlock: bool = False,
    ) -> ReportStatus:
        """Return the status for the given inputs.

        Force unlock wins over everything else, regardless of whether a
        report exists.
        """
        if self._config.enable_force_unlock and force_unlock:
            return ReportStatus.NOT_STARTED

        if has_report:
            if is_published:
                return ReportStatus.SENT
            return ReportStatus.IN_PROGRESS if is_period_active else ReportStatus.NOT_SENT

        return ReportStatus.NOT_STARTED if is_period_active else ReportStatus.NOT_CREATED

    def is_period_active(self, now: datetime) -> bool:
        """Check if ``now`` falls within today's reporting window."""
        start, end = self._config.window_bounds(now)
        return start <= self._config.localize(now) < end

    def should_reset_on_new_day(self, status: ReportStatus) -> bool:
        """Terminal-for-the-day statuses reset at rollover; in-flight ones do not."""
        if not self._config.auto_reset_on_new_day:
            return False
        return status in _RESET_ON_NEW_DAY

    @staticmethod
    def is_editable(status: ReportStatus) -> bool:
        return status in _EDITABLE
