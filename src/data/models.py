"""
Daily Report Assistant — Data Models.

The daily report lives in SQLite; its lifecycle status is derived from the
report plus the reporting window and is persisted separately so other
processes (the widget) can read it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from datetime import time as dt_time
from enum import Enum


class ReportStatus(str, Enum):
    """Lifecycle status of today's report.

    DONE is a legacy value kept only so old stored data still decodes;
    it is normalized to SENT on read and never computed.
    """

    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    SENT = "sent"
    NOT_CREATED = "notCreated"
    NOT_SENT = "notSent"
    DONE = "done"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ReportStatus.NOT_STARTED: "Fill in your report",
    ReportStatus.IN_PROGRESS: "Report in progress...",
    ReportStatus.SENT: "Report sent",
    ReportStatus.NOT_CREATED: "Report not created",
    ReportStatus.NOT_SENT: "Report not sent",
    ReportStatus.DONE: "Completed",
}


@dataclass
class ReportRecord:
    """A daily report as stored by the posts store."""

    id: int
    date: datetime            # tz-aware creation time
    published: bool = False
    text: str = ""


@dataclass
class TodayReports:
    """What the status engine needs to know about a single day's reports."""

    regular: ReportRecord | None = None

    @property
    def has_regular(self) -> bool:
        return self.regular is not None

    @property
    def is_published(self) -> bool:
        return self.regular is not None and self.regular.published


@dataclass
class AutoSendSettings:
    """Persisted auto-send preferences and bookkeeping."""

    enabled: bool = False
    time: dt_time = dt_time(21, 0)
    last_status: str | None = None
    last_send_date: date | None = None  # day of the last successful auto-send
