"""Wall clock implementation of the Clock port."""

from __future__ import annotations

import zoneinfo
from datetime import datetime, timezone


class SystemClock:
    """Current time, expressed in the given timezone."""

    def __init__(self, tz: zoneinfo.ZoneInfo | None = None) -> None:
        self._tz = tz

    def now(self) -> datetime:
        if self._tz is None:
            return datetime.now(timezone.utc)
        return datetime.now(self._tz)
