"""Storage ports — reports, persisted status, and auto-send settings.

The status engine only talks to these protocols. Implementations may share
their backing store with other processes, so callers must treat anything
they read as a snapshot that can go stale.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol

from src.data.models import AutoSendSettings, ReportStatus, TodayReports


class StorageError(Exception):
    """Raised when a persistence operation fails."""


class PostsProvider(Protocol):
    """Read today's reports and flip their published flag."""

    async def get_today_reports(self, day: date) -> TodayReports: ...

    async def set_published(self, report_id: int, value: bool) -> None: ...


class PersistentStatusStore(Protocol):
    """Persisted report status and force-unlock flag.

    ``get_status`` must transparently migrate the legacy ``"done"`` value.
    """

    async def get_status(self) -> ReportStatus: ...

    async def save_status(self, status: ReportStatus) -> None: ...

    async def get_force_unlock(self) -> bool: ...

    async def save_force_unlock(self, value: bool) -> None: ...


class AutoSendSettingsStore(Protocol):
    """Persisted auto-send preferences."""

    async def load(self) -> AutoSendSettings: ...

    async def save(self, settings: AutoSendSettings) -> None: ...
