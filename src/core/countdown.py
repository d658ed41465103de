"""Adaptive countdown clock for the reporting window.

Produces the "time left" string and a 0..1 progress value shown to the
user, and keeps them fresh with a tick whose interval tightens near the
window boundaries.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable

from src.data.models import ReportStatus

if TYPE_CHECKING:
    from src.core.status_config import StatusConfig
    from src.ports.scheduling_port import Clock

logger = logging.getLogger(__name__)

FINE_INTERVAL_SECONDS = 10.0
COARSE_INTERVAL_SECONDS = 30.0
CRITICAL_PERIOD = timedelta(hours=1)
PROGRESS_EPSILON = 0.01

_TERMINAL = frozenset({ReportStatus.SENT, ReportStatus.NOT_SENT})


class CountdownPhase(str, Enum):
    NEXT_DAY = "next_day"
    BEFORE_START = "before_start"
    ACTIVE = "active"
    ELAPSED = "elapsed"


@dataclass(frozen=True)
class Countdown:
    """One rendering of the countdown."""

    phase: CountdownPhase
    text: str
    progress: float


def _elapsed(start: datetime, end: datetime) -> timedelta:
    """Real elapsed time between two aware datetimes (DST-safe)."""
    return end.astimezone(timezone.utc) - start.astimezone(timezone.utc)


def format_duration(delta: timedelta) -> str:
    """Format as HH:MM:SS, clamping negatives to zero."""
    total = max(int(delta.total_seconds()), 0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def compute_countdown(
    now: datetime,
    window_start: datetime,
    window_end: datetime,
    status: ReportStatus,
) -> Countdown:
    """Compute countdown text and progress for the given moment.

    Once the day's report is settled (sent or not sent) the clock counts
    down to tomorrow's window instead of today's.
    """
    if status in _TERMINAL:
        next_start = window_start + timedelta(days=1)
        return Countdown(
            CountdownPhase.NEXT_DAY,
            "Until start: " + format_duration(_elapsed(now, next_start)),
            0.0,
        )

    if now < window_start:
        return Countdown(
            CountdownPhase.BEFORE_START,
            "Until start: " + format_duration(_elapsed(now, window_start)),
            0.0,
        )

    if now < window_end:
        total = _elapsed(window_start, window_end).total_seconds()
        done = _elapsed(window_start, now).total_seconds()
        progress = min(max(done / total, 0.0), 1.0) if total > 0 else 1.0
        return Countdown(
            CountdownPhase.ACTIVE,
            "Until end: " + format_duration(_elapsed(now, window_end)),
            progress,
        )

    return Countdown(CountdownPhase.ELAPSED, "Reporting window is over", 1.0)


def tick_interval(now: datetime, window_start: datetime, window_end: datetime) -> float:
    """Seconds until the next tick: fine near a boundary, coarse otherwise."""
    for boundary in (window_start, window_end):
        remaining = _elapsed(now, boundary)
        if timedelta(0) < remaining < CRITICAL_PERIOD:
            return FINE_INTERVAL_SECONDS
    return COARSE_INTERVAL_SECONDS


class AdaptiveClock:
    """Periodically republishes the countdown for the current status.

    ``on_update`` receives ``(text, progress)`` only when either actually
    changed.
    """

    def __init__(
        self,
        config: StatusConfig,
        clock: Clock,
        on_update: Callable[[str, float], None] | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._on_update = on_update
        self._status = ReportStatus.NOT_STARTED
        self._text = ""
        self._progress = 0.0
        self._task: asyncio.Task | None = None
        self._generation = 0

    @property
    def text(self) -> str:
        return self._text

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def status(self) -> ReportStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def current(self) -> Countdown:
        """Countdown for this moment, without publishing it."""
        now = self._config.localize(self._clock.now())
        start, end = self._config.window_bounds(now)
        return compute_countdown(now, start, end, self._status)

    def refresh(self) -> bool:
        """Recompute and publish if something visible changed.

        Returns True when a new value was published.
        """
        countdown = self.current()
        if (
            countdown.text == self._text
            and abs(countdown.progress - self._progress) <= PROGRESS_EPSILON
        ):
            return False

        self._text = countdown.text
        self._progress = countdown.progress
        if self._on_update is not None:
            try:
                self._on_update(self._text, self._progress)
            except Exception as exc:
                logger.error("Countdown listener failed: %s", exc)
        return True

    def update_status(self, status: ReportStatus) -> None:
        """Switch the countdown target for a new status and refresh right away."""
        self._status = status
        self.refresh()

    def next_interval(self) -> float:
        now = self._config.localize(self._clock.now())
        start, end = self._config.window_bounds(now)
        return tick_interval(now, start, end)

    def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        self.stop()
        self.refresh()
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation), name="adaptive_clock",
        )
        logger.info("Countdown clock started")

    def stop(self) -> None:
        """Stop ticking. No tick publishes after this returns."""
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("Countdown clock stopped")

    async def _run(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self.next_interval())
            if generation != self._generation:
                return
            self.refresh()
