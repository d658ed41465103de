"""Reminder planning — pure business logic.

Decides at which hours the user gets nudged to fill in the daily report.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

MODE_HOURLY = "hourly"
MODE_TWICE = "twice"
REMINDER_MODES = (MODE_HOURLY, MODE_TWICE)

_EVENING_OFFSET_HOURS = 2

REMINDER_TEXT = "Time for your daily report! How did your day go?"


def reminder_hours(mode: str, start_hour: int, end_hour: int) -> list[int]:
    """Return the hours (0..23) at which reminders fire.

    hourly: every full hour while the window is open.
    twice:  at the window start and two hours before it closes.
    Unknown modes yield no reminders.
    """
    if start_hour >= end_hour:
        return []

    if mode == MODE_HOURLY:
        return list(range(start_hour, end_hour))

    if mode == MODE_TWICE:
        evening = end_hour - _EVENING_OFFSET_HOURS
        if evening <= start_hour:
            return [start_hour]
        return [start_hour, evening]

    logger.warning("Unknown reminder mode: %r", mode)
    return []
