"""Legacy status migration.

Older builds stored a finished report as ``"done"``; the status model now
calls that ``"sent"``. Storage adapters run every raw value through
``normalize_status`` before handing it to the engine.
"""

from __future__ import annotations

import logging

from src.data.models import ReportStatus

logger = logging.getLogger(__name__)

_LEGACY_ALIASES = {
    ReportStatus.DONE.value: ReportStatus.SENT,
}


def needs_migration(raw: object) -> bool:
    """Check if a stored value is a legacy alias that should be rewritten."""
    return isinstance(raw, str) and raw in _LEGACY_ALIASES


def normalize_status(raw: object) -> ReportStatus:
    """Map a stored value to a canonical status.

    Legacy aliases map to their replacement; missing or unknown values
    fall back to NOT_STARTED (first run).
    """
    if not isinstance(raw, str):
        return ReportStatus.NOT_STARTED
    if raw in _LEGACY_ALIASES:
        return _LEGACY_ALIASES[raw]
    try:
        return ReportStatus(raw)
    except ValueError:
        logger.warning("Unknown stored report status %r, using default", raw)
        return ReportStatus.NOT_STARTED
