"""
Daily Report Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
Only the composition root (the bot) reads this module; the status engine
receives a StatusConfig built from it.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    REPORT_CHAT_ID: int = 0      # 0 → first allowed user

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Reporting window
    TIMEZONE: str = "UTC"
    REPORT_START_HOUR: int = 8
    REPORT_END_HOUR: int = 22

    # Status engine flags
    ENABLE_FORCE_UNLOCK: bool = True
    AUTO_RESET_ON_NEW_DAY: bool = True

    # Reminders
    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATION_MODE: str = "hourly"   # "hourly" | "twice"

    # Auto-send (first-run defaults; the user's choice is persisted)
    AUTO_SEND_ENABLED: bool = False
    AUTO_SEND_TIME: str = "21:00"
    AUTO_SEND_MIN_LEAD_MINUTES: int = 20
    WAKE_RETRY_SECONDS: int = 60

    # Periodic status recompute
    STATUS_TICK_SECONDS: int = 60

    # Storage
    DATABASE_PATH: str = "data/reports.db"
    WIDGET_SNAPSHOT_PATH: str = "data/widget.json"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("REPORT_START_HOUR", "REPORT_END_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be within 0..23, got {hour}")
        return hour

    @field_validator("AUTO_SEND_TIME")
    @classmethod
    def check_time(cls, v: str) -> str:
        hour, _, minute = v.strip().partition(":")
        if not (hour.isdigit() and minute.isdigit()) or int(hour) > 23 or int(minute) > 59:
            raise ValueError(f"AUTO_SEND_TIME must be HH:MM, got {v!r}")
        return f"{int(hour):02d}:{int(minute):02d}"

    @field_validator("NOTIFICATION_MODE")
    @classmethod
    def check_mode(cls, v: str) -> str:
        mode = v.strip().lower()
        if mode not in ("hourly", "twice"):
            raise ValueError(f"NOTIFICATION_MODE must be 'hourly' or 'twice', got {v!r}")
        return mode

    @model_validator(mode="after")
    def check_window(self) -> Settings:
        if self.REPORT_START_HOUR >= self.REPORT_END_HOUR:
            raise ValueError("REPORT_START_HOUR must be before REPORT_END_HOUR")
        if not self.REPORT_CHAT_ID and self.ALLOWED_USER_IDS:
            self.REPORT_CHAT_ID = self.ALLOWED_USER_IDS[0]
        return self


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        REPORT_CHAT_ID=int(os.getenv("REPORT_CHAT_ID", "0") or 0),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        REPORT_START_HOUR=os.getenv("REPORT_START_HOUR", "8"),
        REPORT_END_HOUR=os.getenv("REPORT_END_HOUR", "22"),
        ENABLE_FORCE_UNLOCK=_env_flag("ENABLE_FORCE_UNLOCK", True),
        AUTO_RESET_ON_NEW_DAY=_env_flag("AUTO_RESET_ON_NEW_DAY", True),
        NOTIFICATIONS_ENABLED=_env_flag("NOTIFICATIONS_ENABLED", True),
        NOTIFICATION_MODE=os.getenv("NOTIFICATION_MODE", "hourly"),
        AUTO_SEND_ENABLED=_env_flag("AUTO_SEND_ENABLED", False),
        AUTO_SEND_TIME=os.getenv("AUTO_SEND_TIME", "21:00"),
        AUTO_SEND_MIN_LEAD_MINUTES=int(os.getenv("AUTO_SEND_MIN_LEAD_MINUTES", "20")),
        WAKE_RETRY_SECONDS=int(os.getenv("WAKE_RETRY_SECONDS", "60")),
        STATUS_TICK_SECONDS=int(os.getenv("STATUS_TICK_SECONDS", "60")),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/reports.db"),
        WIDGET_SNAPSHOT_PATH=os.getenv("WIDGET_SNAPSHOT_PATH", "data/widget.json"),
    )


# Singleton, imported by the composition root as:
#   from src.config import settings
settings = _load_settings()
