"""
Daily Report Assistant — Telegram Bot.

Telegram is the user interface: the daily report is written, sent and
unlocked through bot commands, and the bot's job queue drives the status
tick, reminders and the auto-send wake.

This module is the composition root: every service is built once here and
handed its collaborators explicitly.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    JobQueue,
)

from src.config import settings
from src.core.auto_send import AutoSendScheduler
from src.core.clock import SystemClock
from src.core.countdown import AdaptiveClock
from src.core.status_config import StatusConfig
from src.core.status_factory import StatusFactory
from src.core.status_manager import StatusManager
from src.data.db import KeyValueDB, ReportDB
from src.data.models import AutoSendSettings, ReportStatus

if TYPE_CHECKING:
    from src.adapters.job_queue import JobQueueReminderScheduler
    from src.adapters.report_sender import TelegramReportSender
    from src.adapters.widget_snapshot import WidgetSnapshotWriter
    from src.ports.notification_port import NotificationPort
    from src.ports.scheduling_port import Clock

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """Everything the handlers and jobs need, built once at startup."""

    config: StatusConfig
    clock: Clock
    report_db: ReportDB
    status_manager: StatusManager
    countdown: AdaptiveClock
    auto_send: AutoSendScheduler
    sender: TelegramReportSender
    reminders: JobQueueReminderScheduler
    widgets: WidgetSnapshotWriter


def _parse_hhmm(raw: str) -> dt_time | None:
    """Parse "HH:MM" into a time, or None if malformed."""
    try:
        return datetime.strptime(raw.strip(), "%H:%M").time()
    except ValueError:
        return None


def build_services(
    config: StatusConfig,
    notifier: NotificationPort,
    job_queue: JobQueue | None,
    clock: Clock | None = None,
) -> Services:
    """Compose the status engine and its adapters."""
    from src.adapters.job_queue import JobQueueReminderScheduler, JobQueueWakeRegistrar
    from src.adapters.report_sender import TelegramReportSender
    from src.adapters.sqlite_stores import (
        SqliteAutoSendSettingsStore,
        SqlitePostsProvider,
        SqliteStatusStore,
    )
    from src.adapters.widget_snapshot import WidgetSnapshotWriter

    clock = clock or SystemClock(config.timezone)
    report_db = ReportDB(settings.DATABASE_PATH, tz=config.timezone)
    kv = KeyValueDB(settings.DATABASE_PATH)
    widgets = WidgetSnapshotWriter(kv, settings.WIDGET_SNAPSHOT_PATH)
    factory = StatusFactory(config)
    countdown = AdaptiveClock(config, clock, on_update=widgets.update_countdown)

    # The reminder scheduler reads status through the manager, which is
    # created right after it.
    manager_ref: list[StatusManager] = []
    reminders = JobQueueReminderScheduler(
        job_queue,
        config,
        notifier,
        settings.REPORT_CHAT_ID,
        current_status=lambda: manager_ref[0].status if manager_ref else ReportStatus.NOT_STARTED,
        is_editable=factory.is_editable,
        mode=settings.NOTIFICATION_MODE,
        clock=clock,
    )
    status_manager = StatusManager(
        factory,
        SqlitePostsProvider(report_db),
        SqliteStatusStore(kv),
        clock,
        countdown=countdown,
        rescheduler=reminders,
        widgets=widgets,
    )
    manager_ref.append(status_manager)
    status_manager.add_listener(
        lambda status: logger.info("Report status is now %s", status.value)
    )

    sender = TelegramReportSender(report_db, notifier, settings.REPORT_CHAT_ID, config, clock)
    registrar = JobQueueWakeRegistrar(job_queue)
    defaults = AutoSendSettings(
        enabled=settings.AUTO_SEND_ENABLED,
        time=_parse_hhmm(settings.AUTO_SEND_TIME) or dt_time(21, 0),
    )
    auto_send = AutoSendScheduler(
        config,
        SqliteAutoSendSettingsStore(kv, defaults=defaults),
        registrar,
        sender,
        clock,
        refresh_status=status_manager.recompute,
        widgets=widgets,
        min_lead_time=timedelta(minutes=settings.AUTO_SEND_MIN_LEAD_MINUTES),
        retry_delay=float(settings.WAKE_RETRY_SECONDS),
        defaults=defaults,
    )
    registrar.set_handler(auto_send.on_wake)

    return Services(
        config=config,
        clock=clock,
        report_db=report_db,
        status_manager=status_manager,
        countdown=countdown,
        auto_send=auto_send,
        sender=sender,
        reminders=reminders,
        widgets=widgets,
    )


def _services(context: ContextTypes.DEFAULT_TYPE) -> Services:
    return context.bot_data["services"]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_status(services: Services) -> str:
    """Human-readable status summary for /status."""
    manager = services.status_manager
    countdown = services.countdown.current()
    auto = services.auto_send.settings
    config = services.config

    lines = [
        f"📋 {manager.status.display_name}",
        f"⏳ {countdown.text} ({countdown.progress:.0%})",
        f"🕗 Window: {config.start_hour:02d}:00–{config.end_hour:02d}:00",
    ]
    if manager.force_unlock:
        lines.append("🔓 Unlocked for editing")
    if auto.enabled:
        lines.append(f"📤 Auto-send at {auto.time.strftime('%H:%M')}")
    else:
        lines.append("📤 Auto-send off")
    if auto.last_status:
        lines.append(f"   {auto.last_status}")
    return "\n".join(lines)


HELP_TEXT = (
    "Daily report commands:\n"
    "/status — today's report status\n"
    "/report <text> — write or update today's report\n"
    "/send — send today's report now\n"
    "/unlock — reopen a sent report for editing\n"
    "/autosend [on|off|HH:MM] — automatic sending"
)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _services(context).status_manager.recompute()
    await update.message.reply_text("👋 Welcome! I keep track of your daily report.\n\n" + HELP_TEXT)


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(HELP_TEXT)


@authorized_only
async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    services = _services(context)
    await services.status_manager.recompute()
    await update.message.reply_text(format_status(services))


@authorized_only
async def cmd_report(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    services = _services(context)
    manager = services.status_manager
    text = " ".join(context.args or []).strip()
    if not text:
        await update.message.reply_text("Usage: /report <what you did today>")
        return

    status = await manager.recompute()
    if not manager.is_editable:
        await update.message.reply_text(
            f"Today's report can't be edited right now ({status.display_name})."
            + (" Use /unlock to reopen it." if status == ReportStatus.SENT else "")
        )
        return

    report = await asyncio.to_thread(services.report_db.save_draft, text, services.clock.now())
    status = await manager.recompute()
    logger.info("Draft saved as report #%d", report.id)
    await update.message.reply_text(f"✏️ Draft saved. {status.display_name}")


@authorized_only
async def cmd_send(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    services = _services(context)
    manager = services.status_manager
    await manager.recompute()

    today = services.config.day_of(services.clock.now())
    report = await asyncio.to_thread(services.report_db.get_for_day, today)
    if report is None:
        await update.message.reply_text("There is no report for today yet. Use /report first.")
        return
    if report.published:
        await update.message.reply_text("Today's report has already been sent.")
        return

    sent = await services.sender.send_report(report)
    status = await manager.recompute()
    if sent:
        await update.message.reply_text(f"✅ {status.display_name}")
    else:
        await update.message.reply_text("❌ Could not send the report. Please try again later.")


@authorized_only
async def cmd_unlock(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    manager = _services(context).status_manager
    await manager.recompute()
    if not settings.ENABLE_FORCE_UNLOCK:
        await update.message.reply_text("Unlocking is disabled.")
        return
    if await manager.unlock_report_creation():
        await update.message.reply_text("🔓 Today's report is open for editing again.")
    else:
        await update.message.reply_text("Today's report is already unlocked.")


@authorized_only
async def cmd_autosend(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    services = _services(context)
    auto_send = services.auto_send
    await services.status_manager.recompute()
    arg = (context.args or [""])[0].strip().lower()

    if not arg:
        await update.message.reply_text(format_status(services))
        return

    if arg in ("on", "off"):
        await auto_send.set_enabled(arg == "on")
    else:
        send_time = _parse_hhmm(arg)
        if send_time is None:
            await update.message.reply_text("Usage: /autosend [on|off|HH:MM]")
            return
        await auto_send.set_time(send_time)

    current = auto_send.settings
    state = "on" if current.enabled else "off"
    await update.message.reply_text(
        f"📤 Auto-send is {state}, time {current.time.strftime('%H:%M')}."
    )


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


async def _status_tick(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Periodic and boundary-triggered status recompute."""
    await _services(context).status_manager.recompute()


def _setup_status_jobs(app: Application, config: StatusConfig) -> None:
    """Register the periodic tick plus window-boundary and midnight recomputes."""
    app.job_queue.run_repeating(
        _status_tick,
        interval=settings.STATUS_TICK_SECONDS,
        first=settings.STATUS_TICK_SECONDS,
        name="status_tick",
    )
    boundaries = {
        "window_start": dt_time(hour=config.start_hour, tzinfo=config.timezone),
        "window_end": dt_time(hour=config.end_hour, tzinfo=config.timezone),
        "day_rollover": dt_time(hour=0, second=5, tzinfo=config.timezone),
    }
    for name, at in boundaries.items():
        app.job_queue.run_daily(_status_tick, time=at, name=name)

    logger.info(
        "Status jobs scheduled: tick every %ds, window %02d:00–%02d:00 %s",
        settings.STATUS_TICK_SECONDS, config.start_hour, config.end_hour, settings.TIMEZONE,
    )


async def _post_init(app: Application) -> None:
    """Load persisted state and arm the clock and auto-send once the loop runs."""
    services: Services = app.bot_data["services"]
    await services.status_manager.load()
    services.status_manager.mark_reports_loaded()
    services.countdown.start()
    await services.status_manager.recompute()
    services.reminders.schedule_if_needed()
    await services.auto_send.load()
    services.auto_send.schedule_if_needed()


async def _post_shutdown(app: Application) -> None:
    services: Services = app.bot_data["services"]
    services.countdown.stop()
    await services.widgets.wait_idle()


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(notifier: NotificationPort | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers and jobs.

    Args:
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    config = StatusConfig.from_settings(settings)
    app.bot_data["services"] = build_services(config, notifier, app.job_queue)

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CommandHandler("report", cmd_report))
    app.add_handler(CommandHandler("send", cmd_send))
    app.add_handler(CommandHandler("unlock", cmd_unlock))
    app.add_handler(CommandHandler("autosend", cmd_autosend))

    _setup_status_jobs(app, config)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Daily Report Assistant bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
