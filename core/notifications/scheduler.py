"""
APScheduler-based per-minute reminder tick.

The scheduler owns only the clock: every minute it calls a tick callback,
which reads the wall clock in the reminder timezone and runs one scan pass.
All state lives in the store, so nothing is persisted here and a restart
simply resumes ticking.
"""

import logging
from datetime import datetime, time, timezone
from typing import Awaitable, Callable

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.config import get_reminder_timezone
from core.notifications.types import PassReport

logger = logging.getLogger(__name__)


REMINDER_TICK_JOB_ID = "habit_reminder_tick"

# A tick that starts more than this late is dropped rather than run: the
# reminder window is one minute wide, so a late pass would look at the
# wrong minute.
TICK_MISFIRE_GRACE_SECONDS = 30


_scheduler: AsyncIOScheduler | None = None


def current_reminder_time(
    tz_name: str | None = None, now: datetime | None = None
) -> time:
    """
    Get the current time of day on the reminder clock.

    Args:
        tz_name: IANA timezone (defaults to REMINDER_TIMEZONE)
        now: Instant to convert (defaults to the current UTC time)

    Returns:
        Hour and minute in that timezone (seconds dropped)
    """
    tz = pytz.timezone(tz_name or get_reminder_timezone())
    local = (now or datetime.now(timezone.utc)).astimezone(tz)
    return time(hour=local.hour, minute=local.minute)


async def run_reminder_tick() -> PassReport:
    """
    Run one reminder scan pass for the current minute.

    This is the job function called by APScheduler.
    """
    # Import here to avoid circular imports
    from core.notifications.dispatcher import get_dispatcher

    now = current_reminder_time()
    logger.debug(f"Checking habit reminders at {now:%H:%M}")

    report = await get_dispatcher().run_scan_pass(now)
    if report.error:
        logger.warning(f"Reminder pass at {now:%H:%M} could not read habits: {report.error}")
    return report


def init_scheduler(
    tick: Callable[[], Awaitable[object]] = run_reminder_tick,
) -> AsyncIOScheduler:
    """
    Initialize and start the per-minute reminder tick.

    Call this during app startup (in FastAPI lifespan).

    Args:
        tick: Coroutine function run once per minute
    """
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    tz_name = get_reminder_timezone()
    _scheduler = AsyncIOScheduler(
        job_defaults={
            "coalesce": True,  # Never replay missed minutes
            "max_instances": 1,  # Passes never overlap
            "misfire_grace_time": TICK_MISFIRE_GRACE_SECONDS,
        },
    )
    _scheduler.add_job(
        tick,
        trigger=CronTrigger(minute="*", timezone=pytz.timezone(tz_name)),
        id=REMINDER_TICK_JOB_ID,
        replace_existing=True,
    )
    _scheduler.start()
    print(f"Reminder scheduler started (every minute, {tz_name})")

    return _scheduler


def shutdown_scheduler() -> None:
    """
    Shutdown the scheduler gracefully.

    Call this during app shutdown.
    """
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        print("Reminder scheduler stopped")


def is_scheduler_running() -> bool:
    return bool(_scheduler and _scheduler.running)
