"""
Reminder window evaluation.

A habit reminder fires REMINDER_LEAD_MINUTES before the habit's configured
time of day. Only time-of-day is tracked (no dates), so a reminder at 00:02
fires at 23:57 the "previous" day.

The tick runs once per minute and the window is exactly one minute wide.
A tick that is skipped (slow pass, downtime) means that day's reminder is
not sent. There is no catch-up.
"""

from datetime import time

REMINDER_LEAD_MINUTES = 5

_MINUTES_PER_DAY = 24 * 60


def notification_time(configured: time) -> time:
    """
    Get the time of day at which the pre-notification for a reminder fires.

    Args:
        configured: The habit's configured reminder time

    Returns:
        configured minus the lead time, wrapped on a 24-hour clock
    """
    total = configured.hour * 60 + configured.minute - REMINDER_LEAD_MINUTES
    total %= _MINUTES_PER_DAY
    return time(hour=total // 60, minute=total % 60)


def should_fire_reminder(now: time, configured: time) -> bool:
    """Check whether `now` falls in the one-minute pre-notification window."""
    fire_at = notification_time(configured)
    return now.hour == fire_at.hour and now.minute == fire_at.minute


def parse_reminder_time(hour: int | None, minute: int | None) -> time | None:
    """
    Build a reminder time from stored hour/minute columns.

    Both unset means "no reminder". One without the other, or values out of
    range, are malformed and also treated as "no reminder".
    """
    if hour is None or minute is None:
        return None
    if isinstance(hour, bool) or isinstance(minute, bool):
        return None
    if not isinstance(hour, int) or not isinstance(minute, int):
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return time(hour=hour, minute=minute)


def format_scheduled_time(reminder: time) -> str:
    """Format a reminder time as the "HH:MM" summary stored on the habit."""
    return f"{reminder.hour:02d}:{reminder.minute:02d}"
