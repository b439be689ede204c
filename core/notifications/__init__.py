"""
Habit push notification engine.

Public API:
    get_dispatcher() - Process-wide Dispatcher (database store + FCM gateway)
    Dispatcher.run_scan_pass(now) - Per-minute reminder scan
    Dispatcher.on_habit_created(habit) / on_habit_updated(before, after)
    Dispatcher.send_test_notification(user_id)

Scheduling:
    init_scheduler() / shutdown_scheduler() - Per-minute reminder tick
"""

from .dispatcher import (
    Dispatcher,
    MissingPushTokenError,
    RecipientNotFoundError,
    close_dispatcher,
    get_dispatcher,
)
from .scheduler import init_scheduler, shutdown_scheduler, run_reminder_tick
from .types import DeliveryResult, JobKind, NotificationJob, PassReport

__all__ = [
    "Dispatcher",
    "MissingPushTokenError",
    "RecipientNotFoundError",
    "close_dispatcher",
    "get_dispatcher",
    "init_scheduler",
    "shutdown_scheduler",
    "run_reminder_tick",
    "DeliveryResult",
    "JobKind",
    "NotificationJob",
    "PassReport",
]
