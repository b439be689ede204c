"""
Notification dispatcher - turns ticks and habit changes into push jobs.

Three entry points:
- run_scan_pass(now): per-minute reminder scan over every user's habits
- on_habit_created / on_habit_updated: single-habit change hooks
- send_test_notification(user_id): operational smoke test

Failures are contained at the smallest scope (one habit, one job). A scan
pass or hook never raises to its trigger; outcomes are collected in a
PassReport / DeliveryResult and logged.
"""

import asyncio
import logging
from datetime import time

import sentry_sdk

from core.config import get_dispatch_concurrency, get_push_timeout
from core.habits import Habit, HabitStore, Recipient, SqlHabitStore
from core.notifications.channels.push import PushGateway
from core.notifications.milestones import crossed_milestone, milestone_emoji
from core.notifications.reminders import format_scheduled_time, should_fire_reminder
from core.notifications.templates import render_push
from core.notifications.types import (
    DeliveryResult,
    JobKind,
    NotificationJob,
    PassReport,
)

logger = logging.getLogger(__name__)


class RecipientNotFoundError(Exception):
    """Raised when a test send targets a user that doesn't exist."""

    pass


class MissingPushTokenError(Exception):
    """Raised when a test send targets a user with no registered device."""

    pass


# =============================================================================
# Job building
# =============================================================================


def build_reminder_job(recipient: Recipient, habit: Habit) -> NotificationJob:
    title, body = render_push("habit_reminder", {"habit_name": habit.name})
    return NotificationJob(
        token=recipient.fcm_token,
        title=title,
        body=body,
        kind=JobKind.reminder,
        data={"habitId": habit.habit_id, "type": "reminder"},
        user_id=recipient.user_id,
        habit_id=habit.habit_id,
    )


def build_milestone_job(
    recipient: Recipient, habit: Habit, streak: int
) -> NotificationJob:
    """Build the streak milestone push; the title emoji depends on the tier."""
    title, body = render_push(
        "streak_milestone",
        {"emoji": milestone_emoji(streak), "streak": streak, "habit_name": habit.name},
    )
    return NotificationJob(
        token=recipient.fcm_token,
        title=title,
        body=body,
        kind=JobKind.milestone,
        # "streak" is what the mobile client routes on
        data={"habitId": habit.habit_id, "type": "streak"},
        user_id=recipient.user_id,
        habit_id=habit.habit_id,
    )


def build_test_job(recipient: Recipient) -> NotificationJob:
    title, body = render_push("test_notification", {})
    return NotificationJob(
        token=recipient.fcm_token,
        title=title,
        body=body,
        kind=JobKind.test,
        user_id=recipient.user_id,
    )


# =============================================================================
# Dispatcher
# =============================================================================


class Dispatcher:
    """
    Stateless orchestrator over an injected store and push gateway.

    Args:
        store: Where users and habits are read from (and bookkeeping written to)
        gateway: Push delivery channel
        concurrency: Max habits evaluated/delivered at once within a scan pass
        delivery_timeout: Seconds before a single delivery is abandoned
    """

    def __init__(
        self,
        store: HabitStore,
        gateway: PushGateway,
        concurrency: int = 10,
        delivery_timeout: float = 10.0,
    ):
        self.store = store
        self.gateway = gateway
        self.concurrency = max(1, concurrency)
        self.delivery_timeout = delivery_timeout

    async def _deliver(self, job: NotificationJob) -> DeliveryResult:
        """Send one job; any failure, including a timeout, becomes ok=False."""
        try:
            return await asyncio.wait_for(
                self.gateway.send(job), timeout=self.delivery_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Push to user {job.user_id} timed out after {self.delivery_timeout}s"
            )
            return DeliveryResult(
                ok=False, error=f"timed out after {self.delivery_timeout}s"
            )
        except Exception as e:
            logger.error(f"Push gateway raised for user {job.user_id}: {e}")
            sentry_sdk.capture_exception(e)
            return DeliveryResult(ok=False, error=str(e) or type(e).__name__)

    # -------------------------------------------------------------------------
    # Scan pass
    # -------------------------------------------------------------------------

    async def run_scan_pass(self, now: time) -> PassReport:
        """
        Evaluate every (user, habit) pair against the reminder window.

        Reads all candidates in one bulk query, then fans evaluation and
        delivery out over a bounded pool. Never raises.

        Args:
            now: Current wall-clock time of day (in the reminder timezone)

        Returns:
            PassReport with sent/failed counts and per-failure detail
        """
        report = PassReport()

        try:
            targets = await self.store.list_reminder_targets()
        except Exception as e:
            logger.error(f"Failed to read reminder targets: {e}")
            sentry_sdk.capture_exception(e)
            report.error = str(e) or type(e).__name__
            return report

        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(recipient: Recipient, habit: Habit) -> None:
            async with semaphore:
                await self._process_target(recipient, habit, now, report)

        await asyncio.gather(*(worker(r, h) for r, h in targets))

        if report.sent or report.failed:
            logger.info(
                f"Reminder pass at {now:%H:%M}: {report.sent} sent, "
                f"{report.failed} failed ({report.evaluated} evaluated)"
            )
        return report

    async def _process_target(
        self,
        recipient: Recipient,
        habit: Habit,
        now: time,
        report: PassReport,
    ) -> None:
        report.evaluated += 1

        try:
            if not recipient.has_token:
                return
            reminder = habit.reminder_time
            if reminder is None:
                if habit.reminder_hour is not None or habit.reminder_minute is not None:
                    logger.warning(
                        f"Habit {habit.habit_id} has malformed reminder "
                        f"({habit.reminder_hour}, {habit.reminder_minute}), skipping"
                    )
                return
            if not should_fire_reminder(now, reminder):
                return
            job = build_reminder_job(recipient, habit)
        except Exception as e:
            logger.error(f"Failed to evaluate habit {habit.habit_id}: {e}")
            sentry_sdk.capture_exception(e)
            report.record_failure(
                recipient.user_id, habit.habit_id, str(e) or type(e).__name__
            )
            return

        result = await self._deliver(job)
        if result.ok:
            logger.info(f"Sent reminder for {habit.name} to user {recipient.user_id}")
            report.record_success()
        else:
            report.record_failure(
                recipient.user_id, habit.habit_id, result.error or "delivery failed"
            )

    # -------------------------------------------------------------------------
    # Habit change hooks
    # -------------------------------------------------------------------------

    async def on_habit_created(self, habit: Habit) -> bool:
        """
        Record reminder bookkeeping on a newly created habit.

        Writes notification_scheduled=True and scheduled_time="HH:MM" when the
        habit has a valid reminder. Informational only, nothing is sent.

        Returns:
            True if the bookkeeping fields were written
        """
        reminder = habit.reminder_time
        if reminder is None:
            if habit.reminder_hour is not None or habit.reminder_minute is not None:
                logger.warning(
                    f"New habit {habit.habit_id} has malformed reminder, not scheduling"
                )
            return False

        scheduled_time = format_scheduled_time(reminder)
        try:
            await self.store.mark_reminder_scheduled(
                habit.user_id, habit.habit_id, scheduled_time
            )
        except Exception as e:
            logger.error(f"Failed to mark reminder for habit {habit.habit_id}: {e}")
            sentry_sdk.capture_exception(e)
            return False

        logger.info(f"New habit with reminder: {habit.name} at {scheduled_time}")
        return True

    async def on_habit_updated(
        self, before: Habit, after: Habit
    ) -> DeliveryResult | None:
        """
        Send a milestone push if this update moved the streak onto a milestone.

        Returns:
            The delivery outcome, or None when nothing was sent (no milestone,
            unknown user, or no push token)
        """
        streak = crossed_milestone(before.streak, after.streak)
        if streak is None:
            return None

        try:
            recipient = await self.store.get_recipient(after.user_id)
        except Exception as e:
            logger.error(f"Failed to read user {after.user_id} for milestone: {e}")
            sentry_sdk.capture_exception(e)
            return None

        if recipient is None or not recipient.has_token:
            logger.info(
                f"User {after.user_id} has no push token, dropping {streak}-day milestone"
            )
            return None

        try:
            job = build_milestone_job(recipient, after, streak)
        except Exception as e:
            logger.error(
                f"Failed to build {streak}-day milestone for habit {after.habit_id}: {e}"
            )
            sentry_sdk.capture_exception(e)
            return None

        result = await self._deliver(job)
        if result.ok:
            logger.info(f"Sent {streak}-day streak milestone for {after.name}")
        else:
            logger.warning(
                f"Failed to send {streak}-day milestone for habit {after.habit_id}: "
                f"{result.error}"
            )
        return result

    # -------------------------------------------------------------------------
    # Test send
    # -------------------------------------------------------------------------

    async def send_test_notification(self, user_id: str) -> DeliveryResult:
        """
        Send a fixed test push to one user.

        Unlike the scheduled paths, unexpected gateway errors propagate so
        the caller can report them.

        Raises:
            RecipientNotFoundError: If the user doesn't exist
            MissingPushTokenError: If the user has no push token
        """
        recipient = await self.store.get_recipient(user_id)
        if recipient is None:
            raise RecipientNotFoundError(user_id)
        if not recipient.has_token:
            raise MissingPushTokenError(user_id)

        return await asyncio.wait_for(
            self.gateway.send(build_test_job(recipient)),
            timeout=self.delivery_timeout,
        )


# =============================================================================
# Process-wide instance
# =============================================================================


_dispatcher: Dispatcher | None = None


def get_dispatcher() -> Dispatcher:
    """Get or create the dispatcher wired to the database and FCM."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = Dispatcher(
            store=SqlHabitStore(),
            gateway=PushGateway.from_env(),
            concurrency=get_dispatch_concurrency(),
            delivery_timeout=get_push_timeout(),
        )
    return _dispatcher


async def close_dispatcher() -> None:
    """Release the dispatcher's HTTP client. Call on shutdown."""
    global _dispatcher
    if _dispatcher is not None:
        await _dispatcher.gateway.aclose()
        _dispatcher = None
