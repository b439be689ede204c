"""Tests for the notification dispatcher (scan pass, habit hooks, test send)."""

import asyncio
from datetime import time
from unittest.mock import AsyncMock, patch

import pytest

from core.habits import Habit
from core.notifications.dispatcher import (
    MissingPushTokenError,
    RecipientNotFoundError,
    get_dispatcher,
)
from core.notifications.types import JobKind


# =============================================================================
# Scan pass
# =============================================================================


class TestRunScanPass:
    @pytest.mark.asyncio
    async def test_fires_reminder_five_minutes_early(self, dispatcher, habit_store, push_gateway):
        """Habit "Run" at 07:00 is reminded at 06:55, exactly once."""
        habit_store.add_user("r1", fcm_token="token-r1")
        habit_store.add_habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)

        report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.sent == 1
        assert report.failed == 0
        assert len(push_gateway.sent) == 1
        job = push_gateway.sent[0]
        assert job.kind == JobKind.reminder
        assert job.token == "token-r1"
        assert "Run" in job.body
        assert job.data == {"habitId": "h1", "type": "reminder"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("now", [time(6, 54), time(6, 56), time(7, 0)])
    async def test_no_reminder_outside_window(self, dispatcher, habit_store, push_gateway, now):
        habit_store.add_user("r1", fcm_token="token-r1")
        habit_store.add_habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)

        report = await dispatcher.run_scan_pass(now)

        assert report.sent == 0
        assert push_gateway.sent == []

    @pytest.mark.asyncio
    async def test_skips_user_without_token(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token=None)
        habit_store.add_user("r2", fcm_token="")
        habit_store.add_habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)
        habit_store.add_habit("h2", "r2", "Read", reminder_hour=7, reminder_minute=0)

        report = await dispatcher.run_scan_pass(time(6, 55))

        assert push_gateway.sent == []
        assert report.sent == 0
        assert report.failed == 0
        assert report.error is None

    @pytest.mark.asyncio
    async def test_skips_habits_without_valid_reminder(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")
        habit_store.add_habit("h1", "r1", "No reminder")
        habit_store.add_habit("h2", "r1", "Half set", reminder_hour=7)
        habit_store.add_habit("h3", "r1", "Out of range", reminder_hour=7, reminder_minute=75)

        report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.evaluated == 3
        assert report.failed == 0
        assert push_gateway.sent == []

    @pytest.mark.asyncio
    async def test_one_failed_delivery_does_not_affect_others(
        self, dispatcher, habit_store, push_gateway
    ):
        """N users, user k's delivery fails: N-1 sent, 1 failure recorded."""
        for i in range(5):
            habit_store.add_user(f"r{i}", fcm_token=f"token-{i}")
            habit_store.add_habit(f"h{i}", f"r{i}", f"Habit {i}", reminder_hour=9, reminder_minute=3)
        push_gateway.reject_tokens.add("token-2")

        report = await dispatcher.run_scan_pass(time(8, 58))

        assert report.sent == 4
        assert report.failed == 1
        assert report.failures[0].user_id == "r2"
        assert report.failures[0].habit_id == "h2"
        assert "UNREGISTERED" in report.failures[0].error

    @pytest.mark.asyncio
    async def test_gateway_exception_is_contained(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("ok", fcm_token="token-ok")
        habit_store.add_user("boom", fcm_token="token-boom")
        habit_store.add_habit("h1", "ok", "Run", reminder_hour=7, reminder_minute=0)
        habit_store.add_habit("h2", "boom", "Swim", reminder_hour=7, reminder_minute=0)
        push_gateway.raise_tokens.add("token-boom")

        with patch("core.notifications.dispatcher.sentry_sdk"):
            report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.sent == 1
        assert report.failed == 1
        assert report.failures[0].user_id == "boom"
        assert "connection reset" in report.failures[0].error

    @pytest.mark.asyncio
    async def test_slow_delivery_times_out(self, dispatcher, habit_store, push_gateway):
        dispatcher.delivery_timeout = 0.01
        push_gateway.delay = 1
        habit_store.add_user("r1", fcm_token="token-r1")
        habit_store.add_habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)

        report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.sent == 0
        assert report.failed == 1
        assert "timed out" in report.failures[0].error

    @pytest.mark.asyncio
    async def test_store_failure_is_reported_not_raised(self, dispatcher, habit_store, push_gateway):
        habit_store.fail_with = ConnectionError("database unavailable")

        with patch("core.notifications.dispatcher.sentry_sdk") as mock_sentry:
            report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.error == "database unavailable"
        assert report.sent == 0
        assert push_gateway.sent == []
        mock_sentry.capture_exception.assert_called_once()

    @pytest.mark.asyncio
    async def test_fan_out_is_bounded(self, dispatcher, habit_store, push_gateway):
        dispatcher.concurrency = 2
        push_gateway.delay = 0.01
        for i in range(6):
            habit_store.add_user(f"r{i}", fcm_token=f"token-{i}")
            habit_store.add_habit(f"h{i}", f"r{i}", "Run", reminder_hour=7, reminder_minute=0)

        report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.sent == 6
        assert push_gateway.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_evaluation_error_is_contained(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")
        habit_store.add_habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)
        habit_store.add_habit("h2", "r1", "Read", reminder_hour=7, reminder_minute=0)

        def flaky_build(recipient, habit):
            if habit.habit_id == "h1":
                raise ValueError("bad template")
            from core.notifications.dispatcher import build_test_job

            return build_test_job(recipient)

        with patch("core.notifications.dispatcher.build_reminder_job", side_effect=flaky_build):
            with patch("core.notifications.dispatcher.sentry_sdk"):
                report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.sent == 1
        assert report.failed == 1
        assert report.failures[0].habit_id == "h1"

    @pytest.mark.asyncio
    async def test_report_as_dict(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")
        habit_store.add_habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)
        push_gateway.reject_tokens.add("token-r1")

        report = await dispatcher.run_scan_pass(time(6, 55))

        assert report.as_dict()["failures"] == [
            {
                "user_id": "r1",
                "habit_id": "h1",
                "error": "FCM returned 404: UNREGISTERED",
            }
        ]


# =============================================================================
# Habit created
# =============================================================================


class TestOnHabitCreated:
    @pytest.mark.asyncio
    async def test_marks_habit_with_reminder(self, dispatcher, habit_store):
        habit = Habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)

        assert await dispatcher.on_habit_created(habit) is True
        assert habit_store.marked == [("r1", "h1", "07:00")]

    @pytest.mark.asyncio
    async def test_ignores_habit_without_reminder(self, dispatcher, habit_store):
        habit = Habit("h1", "r1", "Run")

        assert await dispatcher.on_habit_created(habit) is False
        assert habit_store.marked == []

    @pytest.mark.asyncio
    async def test_ignores_half_set_reminder(self, dispatcher, habit_store):
        habit = Habit("h1", "r1", "Run", reminder_hour=None, reminder_minute=30)

        assert await dispatcher.on_habit_created(habit) is False
        assert habit_store.marked == []

    @pytest.mark.asyncio
    async def test_store_failure_is_not_raised(self, dispatcher, habit_store):
        habit_store.fail_with = ConnectionError("database unavailable")
        habit = Habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)

        with patch("core.notifications.dispatcher.sentry_sdk"):
            assert await dispatcher.on_habit_created(habit) is False

    @pytest.mark.asyncio
    async def test_does_not_send_anything(self, dispatcher, push_gateway):
        await dispatcher.on_habit_created(
            Habit("h1", "r1", "Run", reminder_hour=7, reminder_minute=0)
        )
        assert push_gateway.sent == []


# =============================================================================
# Habit updated (streak milestones)
# =============================================================================


def _streak_change(before: int, after: int, name: str = "Read") -> tuple[Habit, Habit]:
    return (
        Habit("h1", "r1", name, streak=before),
        Habit("h1", "r1", name, streak=after),
    )


class TestOnHabitUpdated:
    @pytest.mark.asyncio
    async def test_sends_milestone_on_exact_hit(self, dispatcher, habit_store, push_gateway):
        """Streak 6 -> 7 on "Read": one low-tier milestone push."""
        habit_store.add_user("r1", fcm_token="token-r1")

        result = await dispatcher.on_habit_updated(*_streak_change(6, 7))

        assert result.ok is True
        assert len(push_gateway.sent) == 1
        job = push_gateway.sent[0]
        assert job.kind == JobKind.milestone
        assert job.title.startswith("⭐")
        assert "7" in job.title
        assert "Read" in job.body
        assert "7" in job.body
        assert job.data == {"habitId": "h1", "type": "streak"}

    @pytest.mark.asyncio
    async def test_skipped_milestone_does_not_fire(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")

        assert await dispatcher.on_habit_updated(*_streak_change(6, 8)) is None
        assert push_gateway.sent == []

    @pytest.mark.asyncio
    async def test_unchanged_streak_does_not_fire(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")

        assert await dispatcher.on_habit_updated(*_streak_change(30, 30)) is None
        assert push_gateway.sent == []

    @pytest.mark.asyncio
    async def test_non_milestone_above_tier_does_not_fire(self, dispatcher, habit_store, push_gateway):
        """45 is >= 30 but not a milestone."""
        habit_store.add_user("r1", fcm_token="token-r1")

        assert await dispatcher.on_habit_updated(*_streak_change(44, 45)) is None
        assert push_gateway.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("streak,emoji", [(100, "💯"), (30, "🏆"), (60, "🏆"), (14, "⭐")])
    async def test_milestone_tiers(self, dispatcher, habit_store, push_gateway, streak, emoji):
        habit_store.add_user("r1", fcm_token="token-r1")

        await dispatcher.on_habit_updated(*_streak_change(streak - 1, streak))

        assert push_gateway.sent[0].title.startswith(emoji)

    @pytest.mark.asyncio
    async def test_user_without_token_is_dropped_silently(
        self, dispatcher, habit_store, push_gateway
    ):
        habit_store.add_user("r1", fcm_token=None)

        assert await dispatcher.on_habit_updated(*_streak_change(6, 7)) is None
        assert push_gateway.sent == []

    @pytest.mark.asyncio
    async def test_unknown_user_is_dropped_silently(self, dispatcher, push_gateway):
        assert await dispatcher.on_habit_updated(*_streak_change(6, 7)) is None
        assert push_gateway.sent == []

    @pytest.mark.asyncio
    async def test_store_failure_is_not_raised(self, dispatcher, habit_store, push_gateway):
        habit_store.fail_with = ConnectionError("database unavailable")

        with patch("core.notifications.dispatcher.sentry_sdk"):
            assert await dispatcher.on_habit_updated(*_streak_change(6, 7)) is None

    @pytest.mark.asyncio
    async def test_message_build_error_is_not_raised(
        self, dispatcher, habit_store, push_gateway
    ):
        habit_store.add_user("r1", fcm_token="token-r1")

        with patch(
            "core.notifications.dispatcher.render_push",
            side_effect=KeyError("habit_name"),
        ):
            with patch("core.notifications.dispatcher.sentry_sdk") as mock_sentry:
                result = await dispatcher.on_habit_updated(*_streak_change(6, 7))

        assert result is None
        assert push_gateway.sent == []
        mock_sentry.capture_exception.assert_called_once()

    @pytest.mark.asyncio
    async def test_returns_failed_delivery(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")
        push_gateway.reject_tokens.add("token-r1")

        result = await dispatcher.on_habit_updated(*_streak_change(20, 21))

        assert result.ok is False
        assert "UNREGISTERED" in result.error

    @pytest.mark.asyncio
    async def test_rereads_user_on_every_event(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="old-token")
        await dispatcher.on_habit_updated(*_streak_change(6, 7))

        habit_store.add_user("r1", fcm_token="new-token")
        await dispatcher.on_habit_updated(*_streak_change(13, 14))

        assert [job.token for job in push_gateway.sent] == ["old-token", "new-token"]


# =============================================================================
# Test send
# =============================================================================


class TestSendTestNotification:
    @pytest.mark.asyncio
    async def test_sends_fixed_message(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")

        result = await dispatcher.send_test_notification("r1")

        assert result.ok is True
        assert push_gateway.sent[0].kind == JobKind.test
        assert push_gateway.sent[0].token == "token-r1"

    @pytest.mark.asyncio
    async def test_unknown_user_raises(self, dispatcher):
        with pytest.raises(RecipientNotFoundError):
            await dispatcher.send_test_notification("missing")

    @pytest.mark.asyncio
    async def test_user_without_token_raises(self, dispatcher, habit_store):
        habit_store.add_user("r1", fcm_token=None)

        with pytest.raises(MissingPushTokenError):
            await dispatcher.send_test_notification("r1")

    @pytest.mark.asyncio
    async def test_gateway_errors_propagate(self, dispatcher, habit_store, push_gateway):
        habit_store.add_user("r1", fcm_token="token-r1")
        push_gateway.raise_tokens.add("token-r1")

        with pytest.raises(RuntimeError):
            await dispatcher.send_test_notification("r1")


class TestGetDispatcher:
    def test_returns_singleton(self):
        with patch("core.notifications.dispatcher._dispatcher", None):
            with patch(
                "core.notifications.dispatcher.PushGateway.from_env"
            ) as mock_from_env:
                first = get_dispatcher()
                second = get_dispatcher()

        assert first is second
        mock_from_env.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_releases_gateway(self):
        from core.notifications import dispatcher as dispatcher_module

        mock_dispatcher = AsyncMock()
        with patch.object(dispatcher_module, "_dispatcher", mock_dispatcher):
            await dispatcher_module.close_dispatcher()
            assert dispatcher_module._dispatcher is None

        mock_dispatcher.gateway.aclose.assert_awaited_once()
