"""Root pytest configuration and shared notification fakes."""

import asyncio
from pathlib import Path

import pytest
from dotenv import load_dotenv

from core.habits import Habit, Recipient
from core.notifications.dispatcher import Dispatcher
from core.notifications.types import DeliveryResult, NotificationJob

# Load environment variables before tests run
_root = Path(__file__).parent
load_dotenv(_root / ".env")
load_dotenv(_root / ".env.local", override=True)


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use default event loop policy for all async tests."""
    return asyncio.DefaultEventLoopPolicy()


class FakeHabitStore:
    """
    In-memory HabitStore.

    list_reminder_targets returns every (user, habit) pair without filtering,
    so tests see how the dispatcher handles missing tokens and bad reminders.
    """

    def __init__(self):
        self.recipients: dict[str, Recipient] = {}
        self.habits: list[Habit] = []
        self.marked: list[tuple[str, str, str]] = []
        self.fail_with: Exception | None = None

    def add_user(self, user_id: str, fcm_token: str | None = None) -> Recipient:
        recipient = Recipient(user_id=user_id, fcm_token=fcm_token)
        self.recipients[user_id] = recipient
        return recipient

    def add_habit(self, habit_id: str, user_id: str, name: str, **fields) -> Habit:
        habit = Habit(habit_id=habit_id, user_id=user_id, name=name, **fields)
        self.habits.append(habit)
        return habit

    async def get_recipient(self, user_id: str) -> Recipient | None:
        if self.fail_with:
            raise self.fail_with
        return self.recipients.get(user_id)

    async def list_reminder_targets(self) -> list[tuple[Recipient, Habit]]:
        if self.fail_with:
            raise self.fail_with
        return [
            (self.recipients[habit.user_id], habit)
            for habit in self.habits
            if habit.user_id in self.recipients
        ]

    async def mark_reminder_scheduled(
        self, user_id: str, habit_id: str, scheduled_time: str
    ) -> None:
        if self.fail_with:
            raise self.fail_with
        self.marked.append((user_id, habit_id, scheduled_time))


class RecordingGateway:
    """Push gateway that records jobs instead of calling FCM."""

    def __init__(self):
        self.sent: list[NotificationJob] = []
        self.reject_tokens: set[str] = set()
        self.raise_tokens: set[str] = set()
        self.delay: float = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, job: NotificationJob) -> DeliveryResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if job.token in self.raise_tokens:
                raise RuntimeError("connection reset")
            self.sent.append(job)
            if job.token in self.reject_tokens:
                return DeliveryResult(ok=False, error="FCM returned 404: UNREGISTERED")
            return DeliveryResult(ok=True, message_id=f"projects/demo/messages/{len(self.sent)}")
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        pass


@pytest.fixture
def habit_store():
    return FakeHabitStore()


@pytest.fixture
def push_gateway():
    return RecordingGateway()


@pytest.fixture
def dispatcher(habit_store, push_gateway):
    return Dispatcher(
        store=habit_store,
        gateway=push_gateway,
        concurrency=4,
        delivery_timeout=1.0,
    )
