"""
Habit store - the read/write surface the notification engine depends on.

The engine only ever talks to a HabitStore. SqlHabitStore is the production
implementation over the users/habits tables; tests pass their own.
Nothing here is cached: every call reads current state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Protocol

from sqlalchemy import and_, select, update

from core.database import get_connection, get_transaction
from core.tables import habits, users

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    """A user as seen by the notification engine."""

    user_id: str
    fcm_token: str | None = None

    @property
    def has_token(self) -> bool:
        return bool(self.fcm_token)


@dataclass(frozen=True)
class Habit:
    """Snapshot of a habit at evaluation time."""

    habit_id: str
    user_id: str
    name: str
    reminder_hour: int | None = None
    reminder_minute: int | None = None
    streak: int = 0

    @property
    def reminder_time(self) -> time | None:
        """Configured reminder time, or None if unset or malformed."""
        # Import here to avoid circular imports
        from core.notifications.reminders import parse_reminder_time

        return parse_reminder_time(self.reminder_hour, self.reminder_minute)


class HabitStore(Protocol):
    async def get_recipient(self, user_id: str) -> Recipient | None:
        """Read one user by id."""
        ...

    async def list_reminder_targets(self) -> list[tuple[Recipient, Habit]]:
        """Read every (user, habit) pair that could receive a reminder."""
        ...

    async def mark_reminder_scheduled(
        self, user_id: str, habit_id: str, scheduled_time: str
    ) -> None:
        """Write the derived reminder bookkeeping fields onto a habit."""
        ...


def _habit_from_row(row) -> Habit:
    return Habit(
        habit_id=row["habit_id"],
        user_id=row["user_id"],
        name=row["name"],
        reminder_hour=row["reminder_hour"],
        reminder_minute=row["reminder_minute"],
        streak=row["streak"] or 0,
    )


class SqlHabitStore:
    """HabitStore backed by the users and habits tables."""

    async def get_recipient(self, user_id: str) -> Recipient | None:
        async with get_connection() as conn:
            result = await conn.execute(
                select(users.c.user_id, users.c.fcm_token).where(
                    users.c.user_id == user_id
                )
            )
            row = result.mappings().first()

        if not row:
            return None
        return Recipient(user_id=row["user_id"], fcm_token=row["fcm_token"])

    async def list_reminder_targets(self) -> list[tuple[Recipient, Habit]]:
        """
        Bulk-read users with a push token joined to their habits with a reminder.

        One query per pass, so evaluation and delivery never interleave
        with reads.
        """
        query = (
            select(
                users.c.fcm_token,
                habits.c.habit_id,
                habits.c.user_id,
                habits.c.name,
                habits.c.reminder_hour,
                habits.c.reminder_minute,
                habits.c.streak,
            )
            .select_from(habits.join(users, habits.c.user_id == users.c.user_id))
            .where(
                and_(
                    users.c.fcm_token.is_not(None),
                    users.c.fcm_token != "",
                    habits.c.reminder_hour.is_not(None),
                    habits.c.reminder_minute.is_not(None),
                )
            )
        )

        async with get_connection() as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()

        recipients: dict[str, Recipient] = {}
        targets = []
        for row in rows:
            recipient = recipients.get(row["user_id"])
            if recipient is None:
                recipient = Recipient(user_id=row["user_id"], fcm_token=row["fcm_token"])
                recipients[row["user_id"]] = recipient
            targets.append((recipient, _habit_from_row(row)))

        return targets

    async def mark_reminder_scheduled(
        self, user_id: str, habit_id: str, scheduled_time: str
    ) -> None:
        async with get_transaction() as conn:
            result = await conn.execute(
                update(habits)
                .where(
                    and_(habits.c.habit_id == habit_id, habits.c.user_id == user_id)
                )
                .values(
                    notification_scheduled=True,
                    scheduled_time=scheduled_time,
                    updated_at=datetime.now(timezone.utc),
                )
            )

        if result.rowcount == 0:
            logger.warning(
                f"Habit {habit_id} for user {user_id} not found when marking reminder"
            )
