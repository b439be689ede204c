"""SQLAlchemy Core table definitions for the database schema."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

# Naming convention for constraints (helps Alembic generate better names)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)


# =====================================================
# 1. USERS
# =====================================================
users = Table(
    "users",
    metadata,
    # Ids are issued by the mobile app's auth provider, not by us
    Column("user_id", Text, primary_key=True),
    Column("fcm_token", Text),  # Null until the device registers for push
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
)


# =====================================================
# 2. HABITS
# =====================================================
habits = Table(
    "habits",
    metadata,
    Column("habit_id", Text, primary_key=True),
    Column(
        "user_id",
        Text,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("name", Text, nullable=False),
    Column("reminder_hour", Integer),
    Column("reminder_minute", Integer),
    Column("streak", Integer, nullable=False, server_default="0"),
    # Written by the on-create hook
    Column("notification_scheduled", Boolean, server_default="false"),
    Column("scheduled_time", Text),  # "HH:MM"
    Column("created_at", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("updated_at", TIMESTAMP(timezone=True), server_default=func.now()),
    CheckConstraint(
        "reminder_hour IS NULL OR (reminder_hour >= 0 AND reminder_hour <= 23)",
        name="reminder_hour_range",
    ),
    CheckConstraint(
        "reminder_minute IS NULL OR (reminder_minute >= 0 AND reminder_minute <= 59)",
        name="reminder_minute_range",
    ),
    CheckConstraint(
        "(reminder_hour IS NULL) = (reminder_minute IS NULL)",
        name="reminder_pair",
    ),
    CheckConstraint("streak >= 0", name="streak_non_negative"),
    Index("idx_habits_user_id", "user_id"),
)
