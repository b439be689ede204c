"""create users and habits

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("fcm_token", sa.Text(), nullable=True),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_users")),
    )
    op.create_table(
        "habits",
        sa.Column("habit_id", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("reminder_hour", sa.Integer(), nullable=True),
        sa.Column("reminder_minute", sa.Integer(), nullable=True),
        sa.Column("streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("notification_scheduled", sa.Boolean(), server_default="false", nullable=True),
        sa.Column("scheduled_time", sa.Text(), nullable=True),
        sa.Column("created_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", postgresql.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.CheckConstraint(
            "reminder_hour IS NULL OR (reminder_hour >= 0 AND reminder_hour <= 23)",
            name=op.f("ck_habits_reminder_hour_range"),
        ),
        sa.CheckConstraint(
            "reminder_minute IS NULL OR (reminder_minute >= 0 AND reminder_minute <= 59)",
            name=op.f("ck_habits_reminder_minute_range"),
        ),
        sa.CheckConstraint(
            "(reminder_hour IS NULL) = (reminder_minute IS NULL)",
            name=op.f("ck_habits_reminder_pair"),
        ),
        sa.CheckConstraint("streak >= 0", name=op.f("ck_habits_streak_non_negative")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_habits_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("habit_id", name=op.f("pk_habits")),
    )
    op.create_index("idx_habits_user_id", "habits", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("idx_habits_user_id", table_name="habits")
    op.drop_table("habits")
    op.drop_table("users")
