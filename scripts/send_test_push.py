#!/usr/bin/env python3
"""
Send test pushes to a user's device using the real message pipeline.

Usage:
    python scripts/send_test_push.py <user_id> [message_type ...]

Examples:
    python scripts/send_test_push.py user-123 test_notification
    python scripts/send_test_push.py user-123  # sends all types
"""

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

load_dotenv(".env")
load_dotenv(".env.local", override=True)

from core.database import close_engine
from core.habits import Habit
from core.notifications.dispatcher import (
    build_milestone_job,
    build_reminder_job,
    build_test_job,
    close_dispatcher,
    get_dispatcher,
)

SAMPLE_HABIT_NAME = "Morning run"


def build_test_jobs(recipient) -> dict:
    """Build one job per message type using the shared job builders."""
    habit = Habit(
        habit_id="test-habit",
        user_id=recipient.user_id,
        name=SAMPLE_HABIT_NAME,
        reminder_hour=7,
        reminder_minute=0,
        streak=30,
    )
    return {
        "test_notification": build_test_job(recipient),
        "habit_reminder": build_reminder_job(recipient, habit),
        "streak_milestone": build_milestone_job(recipient, habit, habit.streak),
    }


async def run(user_id: str, message_types: list[str]) -> None:
    dispatcher = get_dispatcher()
    recipient = await dispatcher.store.get_recipient(user_id)
    if recipient is None:
        print(f"User {user_id} not found")
        return
    if not recipient.has_token:
        print(f"User {user_id} has no push token")
        return

    jobs = build_test_jobs(recipient)
    results = {}
    for message_type in message_types or list(jobs):
        job = jobs.get(message_type)
        if job is None:
            print(f"Unknown message type: {message_type}")
            continue

        print(f"\n{'='*60}")
        print(f"Sending: {message_type}")
        print(f"Title: {job.title}")
        print(f"Body: {job.body}")
        print(f"{'='*60}")

        result = await dispatcher.gateway.send(job)
        results[message_type] = result.ok
        print(f"Result: {'✓ Sent' if result.ok else f'✗ Failed ({result.error})'}")

    print(f"\n{'='*60}")
    print("Summary:")
    for message_type, success in results.items():
        status = "✓" if success else "✗"
        print(f"  {status} {message_type}")


async def main_async(user_id: str, message_types: list[str]) -> None:
    try:
        await run(user_id, message_types)
    finally:
        await close_dispatcher()
        await close_engine()


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    asyncio.run(main_async(sys.argv[1], sys.argv[2:]))


if __name__ == "__main__":
    main()
