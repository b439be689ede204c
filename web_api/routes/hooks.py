"""
Habit change hooks, called by the habit store on create/update.

Endpoints:
- POST /api/hooks/habits/created - Record reminder bookkeeping on a new habit
- POST /api/hooks/habits/updated - Send a streak milestone push if one was reached

Once the signature checks out these always answer 200, even when the event
is malformed or processing fails, so the store never retries an event.
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.habits import Habit
from core.notifications.dispatcher import Dispatcher, get_dispatcher
from core.notifications.hooks import HookSignatureError, verify_hook_signature

router = APIRouter(prefix="/api/hooks/habits", tags=["hooks"])

logger = logging.getLogger(__name__)


class HabitSnapshot(BaseModel):
    """Habit fields as sent by the store (camelCase, like the mobile app)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    reminder_hour: int | None = Field(None, alias="reminderHour")
    reminder_minute: int | None = Field(None, alias="reminderMinute")
    streak: int | None = 0

    @field_validator("reminder_hour", "reminder_minute", mode="before")
    @classmethod
    def drop_malformed_reminder(cls, value):
        # Non-integer reminder values are treated as unset
        if isinstance(value, bool) or not isinstance(value, int):
            return None
        return value

    def to_habit(self, user_id: str, habit_id: str) -> Habit:
        return Habit(
            habit_id=habit_id,
            user_id=user_id,
            name=self.name,
            reminder_hour=self.reminder_hour,
            reminder_minute=self.reminder_minute,
            streak=self.streak or 0,
        )


class HabitCreatedEvent(BaseModel):
    user_id: str = Field(alias="userId")
    habit_id: str = Field(alias="habitId")
    habit: HabitSnapshot


class HabitUpdatedEvent(BaseModel):
    user_id: str = Field(alias="userId")
    habit_id: str = Field(alias="habitId")
    before: HabitSnapshot
    after: HabitSnapshot


async def _verified_body(request: Request, signature: str | None) -> bytes:
    body = await request.body()
    try:
        verify_hook_signature(body, signature)
    except HookSignatureError as e:
        logger.warning(f"Habit hook signature verification failed: {e}")
        raise HTTPException(status_code=401, detail=str(e))
    return body


@router.post("/created")
async def habit_created(
    request: Request,
    x_hook_signature: str | None = Header(None),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    body = await _verified_body(request, x_hook_signature)
    try:
        event = HabitCreatedEvent.model_validate_json(body)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed habit-created event: {e}")
        return {"status": "ignored", "message": "Malformed event"}

    scheduled = await dispatcher.on_habit_created(
        event.habit.to_habit(event.user_id, event.habit_id)
    )
    return {"status": "processed", "scheduled": scheduled}


@router.post("/updated")
async def habit_updated(
    request: Request,
    x_hook_signature: str | None = Header(None),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Check the streak transition and send a milestone push if reached."""
    body = await _verified_body(request, x_hook_signature)
    try:
        event = HabitUpdatedEvent.model_validate_json(body)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed habit-updated event: {e}")
        return {"status": "ignored", "message": "Malformed event"}

    result = await dispatcher.on_habit_updated(
        event.before.to_habit(event.user_id, event.habit_id),
        event.after.to_habit(event.user_id, event.habit_id),
    )
    return {
        "status": "processed",
        "milestone_sent": result.ok if result else False,
    }
