"""
Push notification routes.

Endpoints:
- GET /api/notifications/test?userId=... - Send a test push to one user
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from core.notifications.dispatcher import (
    Dispatcher,
    MissingPushTokenError,
    RecipientNotFoundError,
    get_dispatcher,
)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

logger = logging.getLogger(__name__)


@router.get("/test")
async def send_test_notification(
    user_id: str | None = Query(None, alias="userId"),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Send a fixed test push notification to a user's registered device.

    Used to smoke-test push delivery end to end.
    """
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=400, detail="userId is required")

    try:
        result = await dispatcher.send_test_notification(user_id)
    except RecipientNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except MissingPushTokenError:
        raise HTTPException(status_code=400, detail="User has no push token")
    except Exception as e:
        logger.error(f"Test notification for user {user_id} failed: {e}")
        raise HTTPException(
            status_code=500, detail=f"Error sending notification: {e}"
        )

    return {
        "status": "sent" if result.ok else "failed",
        "sent": result.ok,
        "message_id": result.message_id,
        "error": result.error,
    }
