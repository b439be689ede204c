"""Firebase Cloud Messaging (HTTP v1) push delivery channel."""

import asyncio
import json
import logging
import os

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from core.config import get_push_timeout
from core.notifications.types import DeliveryResult, NotificationJob

logger = logging.getLogger(__name__)

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"


def build_fcm_message(job: NotificationJob) -> dict:
    """
    Build the HTTP v1 request body for a job.

    FCM requires every data value to be a string.
    """
    message: dict = {
        "token": job.token,
        "notification": {"title": job.title, "body": job.body},
    }
    if job.data:
        message["data"] = {key: str(value) for key, value in job.data.items()}
    return {"message": message}


def _load_credentials() -> service_account.Credentials | None:
    """
    Load the service account used to authorize sends.

    Supports credentials from:
    - FCM_CREDENTIALS_JSON env var (for Railway/Heroku)
    - FCM_CREDENTIALS_FILE path (for local dev)
    """
    credentials_json = os.environ.get("FCM_CREDENTIALS_JSON")
    credentials_file = os.environ.get("FCM_CREDENTIALS_FILE")

    try:
        if credentials_json:
            return service_account.Credentials.from_service_account_info(
                json.loads(credentials_json),
                scopes=FCM_SCOPES,
            )
        if credentials_file and os.path.exists(credentials_file):
            return service_account.Credentials.from_service_account_file(
                credentials_file,
                scopes=FCM_SCOPES,
            )
    except Exception as e:
        logger.warning(f"Failed to load FCM service account credentials: {e}")
    return None


def _describe_error(response: httpx.Response) -> str:
    try:
        detail = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        detail = response.text[:500]
    return f"FCM returned {response.status_code}: {detail}"


class PushGateway:
    """
    Thin adapter over FCM's messages:send endpoint.

    send() never raises: every transport, auth or provider failure comes back
    as DeliveryResult(ok=False) so one bad token cannot affect other sends.
    """

    def __init__(
        self,
        project_id: str | None,
        credentials: service_account.Credentials | None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.project_id = project_id
        self.credentials = credentials
        self.timeout = timeout
        self._client = client
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_env(cls) -> "PushGateway":
        return cls(
            project_id=os.environ.get("FCM_PROJECT_ID"),
            credentials=_load_credentials(),
            timeout=get_push_timeout(),
        )

    def is_configured(self) -> bool:
        return bool(self.project_id and self.credentials)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _get_access_token(self) -> str:
        # Credentials.refresh() is blocking (requests transport)
        async with self._token_lock:
            if not self.credentials.valid:
                await asyncio.to_thread(self.credentials.refresh, Request())
            return self.credentials.token

    async def send(self, job: NotificationJob) -> DeliveryResult:
        """
        Send one push notification.

        Args:
            job: The notification to deliver

        Returns:
            DeliveryResult with the FCM message name on success
        """
        if not self.is_configured():
            logger.warning("Push not configured (FCM_PROJECT_ID or credentials missing)")
            return DeliveryResult(ok=False, error="push not configured")

        try:
            access_token = await self._get_access_token()
            response = await self._get_client().post(
                FCM_SEND_URL.format(project_id=self.project_id),
                json=build_fcm_message(job),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except Exception as e:
            logger.warning(f"Failed to send {job.kind.value} push to user {job.user_id}: {e}")
            return DeliveryResult(ok=False, error=str(e) or type(e).__name__)

        if not response.is_success:
            error = _describe_error(response)
            logger.warning(f"Push for user {job.user_id} rejected: {error}")
            return DeliveryResult(ok=False, error=error)

        try:
            message_id = response.json().get("name")
        except ValueError:
            message_id = None
        return DeliveryResult(ok=True, message_id=message_id)

    async def aclose(self) -> None:
        """Close the underlying HTTP client. Call on shutdown."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
