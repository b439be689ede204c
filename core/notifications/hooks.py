"""Signature verification for habit change hooks sent by the habit store."""

import hashlib
import hmac

from core.config import get_hook_secret


class HookSignatureError(Exception):
    """Raised when hook signature verification fails."""

    pass


def compute_hook_signature(payload: bytes, secret: str) -> str:
    """Compute the X-Hook-Signature header value for a payload."""
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_hook_signature(payload: bytes, signature_header: str | None) -> None:
    """
    Verify a habit change hook signature.

    Args:
        payload: Raw request body bytes
        signature_header: Value of X-Hook-Signature header

    Raises:
        HookSignatureError: If signature is invalid or secret not configured
    """
    secret = get_hook_secret()
    if not secret:
        raise HookSignatureError("HABIT_HOOK_SECRET not configured")

    if not signature_header or not signature_header.startswith("sha256="):
        raise HookSignatureError("Invalid signature header format")

    if not hmac.compare_digest(signature_header, compute_hook_signature(payload, secret)):
        raise HookSignatureError("Signature verification failed")
