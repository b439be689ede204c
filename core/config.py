"""
Centralized configuration for the habit notification service.

All settings come from environment variables (loaded from .env / .env.local
by main.py). Accessors are functions so tests can monkeypatch the environment.
"""

import os


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("true", "1", "yes")


def is_dev_mode() -> bool:
    """Check if running in development mode (DEV_MODE env)."""
    return _env_flag("DEV_MODE")


def is_production() -> bool:
    """Check if running on Railway (production environment)."""
    return bool(os.environ.get("RAILWAY_ENVIRONMENT"))


def get_api_port() -> int:
    """Get API server port from env or default."""
    return int(os.getenv("API_PORT", "8000"))


def is_scheduler_disabled() -> bool:
    """Check if the per-minute reminder tick should not be started."""
    return _env_flag("DISABLE_SCHEDULER")


def get_reminder_timezone() -> str:
    """
    Get the IANA timezone whose wall clock reminder times are compared against.

    Habits store a bare hour/minute, so every reminder is evaluated on this
    single clock.
    """
    return os.getenv("REMINDER_TIMEZONE", "UTC")


def get_dispatch_concurrency() -> int:
    """Get the max number of reminders evaluated/delivered at once in a pass."""
    return max(1, int(os.getenv("DISPATCH_CONCURRENCY", "10")))


def get_push_timeout() -> float:
    """Get the per-delivery timeout in seconds."""
    return float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))


def get_hook_secret() -> str | None:
    """Get the shared secret used to sign habit change hooks."""
    return os.getenv("HABIT_HOOK_SECRET") or None


# Required environment variables for production
# Format: (name, description, required_in_dev)
REQUIRED_ENV_VARS = [
    ("DATABASE_URL", "PostgreSQL connection string", True),
    ("FCM_PROJECT_ID", "Firebase project that owns the app's push tokens", False),
    ("HABIT_HOOK_SECRET", "Shared secret for habit change hooks", False),
]


def check_required_env_vars() -> tuple[bool, list[str]]:
    """
    Check that required environment variables are set.

    Returns:
        (all_ok, warnings): Tuple of success flag and list of warning messages
    """
    warnings = []
    errors = []
    in_dev = is_dev_mode()

    for name, description, required_in_dev in REQUIRED_ENV_VARS:
        value = os.environ.get(name)

        if not value:
            if is_production():
                errors.append(f"  ✗ {name}: Not set ({description})")
            elif required_in_dev or not in_dev:
                warnings.append(f"  ⚠ {name}: Not set ({description})")

    if errors:
        for error in errors:
            print(error)
        return False, warnings

    return True, warnings
