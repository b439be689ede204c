"""
Habit notification service entry point.

Architecture:
- One Python process, one asyncio event loop
- Two peer services running concurrently:
  1. FastAPI (test-send endpoint and habit change hooks)
  2. APScheduler per-minute reminder tick

We use FastAPI's lifespan to manage startup/shutdown, which gives us
uvicorn's signal handling and --reload for free.

Run with: python main.py [--no-scheduler] [--port PORT]
"""

import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Set up import paths before any local imports
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

# Load .env.local first (if exists), then .env as fallback
# .env.local is gitignored and used for local dev overrides
load_dotenv(project_root / ".env.local")  # Local overrides (gitignored)
load_dotenv()  # Fallback to .env

import sentry_sdk
from fastapi import FastAPI

from core.config import check_required_env_vars, get_api_port, is_scheduler_disabled
from core.database import close_engine
from core.notifications import close_dispatcher, init_scheduler, shutdown_scheduler
from core.notifications.scheduler import is_scheduler_running

from web_api.routes.hooks import router as hooks_router
from web_api.routes.notifications import router as notifications_router

if os.environ.get("SENTRY_DSN"):
    sentry_sdk.init(
        dsn=os.environ["SENTRY_DSN"],
        environment=os.environ.get("RAILWAY_ENVIRONMENT", "development"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    Starts the reminder tick alongside the HTTP server and tears everything
    down on shutdown.
    """
    ok, warnings = check_required_env_vars()
    for warning in warnings:
        print(warning)
    if not ok:
        raise RuntimeError("Missing required environment variables")

    if is_scheduler_disabled():
        print("Reminder scheduler disabled (--no-scheduler or DISABLE_SCHEDULER=true)")
    else:
        init_scheduler()

    yield  # FastAPI runs here, the tick runs alongside it

    print("Shutting down peer services...")
    shutdown_scheduler()
    await close_dispatcher()
    await close_engine()  # Close database connections


app = FastAPI(
    title="Habit Notification Service",
    lifespan=lifespan,
)

app.include_router(notifications_router)
app.include_router(hooks_router)


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health():
    """Health check endpoint with scheduler status."""
    return {
        "status": "healthy",
        "scheduler_running": is_scheduler_running(),
    }


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Habit Notification Service")
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Don't start the reminder tick (useful for running multiple servers)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=get_api_port(),
        help="Port to run the server on (default: API_PORT or 8000)",
    )
    args = parser.parse_args()

    # Set env var so it persists across uvicorn reloads
    if args.no_scheduler:
        os.environ["DISABLE_SCHEDULER"] = "true"

    # Pass app object directly (not string) to avoid module reimport issues
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
    )
