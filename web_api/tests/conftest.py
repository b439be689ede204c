# web_api/tests/conftest.py
"""Pytest fixtures for web API tests.

Routes get the in-memory dispatcher from the root conftest instead of the
database/FCM-backed one, so API tests run without Postgres or Firebase.
"""

import pytest
from fastapi.testclient import TestClient

from core.notifications.dispatcher import get_dispatcher


@pytest.fixture
def client(dispatcher):
    """Create a test client for the FastAPI app (lifespan not started)."""
    from main import app

    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def hook_secret(monkeypatch):
    monkeypatch.setenv("HABIT_HOOK_SECRET", "test-hook-secret")
    return "test-hook-secret"
