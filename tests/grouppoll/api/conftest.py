"""Shared fixtures for API tests."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="session")
def app_client():
    """Session-scoped test client; each test plugs in its own DB session."""
    from grouppoll.api.app import app

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client, app


@pytest.fixture
def client(app_client, db_session):
    """Get the test client and configure DB session for each test.

    Notifications and calendar sync are switched off so nothing leaves the test.
    """
    from grouppoll.common import settings
    from grouppoll.common.db.connection import get_session

    test_client, app = app_client

    def get_test_session():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_session] = get_test_session
    with (
        patch.object(settings, "NOTIFICATIONS_ENABLED", False),
        patch.object(settings, "CALENDAR_SYNC_URL", ""),
    ):
        yield test_client
    app.dependency_overrides.pop(get_session, None)


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {user.api_key}"}


@pytest.fixture
def other_headers(other_user):
    return {"Authorization": f"Bearer {other_user.api_key}"}
