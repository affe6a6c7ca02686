"""Pytest fixtures for API tests.

Provides a TestClient whose database dependency points at the in-memory
test database and whose tool client talks to the upstream fake.
"""

from collections.abc import Generator

import pytest
import sse_starlette.sse as sse_module
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from stratagen.api.main import app
from stratagen.db.connection import get_db
from tests.helpers.api_client import CRON_SECRET
from tests.helpers.fake_upstream import FakeUpstream, make_settings, make_tool_client


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """Each TestClient runs its own event loop; drop the cached exit event."""
    app_status = getattr(sse_module, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield

@pytest.fixture
def client(test_db: Session, fake_upstream: FakeUpstream) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden database and upstreams.

    Args:
        test_db: Test database session fixture.
        fake_upstream: Fake tool service and provider.

    Yields:
        TestClient configured for testing.
    """

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        settings = make_settings(cron_secret=CRON_SECRET)
        app.state.settings = settings
        app.state.tool_client = make_tool_client(fake_upstream, settings)
        yield c
    app.dependency_overrides.clear()
