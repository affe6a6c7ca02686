"""Root-level pytest fixtures for all tests.

Points the application at an in-memory database before any stratagen
module is imported, and provides the upstream fake.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stratagen.db.models import Base
from tests.helpers.fake_upstream import FakeUpstream


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing.

    Creates all tables, yields a session, and cleans up after test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    """Fake tool service and provider with no routes configured."""
    return FakeUpstream()
