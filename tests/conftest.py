"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; keep the app's default engine in memory
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("USE_FIREBASE", "false")

import pytest
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.ws import websocket_manager
from app.core.config import settings
from app.core.db import Base, get_db
from app.models import Party, Subscription  # noqa: F401  registers tables
from app.services.notifier import SmsResult, notification_dispatcher
from app.utils.security import rate_limiter
from main import app

TEST_DATABASE_URL = "sqlite:///:memory:"


class FakeNotifier:
    """Records sends instead of calling the SMS provider."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.sent = []
        self.fail = fail
        self.raise_error = raise_error

    async def send(self, phone, message):
        self.sent.append((phone, message))
        if self.raise_error:
            raise RuntimeError("provider unreachable")
        if self.fail:
            return SmsResult(success=False, error="rejected", status_code=400)
        return SmsResult(success=True, sid=f"SM{len(self.sent)}", status_code=201)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_notifier() -> Generator[FakeNotifier, None, None]:
    """Swap the dispatcher's SMS notifier for a recording fake."""
    original = notification_dispatcher.notifier
    notifier = FakeNotifier()
    notification_dispatcher.notifier = notifier
    yield notifier
    notification_dispatcher.notifier = original


@pytest.fixture(scope="function")
def client(db_session: Session, fake_notifier) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    rate_limiter.clear()
    websocket_manager.active_connections.clear()
    websocket_manager.projections.clear()
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def host_headers() -> dict:
    return {"Authorization": f"Bearer {settings.HOST_TOKEN}"}
