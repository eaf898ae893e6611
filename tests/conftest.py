"""
Test configuration and fixtures.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator

# Configure the app for tests before importing it
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["NOTIFICATION_DISPATCH_MODE"] = "inline"
os.environ.pop("STAFF_ALERT_PHONE", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from app.core.config import Settings, get_settings
from app.database import Database
from app.main import app, install_services
from app.services.alerts import AlertLedger
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.notifications.mock import MockPushService
from app.services.tables import TableStateStore


class Clock:
    """Deterministic replacement for ``utcnow`` in service modules."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest_asyncio.fixture
async def database() -> AsyncIterator[Database]:
    """Fresh in-memory database per test."""
    db = Database("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await db.connect()
    yield db
    await db.disconnect()


@pytest_asyncio.fixture
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.session_maker() as s:
        yield s


@pytest.fixture
def push_service() -> MockPushService:
    return MockPushService()


@pytest.fixture
def dispatcher(push_service: MockPushService, settings: Settings) -> NotificationDispatcher:
    return NotificationDispatcher(push_service, settings)


@pytest.fixture
def tables() -> TableStateStore:
    return TableStateStore()


@pytest.fixture
def ledger() -> AlertLedger:
    return AlertLedger()


@pytest.fixture
def clock(monkeypatch) -> Clock:
    """Freeze ``utcnow`` for the table and alert services."""
    c = Clock()
    monkeypatch.setattr("app.services.tables.utcnow", c)
    monkeypatch.setattr("app.services.alerts.utcnow", c)
    return c


def make_client(database: Database, push_service: MockPushService, config: Settings) -> AsyncClient:
    install_services(app, database, push_service, config)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def client(database: Database, push_service: MockPushService, settings: Settings) -> AsyncIterator[AsyncClient]:
    """API client wired to the test database and the mock push service."""
    async with make_client(database, push_service, settings) as c:
        yield c
    await app.state.dispatcher.drain(1.0)
