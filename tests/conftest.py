"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment variables before imports
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["PUBLIC_URL"] = "http://localhost:3000"
os.environ["PROVIDER_INTEGRATION_ENABLED"] = "true"
os.environ.pop("GOOGLE_ACCESS_TOKEN", None)

FIXED_NOW = datetime(2024, 4, 20, 12, 0, tzinfo=timezone.utc)


class FakeProvider:
    """In-memory stand-in for GoogleCalendarClient."""

    def __init__(self, events=None, calendar_id: str = "primary"):
        self.calendar_id = calendar_id
        self.events = list(events or [])
        self.list_calls = []
        self.deleted = []
        self.inserted = []
        self.list_error = None
        self.delete_error = None
        self.insert_error = None

    def list_events(self, time_min, time_max):
        self.list_calls.append((time_min, time_max))
        if self.list_error:
            raise self.list_error
        return [dict(event) for event in self.events]

    def delete_event(self, event_id):
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(event_id)
        return True

    def insert_event(self, body):
        if self.insert_error:
            raise self.insert_error
        created = {"id": f"g-new-{len(self.inserted) + 1}", **body}
        self.inserted.append(created)
        return created


@pytest_asyncio.fixture
async def test_db():
    """Create a test database."""
    from finsync.database import get_database, close_database
    import finsync.database as db_module

    # Reset the global connection
    db_module._db_connection = None

    db = await get_database()

    yield db

    await close_database()
    db_module._db_connection = None


@pytest_asyncio.fixture
async def async_client(test_db):
    """Create an async test client (lifespan is not run)."""
    from finsync.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def reset_sync_state():
    """Drop the shared engine and refresh subscribers between tests."""
    from finsync.sync import signals
    from finsync.sync.engine import reset_engine

    reset_engine()
    signals.clear_subscribers()
    yield
    reset_engine()
    signals.clear_subscribers()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def engine(test_db, fake_provider):
    """Engine wired to the fake provider and a fixed clock."""
    from finsync.sync.engine import SyncEngine

    return SyncEngine(provider=fake_provider, clock=lambda: FIXED_NOW)
