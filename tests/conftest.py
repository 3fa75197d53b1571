"""
Shared pytest fixtures: an in-memory SQLite database, a frozen clock and a
recording notifier so booking flows run without SMTP or webhooks.
"""
import os
from datetime import datetime, timezone

# Settings is a module-level singleton; configure it before anything imports it
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_API_KEY"] = "test_admin_key"
os.environ["BUSINESS_TIMEZONE"] = "America/Toronto"
os.environ["NOTIFICATIONS_ENABLED"] = "true"
os.environ["REMINDER_SCHEDULER_ENABLED"] = "false"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import consultbook.db.base  # noqa: F401  registers every model on Base.metadata
from consultbook.db.session import Base
from consultbook.services.availability import AvailabilityService
from consultbook.services.appointments import AppointmentService
from consultbook.services.notifications import NotificationKind

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ADMIN_HEADERS = {"X-API-Key": "test_admin_key"}

# 2025-03-10 scenarios must be in the future relative to this
FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Stands in for NotificationDispatcher; keeps what would have been sent."""

    def __init__(self):
        self.sent = []
        self.admin = []

    def notify(self, kind: NotificationKind, appointment, **extra):
        self.sent.append((kind, appointment.id, extra))

    def notify_admin(self, subject: str, body: str, **payload):
        self.admin.append((subject, body, payload))

    def kinds(self):
        return [kind for kind, _, _ in self.sent]


class FailingNotifier(RecordingNotifier):
    def notify(self, kind, appointment, **extra):
        raise RuntimeError("smtp down")


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
def availability(db, clock):
    return AvailabilityService(db, clock=clock, default_timezone="America/Toronto")


@pytest.fixture
def appointments(db, availability, notifier):
    return AppointmentService(db, availability=availability, notifier=notifier)


@pytest.fixture
def booking_payload():
    """A valid booking for 2025-03-10 14:00 Toronto (EDT, UTC-4)."""
    return {
        "first_name": "Amina",
        "last_name": "Benali",
        "email": "amina.benali@gmail.com",
        "phone": "+1 514-555-0123",
        "country": "Canada",
        "appointment_date": "2025-03-10T14:00:00-04:00",
        "duration": 60,
        "consultation_type": "Immigration",
        "currency": "CAD",
        "user_timezone": "America/Toronto",
    }


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Pure unit tests with no database")
    config.addinivalue_line("markers", "integration: Tests that run against the SQLite database")


@pytest_asyncio.fixture
async def client(session_factory, notifier, clock):
    """HTTP client against the app with the test database, clock and notifier wired in."""
    import httpx

    from consultbook.api.deps import get_clock, get_notifier
    from consultbook.db.session import get_session
    from consultbook.main import app

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
