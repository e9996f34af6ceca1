"""
Pytest configuration and fixtures for testing.

Environment is set before any ``eventhub`` import so settings pick it up:
SQLite instead of Postgres, no Redis, no RabbitMQ, no rate limiting.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["ENVIRONMENT"] = "test"
os.environ["CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RUN_WORKER_IN_APP"] = "false"
os.environ["WAITLIST_AUTO_PROMOTE"] = "false"

import pytest
import pytest_asyncio
from typing import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from eventhub.main import create_app
from eventhub.db.session import Base, get_session
from eventhub.db.models import Event, User, RoleEnum
from eventhub.services.notification_trigger import NotificationTrigger
from tests.helpers import RecordingPublisher, auth_headers


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """
    A fresh SQLite file per test. NullPool gives every session its own
    connection so concurrent sessions are isolated like on Postgres.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'eventhub_test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session used by the test body and fixtures to arrange data."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def app(session_factory, publisher):
    """
    A fresh application per test: its own broadcaster, a trigger that
    publishes into ``publisher``, and one database session per request.
    """
    application = create_app()
    application.state.notification_trigger = NotificationTrigger(publisher=publisher, enabled=True)

    async def override_get_session():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_session] = override_get_session
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def broadcaster(app):
    return app.state.broadcaster


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    counter = {"n": 0}

    async def _make(role: RoleEnum = RoleEnum.user, notify_rsvp_updates: bool = True, full_name: str = None) -> User:
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            full_name=full_name or f"User {counter['n']}",
            role=role,
            notify_rsvp_updates=notify_rsvp_updates,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def make_event(db_session: AsyncSession) -> Callable:
    async def _make(creator: User, capacity: int = 2, title: str = "Test Event") -> Event:
        event = Event(
            title=title,
            description="A test event description",
            location="Test Location",
            starts_at=datetime.now(timezone.utc) + timedelta(days=7),
            capacity=capacity,
            created_by=creator.id,
        )
        db_session.add(event)
        await db_session.commit()
        await db_session.refresh(event)
        return event
    return _make


@pytest_asyncio.fixture
async def test_creator(make_user) -> User:
    """Owner of ``test_event``."""
    return await make_user(full_name="Event Creator")


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    return await make_user(full_name="Test User")


@pytest_asyncio.fixture
async def test_guest(make_user) -> User:
    return await make_user(role=RoleEnum.guest, full_name="Guest User")


@pytest_asyncio.fixture
async def test_admin(make_user) -> User:
    return await make_user(role=RoleEnum.admin, full_name="Admin User")


@pytest_asyncio.fixture
async def test_event(make_event, test_creator) -> Event:
    """Event with capacity 2."""
    return await make_event(test_creator, capacity=2)


@pytest.fixture
def user_headers(test_user: User) -> dict:
    return auth_headers(test_user)


@pytest.fixture
def creator_headers(test_creator: User) -> dict:
    return auth_headers(test_creator)
