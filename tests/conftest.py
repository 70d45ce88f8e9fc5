"""Pytest configuration and fixtures for the access control tests.

Every test gets its own SQLite file so that separate sessions (and therefore
separate connections) can race against each other like concurrent requests.
"""
import itertools
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from fastapi import Depends, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database.engine import get_db, init_db
from app.core.errors import UnauthorizedError
from app.core.rate_limit import limiter
from app.features.permissions.dependencies import get_event_publisher
from app.features.permissions.enums import Position
from app.features.permissions.events import AuditEvent, EventPublisher, NotificationEvent
from app.features.permissions.policy import PolicyTable, build_default_policy
from app.features.permissions.resolver import PermissionResolver
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.main import app


class RecordingEventPublisher(EventPublisher):
    """Keeps every published event for assertions."""

    def __init__(self):
        self.audits: list[AuditEvent] = []
        self.notifications: list[NotificationEvent] = []

    def publish_audit(self, event: AuditEvent) -> None:
        super().publish_audit(event)
        self.audits.append(event)

    def publish_notification(self, event: NotificationEvent) -> None:
        super().publish_notification(event)
        self.notifications.append(event)


# ── Database ─────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Policy and events ────────────────────────────────────────────

@pytest.fixture
def policy() -> PolicyTable:
    return build_default_policy()


@pytest.fixture
def resolver(policy) -> PermissionResolver:
    return PermissionResolver(policy)


@pytest.fixture
def events() -> RecordingEventPublisher:
    return RecordingEventPublisher()


# ── Users ────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    counter = itertools.count(1)

    async def _make(position: Position, name: str | None = None) -> User:
        n = next(counter)
        user = User(
            appwrite_id=f"appwrite-{n}",
            email=f"staff{n}@clinic.com",
            name=name or f"{position.value.title()} {n}",
            position=position,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def nurse(make_user) -> User:
    return await make_user(Position.NURSE, "Nina Nurse")


@pytest_asyncio.fixture
async def receptionist(make_user) -> User:
    return await make_user(Position.RECEPTIONIST, "Rita Reception")


@pytest_asyncio.fixture
async def manager(make_user) -> User:
    return await make_user(Position.MANAGER, "Mark Manager")


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user(Position.ADMIN, "Ada Admin")


# ── HTTP client ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory, events) -> AsyncGenerator[AsyncClient, None]:
    """
    Client for the app with the database, identity and publisher overridden.

    The bearer token is taken to be the user id, skipping Appwrite.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            raise UnauthorizedError()
        user = await db.get(User, header.removeprefix("Bearer "))
        if user is None:
            raise UnauthorizedError("Unknown test user")
        return user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_event_publisher] = lambda: events
    limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
