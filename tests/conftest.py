"""
Pytest fixtures for test database, client, clock and authentication.

Each test gets a fresh SQLite file database (set TEST_DATABASE_URL to run
against PostgreSQL instead). Every request and every service call opens its
own session from the same factory, so concurrent joins really do run in
separate transactions. Time is pinned with a FrozenClock.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./fitstudio_unused.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("STUDIO_TIMEZONE", "UTC")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fitstudio.main import app
from fitstudio.core.clock import Clock, get_clock
from fitstudio.core.security import Principal, create_access_token
from fitstudio.db.base import Base
from fitstudio.db.session import get_db
from fitstudio.models.booking import Booking, BookingStatus
from fitstudio.models.term import Term, TermStatus
from fitstudio.models.user import User, UserRole

# Wednesday; its week runs Mon 2026-10-12 .. Sun 2026-10-18, next Monday is 2026-10-19
NOW = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> None:
        self._now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest_asyncio.fixture
async def engine(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    test_engine = create_async_engine(url, echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory, clock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a session per request and the frozen clock."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(db: AsyncSession, email: str, role: str, first_name: str = "", last_name: str = "") -> User:
    user = User(email=email, role=role, first_name=first_name, last_name=last_name)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_term(
    db: AsyncSession,
    trainer: User,
    starts_at: datetime,
    hours: int = 2,
    capacity: int = 10,
    status: str = TermStatus.SCHEDULED,
    workout_description: str = "",
    ends_at: Optional[datetime] = None,
) -> Term:
    """Insert a term directly, bypassing validation and the overlap check."""
    term = Term(
        capacity=capacity,
        starts_at=starts_at,
        ends_at=ends_at or starts_at + timedelta(hours=hours),
        status=status,
        trainer_id=trainer.id,
        workout_description=workout_description,
        created_by=trainer.id,
    )
    db.add(term)
    await db.commit()
    await db.refresh(term)
    return term


async def create_booking(db: AsyncSession, term: Term, user: User, status: str = BookingStatus.ACTIVE) -> Booking:
    booking = Booking(term_id=term.id, user_id=user.id, status=status)
    db.add(booking)
    await db.commit()
    await db.refresh(booking)
    return booking


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


def principal_of(user: User) -> Principal:
    return Principal(id=user.id, role=user.role)


@pytest_asyncio.fixture
async def admin(db_session) -> User:
    return await create_user(db_session, "admin@studio.test", UserRole.ADMIN, "Ana", "Admin")


@pytest_asyncio.fixture
async def trainer(db_session) -> User:
    return await create_user(db_session, "trainer@studio.test", UserRole.TRAINER, "Tina", "Trainer")


@pytest_asyncio.fixture
async def other_trainer(db_session) -> User:
    return await create_user(db_session, "coach@studio.test", UserRole.TRAINER, "Ivo", "Coach")


@pytest_asyncio.fixture
async def members(db_session) -> list[User]:
    return [
        await create_user(db_session, f"member{i}@studio.test", UserRole.MEMBER, f"Member{i}")
        for i in range(8)
    ]


@pytest_asyncio.fixture
async def member(members) -> User:
    return members[0]


@pytest_asyncio.fixture
async def upcoming_term(db_session, trainer) -> Term:
    """Thursday 10:00-12:00 in the current week, capacity 2."""
    return await create_term(db_session, trainer, datetime(2026, 10, 15, 10, 0, tzinfo=timezone.utc), capacity=2)
