"""
Pytest fixtures for test database, client, and identity headers.

Each test gets its own SQLite file, so sessions opened by the detector see
the same data as the request-scoped sessions.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./library_seats_test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DETECTION_AUTOSTART", "false")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from library_seats.main import app
from library_seats.db.base import Base
from library_seats.db.session import get_db
from library_seats.models.user import User, UserRole
from library_seats.models.seat import Seat
from library_seats.services.location_service import DisabledLocationVerifier, get_location_verifier
from library_seats.services.violation_detector import ViolationDetector
from library_seats.services.violation_rules import RuleStore

# Fixed instant used by the service-level tests
T = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh SQLite file, yield a session factory, then dispose."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def rule_store() -> RuleStore:
    return RuleStore()


@pytest.fixture
def detector(session_factory, rule_store) -> ViolationDetector:
    return ViolationDetector(session_factory=session_factory, rule_store=rule_store)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, detector) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with get_db bound to the test database and location checks disabled."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_location_verifier] = DisabledLocationVerifier
    app.state.detector = detector

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await detector.stop_auto_detection()
    app.dependency_overrides.clear()


async def _add(session: AsyncSession, obj):
    session.add(obj)
    await session.commit()
    await session.refresh(obj)
    return obj


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _add(db_session, User(username="student1", name="Student One", email="s1@example.com"))


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _add(db_session, User(username="student2", name="Student Two"))


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _add(db_session, User(username="librarian", name="Librarian", role=UserRole.ADMIN.value))


@pytest_asyncio.fixture
async def test_seat(db_session: AsyncSession) -> Seat:
    return await _add(
        db_session,
        Seat(number="A-101", area="A", floor=1, row=1, col=1, features=["power", "window"]),
    )


@pytest_asyncio.fixture
async def second_seat(db_session: AsyncSession) -> Seat:
    return await _add(db_session, Seat(number="A-102", area="A", floor=1, row=1, col=2, features=[]))


@pytest.fixture
def user_headers(test_user: User) -> dict:
    return {"X-User-Id": str(test_user.id)}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return {"X-User-Id": str(admin_user.id)}


def upcoming_range(start_in_minutes: int = 5, hours: int = 2) -> dict:
    """Request body times relative to the real clock, for API tests."""
    start = datetime.now(timezone.utc) + timedelta(minutes=start_in_minutes)
    return {
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=hours)).isoformat(),
    }
