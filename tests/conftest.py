"""Pytest configuration and fixtures."""

import os

# Point the application at SQLite before any parkwallet module builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./parkwallet_import.db")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from parkwallet.db.models import Base, Subject
from parkwallet.db.session import get_db
from parkwallet.main import app
from parkwallet.services.fees import FeePolicy
from parkwallet.services.parking import ParkingCoordinator
from parkwallet.store.directory import Directory
from parkwallet.store.ledger import Ledger
from parkwallet.store.sessions import SessionStore

T0 = datetime(2026, 3, 2, 8, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for the coordinator."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'parkwallet_test.db'}",
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a clean database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def coordinator(db_session: AsyncSession, clock: FakeClock) -> ParkingCoordinator:
    return ParkingCoordinator(
        sessions=SessionStore(db_session),
        ledger=Ledger(db_session),
        directory=Directory(db_session),
        fees=FeePolicy(normal_rate=2000, penalty_rate=10000, penalty_threshold_hours=24),
        clock=clock,
    )


@pytest.fixture(scope="function")
def make_subject(db_session: AsyncSession) -> Callable:
    """Insert a directory record, optionally with a funded wallet."""

    async def _make(
        subject_id: str = "U1",
        credential: Optional[str] = "RFID-U1",
        vehicles: Optional[list] = None,
        vehicle_plates: Optional[list] = None,
        role: str = "user",
        balance: Optional[int] = 50000,
    ) -> Subject:
        subject = Subject(
            subject_id=subject_id,
            username=f"user-{subject_id.lower()}",
            email=f"{subject_id.lower()}@example.com",
            credential=credential,
            role=role,
            vehicles=vehicles if vehicles is not None else [
                {"plate": "B1234XY", "description": "Silver hatchback"}
            ],
            vehicle_plates=vehicle_plates,
        )
        db_session.add(subject)
        await db_session.commit()
        if balance is not None:
            await Ledger(db_session).create(subject_id, initial_balance=balance)
        return subject

    return _make


@pytest.fixture(scope="function")
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async test client; every request gets its own session like in production."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def as_user(subject_id: str = "U1") -> dict:
    return {"X-Subject-ID": subject_id, "X-Subject-Role": "user"}


def as_admin(subject_id: str = "ADMIN") -> dict:
    return {"X-Subject-ID": subject_id, "X-Subject-Role": "admin"}
