"""
Pytest configuration and fixtures for Stageline tests.
"""

import os

# Must be set before stageline.database builds its engine
os.environ.setdefault("STAGELINE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from contextlib import asynccontextmanager
from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import stageline.models  # noqa: F401
from stageline.main import app
from stageline.database import get_session
from stageline.schemas import Stage


# In-memory SQLite shared across connections
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_stage(stage_id: str, number_index: int, duration: int | None = 3, deps=(), **fields) -> Stage:
    """Build a Stage with sensible defaults for tests."""
    return Stage(
        id=stage_id,
        name=fields.pop("name", f"Stage {stage_id}"),
        number_index=number_index,
        estimated_duration=duration,
        dependencies=list(deps),
        **fields,
    )


@pytest.fixture
def stage():
    """Factory fixture: stage("B", 2, 2, ["A"])."""
    return make_stage


@pytest.fixture
def project_start() -> date:
    return date(2025, 1, 1)


@pytest.fixture
def fan_out_stages() -> list[Stage]:
    """A(3) -> B(2), A(3) -> C(5), already scheduled from 2025-01-01."""
    return [
        make_stage("A", 1, 3, start_date=date(2025, 1, 1), end_date=date(2025, 1, 4)),
        make_stage("B", 2, 2, ["A"], start_date=date(2025, 1, 5), end_date=date(2025, 1, 7)),
        make_stage("C", 3, 5, ["A"], start_date=date(2025, 1, 5), end_date=date(2025, 1, 10)),
    ]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_maker):
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def session_context(session_maker):
    """Drop-in replacement for stageline.database.get_session_context."""

    @asynccontextmanager
    async def _session_context():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _session_context


@pytest.fixture
def enqueued(monkeypatch):
    """Capture cascade jobs instead of sending them to Redis."""
    jobs = []

    async def fake_enqueue(project_id, stage_id, version_id, pull_earlier=False):
        jobs.append((project_id, stage_id, version_id, pull_earlier))

    monkeypatch.setattr("stageline.routes.stages.enqueue_cascade", fake_enqueue)
    return jobs


@pytest_asyncio.fixture(scope="function")
async def client(session_maker, enqueued):
    """Create an async test client with test database."""

    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
