"""Postgres-backed fixtures for the repository and refresh round-trip tests.

Docker must be running; the container is shared by the whole session.
Run with: pytest tests/integration -v
"""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from debt.domain.orm import Base
from debt.repository import repository_scope
from debt.service import SleepDebtService

FROZEN_NOW = datetime(2024, 3, 16, 12, tzinfo=UTC)


@pytest.fixture(scope="session")
def pg_url():
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16-alpine", driver="asyncpg") as pg:
        yield pg.get_connection_url()


@pytest.fixture
async def async_engine(pg_url):
    """Fresh schema per test, built from the ORM metadata."""
    engine = create_async_engine(pg_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def build_service(session_factory):
    """Service over the real repository with UTC days and a frozen clock."""

    def build(source) -> SleepDebtService:
        return SleepDebtService(
            source=source,
            store_factory=lambda: repository_scope(session_factory),
            time_zone=ZoneInfo("UTC"),
            clock=lambda: FROZEN_NOW,
        )

    return build
