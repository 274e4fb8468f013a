"""Database engine, async session factory and the transactional session scope."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shared.config import settings
from shared.exceptions import PersistenceFailureError

logger = structlog.get_logger()

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> AsyncIterator[AsyncSession]:
    """Yield a session whose uncommitted work is discarded on exit.

    Any SQLAlchemyError raised inside the scope rolls the transaction back and
    surfaces as PersistenceFailureError.
    """
    async with factory() as session:
        try:
            yield session
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("store_transaction_failed", error=type(exc).__name__)
            raise PersistenceFailureError(type(exc).__name__) from exc
