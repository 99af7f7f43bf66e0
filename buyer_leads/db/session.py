# buyer_leads/db/session.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import StorageError
from buyer_leads.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

# Global engine instance
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def create_database_engine() -> AsyncEngine:
    """Create and configure the async database engine."""
    global engine, AsyncSessionLocal

    if engine is not None:
        return engine

    if settings.is_testing or not settings.is_postgres:
        # NullPool keeps test and sqlite runs free of shared connections
        engine = create_async_engine(
            settings.database_url,
            poolclass=NullPool,
            echo=settings.debug,
        )
    else:
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.debug,
            connect_args={
                "command_timeout": 60,
                "server_settings": {
                    "application_name": "buyer_leads_api",
                    "statement_timeout": str(settings.database_statement_timeout * 1000),
                },
            },
        )

    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info(
        "database.engine.created",
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        testing=settings.is_testing,
    )

    return engine


async def dispose_engine() -> None:
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("database.connection_closed")
    engine = None
    AsyncSessionLocal = None


async def create_schema() -> None:
    """Create all tables from the ORM metadata."""
    from buyer_leads.db.base import Base
    import buyer_leads.models  # noqa: F401  registers the mappers

    create_database_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.schema_created")


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for dependency injection."""
    if AsyncSessionLocal is None:
        create_database_engine()

    session = AsyncSessionLocal()

    try:
        yield session

    except SQLAlchemyError as e:
        logger.error("database.session_error", error=str(e))
        await session.rollback()
        raise StorageError(
            message="Database session error",
            details={"error": str(e)},
        ) from e

    finally:
        await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a block atomically on ``session``.

    Commits when the block completes, rolls back on any exception. Storage
    failures surface as ``StorageError``; everything else is re-raised as is.
    """
    if session.in_transaction():
        # Autobegun by an earlier read on this session; close it out first.
        await session.commit()

    try:
        async with session.begin():
            yield session
    except SQLAlchemyError as e:
        logger.error("database.transaction_error", error=str(e))
        raise StorageError(
            message="Database transaction failed",
            details={"error": str(e)},
        ) from e


async def health_check() -> dict:
    """Check database health."""
    if engine is None:
        create_database_engine()

    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            row = result.fetchone()
        return {"status": "healthy" if row and row[0] == 1 else "unhealthy"}

    except SQLAlchemyError as e:
        logger.error("database.health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
