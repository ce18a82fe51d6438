"""
Database Connection Management

Async database handle built on SQLAlchemy 2.0. A ``Database`` instance owns
the engine and the session factory and is passed explicitly to whatever
needs storage access; there is no module-level engine.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from order_analytics.config.settings import DatabaseSettings
from order_analytics.database.models import Base

logger = structlog.get_logger(__name__)


class Database:
    """
    Explicit storage handle.

    Wraps one async engine and its session factory. Every unit of work is a
    fresh session from ``session()``; sessions are never shared between
    events.

    Example:
        database = Database(settings.database)
        await database.connect()
        async with database.session() as session:
            await session.execute(query)
    """

    def __init__(self, config: DatabaseSettings, engine: Optional[AsyncEngine] = None):
        self.config = config
        self._engine = engine or create_async_engine(
            config.async_url,
            echo=config.echo,
            pool_pre_ping=True,
            # asyncpg handles its own connection pooling internally
            poolclass=NullPool,
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    async def connect(self, create_schema: bool = True) -> None:
        """
        Verify connectivity and create missing tables.

        Args:
            create_schema: Run ``CREATE TABLE IF NOT EXISTS`` for all models
        """
        try:
            async with self._engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                if create_schema:
                    await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            logger.error("Failed to connect to database", error=str(e))
            raise

        logger.info(
            "Database connection established",
            dialect=self.dialect_name,
            schema_created=create_schema,
        )

    async def close(self) -> None:
        """Dispose of the engine and every pooled connection."""
        await self._engine.dispose()
        logger.info("Database connection pool closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Scoped unit of work.

        Commits when the block exits normally, rolls back when it raises.
        The session is always closed; closing a session with an open
        transaction discards it, which also covers task cancellation.

        Yields:
            AsyncSession: Database session
        """
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.warning(
                "Database session error, rolling back",
                error=str(e),
                error_type=type(e).__name__,
            )
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_health(self) -> dict:
        """
        Check database health status.

        Returns:
            dict: Health status with latency information
        """
        try:
            start = time.perf_counter()
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency_ms, 2),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }
