"""
Database Session Management - Async SQLAlchemy session factory.

The journal lives in a local SQLite file; one engine per database URL.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gowise_premium.config import settings
from gowise_premium.db.models import Base


class JournalDatabase:
    """Engine and session factory for the purchase journal."""

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url or settings.journal_database_url
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Get or create the engine."""
        if self._engine is None:
            self._engine = create_async_engine(
                self.database_url,
                echo=settings.log_level == "DEBUG",
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    async def create_schema(self) -> None:
        """Create journal tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Get an async database session.

        Usage:
            async with db.session() as session:
                await session.execute(...)
                await session.commit()
        """
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    async def close(self) -> None:
        """Dispose of the engine (for graceful shutdown)."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
