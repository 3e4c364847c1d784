# backend/libs/db.py
"""
Database factory for the async SQLAlchemy engine.

The engine is created explicitly at application startup
(``DatabaseFactory.initialize``) and disposed at shutdown, never at import
time. Request handlers obtain a session through the ``get_db`` dependency.
"""

import logging
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from libs.config import config

logger = logging.getLogger(__name__)


class DatabaseFactory:
    """
    Owns the engine and session maker for one process.

    Follows the singleton pattern so every service module shares the same
    engine.
    """

    _instance: Optional["DatabaseFactory"] = None

    def __new__(cls):
        """Singleton pattern - ensures only one factory instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._engine = None
            cls._instance._sessionmaker = None
        return cls._instance

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def initialize(self, database_url: Optional[str] = None, *, echo: Optional[bool] = None) -> None:
        """
        Create the engine and session maker.

        Args:
            database_url: SQLAlchemy async URL (defaults to config)
            echo: Log SQL statements (defaults to config)
        """
        if self._engine is not None:
            return
        url = database_url or config.database_url()
        self._engine = create_async_engine(
            url,
            echo=config.DATABASE_ECHO if echo is None else echo,
            pool_pre_ping=True,
        )
        self._sessionmaker = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine initialized")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("DatabaseFactory.initialize() has not been called")
        return self._engine

    async def create_tables(self, bases: Iterable[type[DeclarativeBase]]) -> None:
        """Create missing tables for each declarative base (local dev only)."""
        async with self.engine.begin() as conn:
            for base in bases:
                await conn.run_sync(base.metadata.create_all)

    async def dispose(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database engine disposed")

    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("DatabaseFactory.initialize() has not been called")
        async with self._sessionmaker() as session:
            yield session


def get_database_factory() -> DatabaseFactory:
    """Get or create the global database factory instance."""
    return DatabaseFactory()


async def get_db() -> AsyncIterator[AsyncSession]:
    """Async session for FastAPI dependency injection."""
    async for session in get_database_factory().session():
        yield session
