"""
Database Connection Module
Handles PostgreSQL connections using the SQLAlchemy async engine.

The engine is owned by a Database handle that the application creates in its
lifespan and stores on ``app.state``. Nothing in the service layer reaches for
a module-level engine; every operation receives its AsyncSession explicitly.
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import Settings

logger = logging.getLogger(__name__)


# Base class for all our models
class Base(DeclarativeBase):
    pass


class Database:
    """Process-wide storage handle: one engine, one session factory."""

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        self._engine_kwargs = engine_kwargs
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        kwargs = {"echo": settings.database_echo}
        if not settings.database_url.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
            )
        return cls(settings.database_url, **kwargs)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name if self.engine else "unknown"

    async def connect(self, create_tables: bool = True) -> None:
        """
        Create the engine and session factory.
        Called once at application startup.
        """
        self.engine = create_async_engine(self.url, **self._engine_kwargs)
        self.session_maker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Objects remain accessible after commit
        )
        if create_tables:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database connected ({self.dialect_name})")

    async def disconnect(self) -> None:
        """Drain the connection pool. Called once at shutdown."""
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database pool drained")
        self.engine = None
        self.session_maker = None

    async def session(self) -> AsyncIterator[AsyncSession]:
        if self.session_maker is None:
            raise RuntimeError("Database is not connected")
        async with self.session_maker() as session:
            try:
                yield session
            finally:
                await session.close()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a session from the application's Database handle.
    """
    database: Database = request.app.state.database
    async for session in database.session():
        yield session


def insert_for(session: AsyncSession, model):
    """
    Dialect-specific INSERT that supports ON CONFLICT clauses.

    PostgreSQL in production, SQLite for tests; both expose the same
    ``on_conflict_do_update`` / ``on_conflict_do_nothing`` API.
    """
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upserts are not supported on {dialect}")
    return insert(model)
