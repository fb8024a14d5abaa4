"""
Database Session Management
SignalBridge Webhook Relay

Provides async database connection with:
- Connection pooling (server databases)
- Context manager support
- Health check capabilities
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings


# Drivers raise OSError subclasses (e.g. ConnectionRefusedError) before
# SQLAlchemy has a connection to wrap them in
STORAGE_ERRORS = (SQLAlchemyError, OSError)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    options = {
        "echo": echo,
        "future": True,
        "pool_pre_ping": True,  # Verify connections before use
    }
    if not url.startswith("sqlite"):
        options.update(
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=1800,  # Recycle connections after 30 minutes
        )
    return create_async_engine(url, **options)


class Database:
    """
    Database service for application-level operations.

    Owns the engine and session factory; handed to repositories.
    """

    def __init__(self, url: Optional[str] = None, echo: bool = False):
        self.url = url or settings.DATABASE_URL
        self.engine = build_engine(self.url, echo=echo)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database sessions.

        Usage:
            async with db.session() as session:
                result = await session.execute(query)
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_models(self) -> None:
        """
        Create tables if they do not exist.

        Note: In production, use migrations instead.
        """
        from app.db.base import Base
        # Import models module to register all models with Base
        from app.db import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """
        Check database connectivity.

        Returns True if database is accessible.
        """
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
                return True
        except Exception:
            return False

    async def close(self) -> None:
        """Close all database connections."""
        await self.engine.dispose()
