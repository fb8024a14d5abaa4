"""
Base Repository Pattern Implementation
SignalBridge Webhook Relay

Repositories are long-lived (held by services for the life of the
process), so each call opens its own session from the Database.
"""

from typing import Generic, List, Type, TypeVar

from sqlalchemy import select, func

from app.db.base import Base
from app.db.session import Database


# Type variables
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic async repository.

    Type Parameters:
        ModelType: SQLAlchemy model class
    """

    def __init__(self, model: Type[ModelType], database: Database):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            database: Database owning the session factory
        """
        self.model = model
        self.database = database

    async def get_all(self, limit: int = 100) -> List[ModelType]:
        """Get up to ``limit`` records."""
        async with self.database.session() as session:
            result = await session.execute(select(self.model).limit(limit))
            return list(result.scalars().all())

    async def count(self) -> int:
        """Count all records."""
        async with self.database.session() as session:
            result = await session.execute(select(func.count()).select_from(self.model))
            return result.scalar_one()
