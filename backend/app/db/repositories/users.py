"""
User Repository
SignalBridge Webhook Relay

PIN verification and rotation for dashboard users.
"""

from sqlalchemy import select, update

from app.core.exceptions import StorageError
from app.db.models.auth import AppUser
from app.db.repository import BaseRepository
from app.db.session import STORAGE_ERRORS, Database


class UserRepository(BaseRepository[AppUser]):
    """Repository for dashboard users."""

    def __init__(self, database: Database):
        super().__init__(AppUser, database)

    async def verify_pin(self, pin: str) -> bool:
        """Check whether any user has this PIN."""
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(self.model.id)
                    .where(self.model.user_password == pin)
                    .limit(1)
                )
                return result.first() is not None
        except STORAGE_ERRORS as e:
            raise StorageError("PIN verification failed", detail=str(e)) from e

    async def change_pin(self, current_pin: str, new_pin: str) -> bool:
        """
        Replace ``current_pin`` with ``new_pin``.

        Returns:
            False if no user has ``current_pin``
        """
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(self.model.id)
                    .where(self.model.user_password == current_pin)
                    .limit(1)
                )
                if result.first() is None:
                    return False

                await session.execute(
                    update(self.model)
                    .where(self.model.user_password == current_pin)
                    .values(user_password=new_pin)
                )
                return True
        except STORAGE_ERRORS as e:
            raise StorageError("PIN change failed", detail=str(e)) from e
