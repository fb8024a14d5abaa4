"""
Token Repository
SignalBridge Webhook Relay

Stores the single live Upstox credential pair.
"""

from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import delete, select

from app.core.exceptions import StorageError
from app.db.models.auth import AuthToken
from app.db.repository import BaseRepository
from app.db.session import STORAGE_ERRORS, Database


class TokenRepository(BaseRepository[AuthToken]):
    """Repository for the persisted credential pair."""

    def __init__(self, database: Database):
        super().__init__(AuthToken, database)

    async def save(self, access_token: str, refresh_token: Optional[str]) -> None:
        """
        Replace the stored credential pair.

        Old rows are deleted before the new row is inserted, inside one
        transaction.

        Raises:
            StorageError: if the database call fails
        """
        try:
            async with self.database.session() as session:
                await session.execute(delete(self.model))
                session.add(self.model(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    updated_at=datetime.now(timezone.utc),
                ))
        except STORAGE_ERRORS as e:
            raise StorageError("Failed to save tokens", detail=str(e)) from e

        logger.info("Tokens saved to storage")

    async def load_latest(self) -> Optional[AuthToken]:
        """
        Load the most recently updated credential pair.

        Raises:
            StorageError: if the database call fails
        """
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(self.model)
                    .order_by(self.model.updated_at.desc())
                    .limit(1)
                )
                return result.scalar_one_or_none()
        except STORAGE_ERRORS as e:
            raise StorageError("Failed to load tokens", detail=str(e)) from e
