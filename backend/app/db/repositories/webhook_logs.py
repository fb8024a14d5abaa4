"""
Webhook Log Repository
SignalBridge Webhook Relay

Write-only order log for TradingView signals, plus retention pruning.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import delete

from app.core.exceptions import StorageError
from app.db.models.webhook import WebhookLog
from app.db.repository import BaseRepository
from app.db.session import STORAGE_ERRORS, Database


# Never persist the shared secret alongside the signal snapshot
_REDACTED_FIELDS = ("token",)


class WebhookLogRepository(BaseRepository[WebhookLog]):
    """Repository for webhook order log entries."""

    def __init__(self, database: Database):
        super().__init__(WebhookLog, database)

    async def record(
        self,
        payload: Dict[str, Any],
        status: str,
        reason: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> bool:
        """
        Persist one signal outcome.

        Best effort: storage failures are logged and reported as False,
        never raised, so logging cannot break the order pipeline.
        """
        snapshot = {k: v for k, v in payload.items() if k not in _REDACTED_FIELDS}
        try:
            quantity = int(snapshot["quantity"]) if snapshot.get("quantity") is not None else None
        except (TypeError, ValueError):
            quantity = None
        try:
            price = float(snapshot.get("price") or 0)
        except (TypeError, ValueError):
            price = 0.0

        try:
            async with self.database.session() as session:
                session.add(self.model(
                    symbol=snapshot.get("symbol"),
                    action=snapshot.get("action"),
                    quantity=quantity,
                    price=price,
                    status=status,
                    reason=reason,
                    order_id=order_id,
                    payload=snapshot,
                    created_at=datetime.now(timezone.utc),
                ))
            return True
        except Exception as e:
            logger.error(f"Webhook log write failed: {e!r}")
            return False

    async def prune(self, retention_days: int = 30) -> int:
        """
        Delete entries older than the retention window.

        Returns:
            Number of rows deleted

        Raises:
            StorageError: if the database call fails
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    delete(self.model).where(self.model.created_at < cutoff)
                )
                return result.rowcount or 0
        except STORAGE_ERRORS as e:
            raise StorageError("Failed to prune webhook logs", detail=str(e)) from e
