"""
Domain Models - Webhook Order Log
SignalBridge Webhook Relay
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, String, Integer, Float, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class WebhookLog(Base):
    """
    Outcome of one TradingView signal.

    Status is success, skipped or failed. Rows older than the
    retention window are pruned by the scheduler.
    """
    __tablename__ = "tradingview_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[Optional[str]] = mapped_column(String(100))
    action: Mapped[Optional[str]] = mapped_column(String(10))
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    price: Mapped[float] = mapped_column(Float, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    order_id: Mapped[Optional[str]] = mapped_column(String(64))
    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index('idx_tradingview_logs_created', 'created_at'),
        Index('idx_tradingview_logs_symbol', 'symbol', 'action'),
    )
