"""
Domain Models - Authentication
SignalBridge Webhook Relay

SQLAlchemy models for:
- Upstox credential pair (single live row)
- Dashboard users (PIN)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Text, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class AuthToken(Base):
    """
    Persisted Upstox credential pair.

    Only one row is expected; saving deletes every existing row first.
    """
    __tablename__ = "auth_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index('idx_auth_tokens_updated', 'updated_at'),
    )


class AppUser(Base):
    """Dashboard user identified by a shared PIN."""
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_password: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
