"""
Database Models Package
SignalBridge Webhook Relay

Exports all SQLAlchemy models for the application.
"""

# Import Base
from app.db.base import Base

from app.db.models.auth import (
    AuthToken,
    AppUser,
)

from app.db.models.webhook import (
    WebhookLog,
)


__all__ = [
    "Base",
    "AuthToken",
    "AppUser",
    "WebhookLog",
]
