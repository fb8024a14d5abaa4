"""
Repository Layer
SignalBridge Webhook Relay

Provides data access abstractions for all domain models.
"""

from app.db.repositories.tokens import TokenRepository
from app.db.repositories.webhook_logs import WebhookLogRepository
from app.db.repositories.users import UserRepository


__all__ = [
    "TokenRepository",
    "WebhookLogRepository",
    "UserRepository",
]
