"""
Exception Hierarchy
SignalBridge Webhook Relay

Error categories mirror how the relay reacts to them:
- AUTH / VALIDATION: rejected immediately, never retried
- BROKER / DATABASE: transient upstream failure, the signal is aborted
- NOT_FOUND: terminal failure for the signal

Risk gate rejections are not errors; see RiskCheckResponse.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Error categories for routing and handling."""
    AUTH = "auth"
    VALIDATION = "validation"
    BROKER = "broker"
    DATABASE = "database"
    NOT_FOUND = "not_found"


class SignalBridgeError(Exception):
    """Base class for all relay errors."""

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(self, message: str, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class AuthFailure(SignalBridgeError):
    """Bad webhook secret or failed OAuth exchange."""
    category = ErrorCategory.AUTH


class ValidationFailure(SignalBridgeError):
    """Webhook payload is missing fields or has unusable values."""
    category = ErrorCategory.VALIDATION


class TransientUpstreamFailure(SignalBridgeError):
    """A brokerage or storage call failed."""
    category = ErrorCategory.BROKER


class BrokerAPIError(TransientUpstreamFailure):
    """Upstox returned an error or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Any = None,
    ):
        super().__init__(message, detail)
        self.status_code = status_code


class StorageError(TransientUpstreamFailure):
    """Persistence layer call failed."""
    category = ErrorCategory.DATABASE


class InstrumentNotFound(SignalBridgeError):
    """No instrument is known for the requested trading symbol."""
    category = ErrorCategory.NOT_FOUND

    def __init__(self, symbol: str):
        super().__init__(f"Instrument not found: {symbol}")
        self.symbol = symbol
