"""
Pydantic Schemas - TradingView Webhook
SignalBridge Webhook Relay
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.broker import TransactionType


class SignalStatus(str, Enum):
    """Terminal outcome of a signal, as persisted in the order log."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class TradingViewSignal(BaseModel):
    """
    Trading signal sent by a TradingView alert.

    ``symbol`` may carry an exchange prefix ("NSE:SBIN").
    A price of 0 is treated the same as no price.
    """
    symbol: str = Field(min_length=1)
    action: TransactionType
    quantity: int = Field(gt=0)
    price: Optional[float] = Field(default=None, ge=0)

    @field_validator("symbol")
    @classmethod
    def strip_symbol(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("symbol must not be blank")
        return value

    @field_validator("action", mode="before")
    @classmethod
    def normalise_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def trading_symbol(self) -> str:
        """Symbol without the exchange prefix."""
        return self.symbol.split(":")[-1]

    @property
    def has_price(self) -> bool:
        return bool(self.price and self.price > 0)

    @property
    def trade_value(self) -> float:
        return (self.price or 0) * self.quantity

    def snapshot(self) -> Dict[str, Any]:
        """Loggable copy of the signal (never includes the secret)."""
        return {
            "symbol": self.symbol,
            "action": self.action.value,
            "quantity": self.quantity,
            "price": self.price or 0,
        }


class WebhookResponse(BaseModel):
    """Immediate acknowledgement returned to TradingView."""
    status: str
    reason: Optional[str] = None


class SignalOutcome(BaseModel):
    """Result of running one signal through the pipeline."""
    status: SignalStatus
    reason: Optional[str] = None
    order_id: Optional[str] = None
