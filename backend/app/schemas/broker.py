from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from enum import Enum


class TransactionType(str, Enum):
    """Order side."""
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    """Order types."""
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "SL"
    STOP_LOSS_MARKET = "SL-M"


class ProductType(str, Enum):
    """Upstox product types."""
    INTRADAY = "I"
    DELIVERY = "D"


class OrderValidity(str, Enum):
    """Order validity."""
    DAY = "DAY"
    IOC = "IOC"


class OrderRequest(BaseModel):
    """Body for Upstox ``POST /v2/order/place``."""
    instrument_token: str
    quantity: int
    transaction_type: TransactionType
    order_type: OrderType = OrderType.MARKET
    product: ProductType = ProductType.INTRADAY
    validity: OrderValidity = OrderValidity.DAY
    price: float = 0
    trigger_price: float = 0
    disclosed_quantity: int = 0
    is_amo: bool = False  # After Market Order
    tag: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Position(BaseModel):
    """Open position as reported by the broker; quantity is signed."""
    symbol: str
    quantity: int = 0
    instrument_key: Optional[str] = None
    exchange: Optional[str] = None
    product_type: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.quantity != 0


class FundsAndMargin(BaseModel):
    """Equity segment funds."""
    available_margin: float = 0.0
    used_margin: float = 0.0
    raw: Dict[str, Any] = Field(default_factory=dict)
