"""
Order Dispatcher

Turns an approved signal into a single Upstox market order:
intraday product, DAY validity, no disclosed quantity, no trigger,
not an after-market order. Failures are reported, never retried.
"""

from loguru import logger

from app.brokers.upstox import UpstoxClient
from app.core.exceptions import BrokerAPIError
from app.schemas.broker import (
    OrderRequest,
    OrderType,
    OrderValidity,
    ProductType,
)
from app.schemas.webhook import SignalOutcome, SignalStatus, TradingViewSignal


ORDER_TAG = "tv-order"


class OrderDispatcher:
    """Places market orders for validated signals."""

    def __init__(self, client: UpstoxClient, tag: str = ORDER_TAG):
        self.client = client
        self.tag = tag

    def build_order(self, signal: TradingViewSignal, instrument_key: str) -> OrderRequest:
        return OrderRequest(
            instrument_token=instrument_key,
            quantity=signal.quantity,
            transaction_type=signal.action,
            order_type=OrderType.MARKET,
            product=ProductType.INTRADAY,
            validity=OrderValidity.DAY,
            price=0,
            trigger_price=0,
            disclosed_quantity=0,
            is_amo=False,
            tag=self.tag,
        )

    async def place_market_order(
        self,
        signal: TradingViewSignal,
        instrument_key: str,
        access_token: str,
    ) -> SignalOutcome:
        """
        Place the order.

        Returns:
            SUCCESS with the broker order id, or FAILED with the broker's message
        """
        order = self.build_order(signal, instrument_key)
        logger.info(
            f"Placing order: {order.transaction_type.value} {order.quantity} {signal.symbol} ({instrument_key})"
        )

        try:
            order_id = await self.client.place_order(order, access_token)
        except BrokerAPIError as e:
            logger.error(f"Order placement failed: {e.message} (status={e.status_code}, detail={e.detail})")
            return SignalOutcome(status=SignalStatus.FAILED, reason=e.message)

        logger.info(f"Order placed: {order_id}")
        return SignalOutcome(status=SignalStatus.SUCCESS, order_id=order_id)
