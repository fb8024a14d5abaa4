"""
Signal Processor
SignalBridge Webhook Relay

Runs an accepted TradingView signal through the post-acknowledgement
pipeline:

    token -> instrument -> positions -> risk gate -> funds -> margin -> order

Each step returns early on failure. Every terminal outcome is written to
the webhook log when a log repository is configured.
"""

import asyncio
from typing import Optional

from loguru import logger

from app.brokers.upstox import UpstoxClient
from app.core.exceptions import BrokerAPIError
from app.db.repositories.webhook_logs import WebhookLogRepository
from app.schemas.webhook import SignalOutcome, SignalStatus, TradingViewSignal
from app.services.instrument_sync import InstrumentDirectory
from app.services.order_manager import OrderDispatcher
from app.services.risk_manager import RiskGate
from app.services.token_manager import TokenManager


class SignalProcessor:
    """
    Sequences the relay components for one signal at a time.

    Position fetch through order placement holds ``_lock`` so that two
    in-flight signals never evaluate the gate against the same snapshot.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        directory: InstrumentDirectory,
        client: UpstoxClient,
        risk_gate: RiskGate,
        dispatcher: OrderDispatcher,
        log_repository: Optional[WebhookLogRepository] = None,
    ):
        self.token_manager = token_manager
        self.directory = directory
        self.client = client
        self.risk_gate = risk_gate
        self.dispatcher = dispatcher
        self.log_repository = log_repository
        self._lock = asyncio.Lock()

    async def run(self, signal: TradingViewSignal) -> Optional[SignalOutcome]:
        """Background task entry point; nothing raised here escapes."""
        try:
            outcome = await self.process(signal)
        except Exception as e:
            logger.exception(f"Unhandled error processing {signal.symbol}: {e}")
            await self.record(signal, SignalOutcome(status=SignalStatus.FAILED, reason=str(e)))
            return None

        logger.info(
            f"Signal {signal.action.value} {signal.quantity} {signal.symbol} finished: "
            f"{outcome.status.value}" + (f" ({outcome.reason})" if outcome.reason else "")
        )
        return outcome

    async def process(self, signal: TradingViewSignal) -> SignalOutcome:
        if not await self.token_manager.ensure_valid():
            logger.error("No valid access token. Cannot place order.")
            return await self._finish(signal, SignalStatus.FAILED, "no valid access token")

        instrument_key = self.directory.lookup(signal.symbol)
        if not instrument_key:
            logger.error(f"Instrument token not found for {signal.symbol}")
            return await self._finish(signal, SignalStatus.FAILED, "instrument token not found")

        async with self._lock:
            # Read after waiting: the refresh job may have replaced the token
            access_token = self.token_manager.access_token
            try:
                positions = await self.client.get_positions(access_token)
            except BrokerAPIError as e:
                logger.error(f"Error fetching positions: {e.message}")
                return await self._finish(signal, SignalStatus.FAILED, "could not fetch positions")

            check = self.risk_gate.evaluate(signal, positions)
            if not check.approved:
                return await self._finish(signal, SignalStatus.SKIPPED, check.reason)

            try:
                funds = await self.client.get_funds(access_token)
            except BrokerAPIError as e:
                logger.error(f"Error fetching funds: {e.message}")
                return await self._finish(signal, SignalStatus.FAILED, "could not verify funds")

            check = self.risk_gate.check_margin(signal, funds.available_margin)
            if not check.approved:
                return await self._finish(signal, SignalStatus.SKIPPED, check.reason)

            outcome = await self.dispatcher.place_market_order(signal, instrument_key, access_token)

        await self.record(signal, outcome)
        return outcome

    async def _finish(self, signal: TradingViewSignal, status: SignalStatus, reason: str) -> SignalOutcome:
        outcome = SignalOutcome(status=status, reason=reason)
        await self.record(signal, outcome)
        return outcome

    async def record(self, signal: TradingViewSignal, outcome: SignalOutcome) -> None:
        if self.log_repository is None:
            return
        await self.log_repository.record(
            signal.snapshot(),
            outcome.status.value,
            reason=outcome.reason,
            order_id=outcome.order_id,
        )
