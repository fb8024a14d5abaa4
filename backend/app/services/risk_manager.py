"""
Risk Management Service

Pre-trade gate for webhook signals. Checks run in a fixed order and the
first failure rejects the signal:

1. Duplicate (symbol, action) within the dedup window
2. Adding to an existing position in the same direction
3. Max open positions (new symbols only)
4. Max quantity per trade
5. Max capital per trade (priced signals only)
6. Available margin (priced signals only, needs a funds fetch)

A rejection is a deliberate skip, not an error.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple

from loguru import logger

from app.core.config import RiskSettings
from app.schemas.broker import Position, TransactionType
from app.schemas.webhook import TradingViewSignal


class RiskCheckResult(str, Enum):
    """Result of risk check."""
    APPROVED = "approved"
    REJECTED = "rejected"


class RiskViolationType(str, Enum):
    """Types of risk violations."""
    DUPLICATE_SIGNAL = "duplicate_signal"
    LONG_POSITION_EXISTS = "long_position_exists"
    SHORT_POSITION_EXISTS = "short_position_exists"
    MAX_POSITIONS = "max_positions"
    QUANTITY_EXCEEDED = "quantity_exceeded"
    CAPITAL_EXCEEDED = "capital_exceeded"
    INSUFFICIENT_MARGIN = "insufficient_margin"


@dataclass
class RiskConfig:
    """Risk management configuration."""
    max_capital_per_trade: float = 10000
    max_total_positions: int = 5
    max_quantity_per_trade: int = 100
    duplicate_window_seconds: float = 60
    dedup_prune_threshold: int = 100

    @classmethod
    def from_settings(cls, risk: RiskSettings) -> "RiskConfig":
        return cls(
            max_capital_per_trade=risk.MAX_CAPITAL_PER_TRADE,
            max_total_positions=risk.MAX_TOTAL_POSITIONS,
            max_quantity_per_trade=risk.MAX_QUANTITY_PER_TRADE,
            duplicate_window_seconds=risk.DUPLICATE_SIGNAL_WINDOW_SECONDS,
        )


@dataclass
class RiskCheckResponse:
    """Response from risk check."""
    result: RiskCheckResult
    violation: Optional[RiskViolationType] = None
    reason: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.result == RiskCheckResult.APPROVED

    @classmethod
    def approve(cls) -> "RiskCheckResponse":
        return cls(result=RiskCheckResult.APPROVED)

    @classmethod
    def reject(cls, violation: RiskViolationType, reason: str) -> "RiskCheckResponse":
        return cls(result=RiskCheckResult.REJECTED, violation=violation, reason=reason)


def _fmt(value: float) -> str:
    """Render 12000.0 as '12000' and 101.5 as '101.5' in reasons."""
    return f"{value:.2f}".rstrip("0").rstrip(".")


class SignalDeduplicator:
    """
    Remembers when each (symbol, action) was last accepted.

    Expired entries are only swept once more than ``prune_threshold``
    keys are tracked.
    """

    def __init__(
        self,
        window_seconds: float = 60,
        prune_threshold: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.prune_threshold = prune_threshold
        self._clock = clock
        self._last_seen: Dict[Tuple[str, str], float] = {}

    def __len__(self) -> int:
        return len(self._last_seen)

    def is_duplicate(self, symbol: str, action: str) -> bool:
        """True if seen within the window; otherwise records it and returns False."""
        key = (symbol, action)
        now = self._clock()
        last = self._last_seen.get(key)

        if last is not None and now - last < self.window_seconds:
            return True

        self._last_seen[key] = now
        if len(self._last_seen) > self.prune_threshold:
            self._prune(now)
        return False

    def _prune(self, now: float) -> None:
        expired = [k for k, seen in self._last_seen.items() if now - seen > self.window_seconds]
        for key in expired:
            del self._last_seen[key]


class RiskGate:
    """
    Core risk management service.

    evaluate() runs the position, quantity and capital checks, which need
    no funds data; check_margin() runs after funds have been fetched.
    """

    def __init__(
        self,
        config: Optional[RiskConfig] = None,
        deduplicator: Optional[SignalDeduplicator] = None,
    ):
        self.config = config or RiskConfig()
        self.deduplicator = deduplicator or SignalDeduplicator(
            window_seconds=self.config.duplicate_window_seconds,
            prune_threshold=self.config.dedup_prune_threshold,
        )

    def check_duplicate(self, signal: TradingViewSignal) -> RiskCheckResponse:
        if self.deduplicator.is_duplicate(signal.symbol, signal.action.value):
            logger.warning(f"Duplicate signal detected for {signal.symbol} - {signal.action.value}. Skipping.")
            return RiskCheckResponse.reject(RiskViolationType.DUPLICATE_SIGNAL, "duplicate signal")
        return RiskCheckResponse.approve()

    def evaluate(
        self,
        signal: TradingViewSignal,
        positions: Sequence[Position],
    ) -> RiskCheckResponse:
        """Checks 2-5: direction, open-position count, quantity, capital."""
        symbol = signal.trading_symbol
        existing = next((p for p in positions if p.symbol == symbol), None)

        if existing is not None:
            if signal.action == TransactionType.BUY and existing.quantity > 0:
                logger.warning(f"Already have a LONG position in {symbol}. Skipping.")
                return RiskCheckResponse.reject(
                    RiskViolationType.LONG_POSITION_EXISTS, "already have long position"
                )
            if signal.action == TransactionType.SELL and existing.quantity < 0:
                logger.warning(f"Already have a SHORT position in {symbol}. Skipping.")
                return RiskCheckResponse.reject(
                    RiskViolationType.SHORT_POSITION_EXISTS, "already have short position"
                )

        limit = self.config.max_total_positions
        open_positions = [p for p in positions if p.is_open]
        if len(open_positions) >= limit and (existing is None or not existing.is_open):
            logger.warning(f"Max total positions reached ({limit}). Skipping.")
            return RiskCheckResponse.reject(
                RiskViolationType.MAX_POSITIONS, f"max total positions reached ({limit})"
            )

        max_qty = self.config.max_quantity_per_trade
        if signal.quantity > max_qty:
            logger.warning(f"Quantity ({signal.quantity}) exceeds MAX_QUANTITY_PER_TRADE ({max_qty}). Skipping.")
            return RiskCheckResponse.reject(
                RiskViolationType.QUANTITY_EXCEEDED,
                f"quantity ({signal.quantity}) exceeds max limit ({max_qty})",
            )

        if signal.has_price:
            required = signal.trade_value
            max_capital = self.config.max_capital_per_trade
            if required > max_capital:
                logger.warning(f"Trade value ({_fmt(required)}) exceeds MAX_CAPITAL_PER_TRADE ({_fmt(max_capital)}). Skipping.")
                return RiskCheckResponse.reject(
                    RiskViolationType.CAPITAL_EXCEEDED,
                    f"required capital ({_fmt(required)}) exceeds max limit ({_fmt(max_capital)})",
                )

        return RiskCheckResponse.approve()

    def check_margin(self, signal: TradingViewSignal, available_margin: float) -> RiskCheckResponse:
        """Check 6: priced signals must fit in the available margin."""
        if not signal.has_price:
            return RiskCheckResponse.approve()

        required = signal.trade_value
        if required > available_margin:
            logger.warning(
                f"Insufficient margin. Required: {_fmt(required)}, Available: {_fmt(available_margin)}. Skipping."
            )
            return RiskCheckResponse.reject(
                RiskViolationType.INSUFFICIENT_MARGIN,
                f"insufficient margin (req: {_fmt(required)}, avail: {_fmt(available_margin)})",
            )
        return RiskCheckResponse.approve()

    def get_status(self) -> Dict[str, float]:
        return {
            "max_capital_per_trade": self.config.max_capital_per_trade,
            "max_total_positions": self.config.max_total_positions,
            "max_quantity_per_trade": self.config.max_quantity_per_trade,
            "tracked_signals": len(self.deduplicator),
        }
