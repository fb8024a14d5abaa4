"""
Services Layer
SignalBridge Webhook Relay

Signal Flow:
    TradingViewSignal → RiskGate (duplicate) → SignalProcessor
        → TokenManager → InstrumentDirectory → RiskGate → OrderDispatcher
"""

# Instrument Directory
from app.services.instrument_sync import (
    Instrument,
    InstrumentDirectory,
    SyncStats,
)

# Token Manager
from app.services.token_manager import (
    CredentialPair,
    TokenManager,
    TokenState,
)

# Risk Manager
from app.services.risk_manager import (
    RiskGate,
    RiskConfig,
    RiskCheckResponse,
    RiskCheckResult,
    RiskViolationType,
    SignalDeduplicator,
)

# Order Dispatcher
from app.services.order_manager import OrderDispatcher

# Pipeline and Jobs
from app.services.signal_processor import SignalProcessor
from app.services.scheduler import JobScheduler, ScheduledJob


__all__ = [
    "Instrument",
    "InstrumentDirectory",
    "SyncStats",
    "CredentialPair",
    "TokenManager",
    "TokenState",
    "RiskGate",
    "RiskConfig",
    "RiskCheckResponse",
    "RiskCheckResult",
    "RiskViolationType",
    "SignalDeduplicator",
    "OrderDispatcher",
    "SignalProcessor",
    "JobScheduler",
    "ScheduledJob",
]
