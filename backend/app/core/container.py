"""
Application Container
SignalBridge Webhook Relay

Owns every stateful component of the relay. One container is created per
application and stored on ``app.state.container``; route handlers obtain
it through ``Depends(get_container)``.

Startup order:
    Database -> Instrument Directory -> Token Manager -> Scheduler
"""

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Request
from loguru import logger

from app.brokers.upstox import UpstoxClient
from app.core.config import Settings, get_settings
from app.db.repositories import TokenRepository, UserRepository, WebhookLogRepository
from app.db.session import Database
from app.services.instrument_sync import InstrumentDirectory
from app.services.order_manager import OrderDispatcher
from app.services.risk_manager import RiskConfig, RiskGate
from app.services.scheduler import JobScheduler
from app.services.signal_processor import SignalProcessor
from app.services.token_manager import TokenManager


HOUR = 3600


class AppContainer:
    """Registry for all relay services."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        database: Optional[Database] = None,
        client: Optional[UpstoxClient] = None,
        directory: Optional[InstrumentDirectory] = None,
    ):
        self.settings = settings or get_settings()

        self.database = database or Database(self.settings.DATABASE_URL, echo=self.settings.DEBUG)
        self.token_repository = TokenRepository(self.database)
        self.log_repository = WebhookLogRepository(self.database)
        self.user_repository = UserRepository(self.database)

        self.client = client or UpstoxClient(self.settings.upstox)
        self.directory = directory or InstrumentDirectory(
            fallback_dir=Path(self.settings.INSTRUMENT_FALLBACK_DIR),
        )
        self.token_manager = TokenManager(self.client, self.token_repository)
        self.risk_gate = RiskGate(RiskConfig.from_settings(self.settings.risk))
        self.dispatcher = OrderDispatcher(self.client)
        self.processor = SignalProcessor(
            token_manager=self.token_manager,
            directory=self.directory,
            client=self.client,
            risk_gate=self.risk_gate,
            dispatcher=self.dispatcher,
            log_repository=self.log_repository,
        )

        self.scheduler = JobScheduler()
        self._register_jobs()
        self._started = False

    def _register_jobs(self) -> None:
        config = self.settings.scheduler
        self.scheduler.add_job("token_refresh", self.refresh_token_job, config.token_refresh_hours * HOUR)
        self.scheduler.add_job("log_cleanup", self.prune_logs_job, config.log_cleanup_hours * HOUR)
        self.scheduler.add_job("instrument_sync", self.sync_instruments_job, config.instrument_sync_hours * HOUR)

    # =========================================================================
    # Scheduled jobs
    # =========================================================================

    async def refresh_token_job(self) -> None:
        """Refresh ahead of expiry so the next webhook finds a live token."""
        if not self.token_manager.refresh_token:
            logger.warning("Token refresh job: no refresh token available. Manual login required.")
            return

        lead = timedelta(hours=self.settings.scheduler.token_refresh_lead_hours)
        if not await self.token_manager.ensure_valid(margin=lead):
            logger.error("Token refresh job: refresh failed. Manual login required.")

    async def prune_logs_job(self) -> None:
        retention = self.settings.scheduler.log_retention_days
        deleted = await self.log_repository.prune(retention)
        logger.info(f"Log cleanup: removed {deleted} entries older than {retention} days")

    async def sync_instruments_job(self) -> None:
        await self.directory.sync()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def startup(self) -> None:
        if self._started:
            return

        try:
            await self.database.init_models()
            logger.info("✓ Database tables ready")
        except Exception as e:
            logger.error(f"✗ Database initialization error: {e}")

        await self.directory.sync()
        logger.info(f"✓ Instrument directory loaded ({len(self.directory)} instruments)")

        if await self.token_manager.load():
            logger.info("✓ Access token restored")
        else:
            logger.warning("⚠ No stored access token - login via /auth/login")

        if not self.settings.WEBHOOK_SECRET:
            logger.warning("⚠ WEBHOOK_SECRET is empty - every webhook will be rejected")

        if self.settings.scheduler.enabled:
            await self.scheduler.start()
            logger.info("✓ Scheduler started")

        self._started = True

    async def shutdown(self) -> None:
        logger.info("Stopping relay services...")

        for name, close in (
            ("scheduler", self.scheduler.stop),
            ("instrument directory", self.directory.close),
            ("Upstox client", self.client.close),
            ("database", self.database.close),
        ):
            try:
                await close()
            except Exception as e:
                logger.error(f"Error closing {name}: {e}")

        self._started = False
        logger.info("✓ All relay services stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "token": self.token_manager.get_status(),
            "instruments": len(self.directory),
            "last_instrument_sync": (
                self.directory.last_sync.isoformat() if self.directory.last_sync else None
            ),
            "risk": self.risk_gate.get_status(),
            "scheduler": self.scheduler.get_status(),
        }


def get_container(request: Request) -> AppContainer:
    """FastAPI dependency returning the application's container."""
    return request.app.state.container
