"""
SignalBridge Webhook Relay - FastAPI Application
Main entry point with proper lifecycle management.

Service Architecture:
    TradingView alert -> /webhook/tradingview
        ↓
    RiskGate (duplicate check, synchronous)
        ↓ background task
    SignalProcessor
        ├── TokenManager (access token validity)
        ├── InstrumentDirectory (symbol -> instrument key)
        ├── RiskGate (positions, quantity, capital, margin)
        └── OrderDispatcher (Upstox market order)

    JobScheduler: token refresh, log cleanup, instrument resync
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import PlainTextResponse
from loguru import logger

from app.api import api_router
from app.core.config import settings
from app.core.container import AppContainer, get_container
from app.core.logging import setup_logging


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------
    container: AppContainer = app.state.container
    config = container.settings

    setup_logging(config.logging)
    logger.info("=" * 60)
    logger.info(f"Starting {config.PROJECT_NAME} webhook relay...")
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info(f"Upstox client configured: {config.upstox.is_configured}")
    logger.info("=" * 60)

    await container.startup()

    logger.info("-" * 60)
    logger.info("Relay ready to accept webhooks")
    logger.info("-" * 60)

    yield

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------
    logger.info("=" * 60)
    logger.info("Shutting down webhook relay...")
    await container.shutdown()
    logger.info("Shutdown complete")
    logger.info("=" * 60)


# =============================================================================
# Application Factory
# =============================================================================

def create_application(container: Optional[AppContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Tests pass a prebuilt container; otherwise one is built from settings.
    """
    container = container or AppContainer(settings)
    config = container.settings

    application = FastAPI(
        title=config.PROJECT_NAME,
        version=config.APP_VERSION,
        description="Relays TradingView alerts to Upstox market orders",
        lifespan=lifespan,
        docs_url="/docs" if config.DEBUG else None,
        redoc_url="/redoc" if config.DEBUG else None,
    )
    application.state.container = container

    application.include_router(api_router)

    @application.get("/", response_class=PlainTextResponse)
    async def root():
        return "TradingView Webhook Server Running"

    @application.get("/health")
    async def health_check(container: AppContainer = Depends(get_container)):
        """
        Health check endpoint for load balancers and monitoring.
        """
        status = container.get_status()
        status["status"] = "healthy"
        status["version"] = container.settings.APP_VERSION

        try:
            db_healthy = await container.database.health_check()
            status["database"] = "connected" if db_healthy else "disconnected"
        except Exception:
            status["database"] = "error"

        if status["database"] != "connected" or status["token"]["state"] == "unset":
            status["status"] = "degraded"

        return status

    return application


# Create application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)
