"""
TradingView webhook endpoint

Authenticates and validates the alert, suppresses duplicates, answers
immediately, then hands the signal to SignalProcessor as a background
task so TradingView never waits on the broker.
"""
import hmac
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from app.core.container import AppContainer, get_container
from app.core.exceptions import ValidationFailure
from app.schemas.webhook import SignalStatus, TradingViewSignal, WebhookResponse


router = APIRouter()

REQUIRED_FIELDS = ("symbol", "action", "quantity")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def is_authorized(payload: Dict[str, Any], secret: str) -> bool:
    """Constant-time secret comparison; an unset secret authorizes nothing."""
    token = payload.get("token")
    if not secret or not isinstance(token, str) or not token:
        return False
    return hmac.compare_digest(token.encode(), secret.encode())


def parse_signal(payload: Dict[str, Any]) -> TradingViewSignal:
    """
    Build a signal from an authorized payload.

    Raises:
        ValidationFailure: if a required field is missing or a value is unusable
    """
    missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
    if missing:
        raise ValidationFailure("Invalid payload", detail=f"missing field(s): {', '.join(missing)}")

    try:
        return TradingViewSignal.model_validate(
            {k: v for k, v in payload.items() if k != "token"}
        )
    except ValidationError as e:
        raise ValidationFailure("Invalid payload", detail=f"{e.error_count()} invalid field(s)") from e


@router.post("/tradingview", response_model=WebhookResponse, response_model_exclude_none=True)
async def tradingview_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    container: AppContainer = Depends(get_container),
):
    """
    Receive a TradingView alert.

    Body: ``{"token", "symbol", "action", "quantity", "price"?}``
    """
    try:
        payload = await request.json()
    except ValueError:
        return _error(400, "Invalid payload")
    if not isinstance(payload, dict):
        return _error(400, "Invalid payload")

    if not is_authorized(payload, container.settings.WEBHOOK_SECRET):
        logger.warning("Webhook rejected: bad or missing token")
        return _error(401, "Unauthorized")

    try:
        signal = parse_signal(payload)
    except ValidationFailure as e:
        logger.warning(f"Webhook rejected: {e.detail}")
        return _error(400, e.message)

    logger.info(f"Webhook received: {signal.snapshot()}")

    check = container.risk_gate.check_duplicate(signal)
    if not check.approved:
        await container.log_repository.record(
            signal.snapshot(), SignalStatus.SKIPPED.value, reason=check.reason
        )
        return WebhookResponse(status=SignalStatus.SKIPPED.value, reason=check.reason)

    background_tasks.add_task(container.processor.run, signal)
    return WebhookResponse(status="received")
