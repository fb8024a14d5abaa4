"""
Dashboard PIN endpoints
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.container import AppContainer, get_container
from app.core.exceptions import StorageError
from app.schemas.auth import ChangePinRequest, VerifyPinRequest


router = APIRouter()


@router.post("/verify-pin")
async def verify_pin(
    body: VerifyPinRequest,
    container: AppContainer = Depends(get_container),
):
    if not body.pin:
        return JSONResponse(status_code=400, content={"error": "PIN is required"})

    try:
        valid = await container.user_repository.verify_pin(body.pin)
    except StorageError as e:
        logger.error(f"PIN verification error: {e.detail}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    if not valid:
        return JSONResponse(status_code=401, content={"success": False, "error": "Invalid PIN"})
    return {"success": True}


@router.post("/change-pin")
async def change_pin(
    body: ChangePinRequest,
    container: AppContainer = Depends(get_container),
):
    if not body.current_pin or not body.new_pin:
        return JSONResponse(status_code=400, content={"error": "Current and new PIN required"})

    try:
        changed = await container.user_repository.change_pin(body.current_pin, body.new_pin)
    except StorageError as e:
        logger.error(f"PIN change error: {e.detail}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    if not changed:
        return JSONResponse(status_code=401, content={"error": "Invalid current PIN"})

    logger.info("Dashboard PIN updated")
    return {"success": True}
