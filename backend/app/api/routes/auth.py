"""
Upstox OAuth endpoints

/auth/login sends the user to the Upstox consent dialog; /auth/callback
exchanges the returned code and bounces back to the caller's page.
"""
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, RedirectResponse
from loguru import logger

from app.core.container import AppContainer, get_container
from app.core.exceptions import AuthFailure


router = APIRouter()


@router.get("/login")
async def login(
    return_url: Optional[str] = Query(None, description="Where to send the user after login"),
    container: AppContainer = Depends(get_container),
):
    """Redirect to the Upstox authorization dialog."""
    state = return_url or container.settings.upstox.default_return_url
    logger.info(f"Auth login initiated (return to {state})")
    return RedirectResponse(url=container.client.get_authorization_url(state=state))


@router.get("/callback")
async def callback(
    code: Optional[str] = Query(None, description="Authorization code from Upstox"),
    state: Optional[str] = Query(None, description="Return URL passed through /auth/login"),
    container: AppContainer = Depends(get_container),
):
    """Exchange the authorization code and redirect with the access token."""
    return_url = state or container.settings.upstox.default_return_url

    if not code:
        logger.error("No auth code received in callback")
        return PlainTextResponse("No auth code received", status_code=400)

    try:
        pair = await container.token_manager.exchange_code(code)
    except AuthFailure as e:
        logger.error(f"Auth error: {e.message}")
        return PlainTextResponse(f"Auth Failed: {e.message}", status_code=500)

    return RedirectResponse(url=f"{return_url}?token={quote(pair.access_token, safe='')}")
