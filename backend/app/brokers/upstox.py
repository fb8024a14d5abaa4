"""
Upstox REST Client
SignalBridge Webhook Relay

Thin async client over the Upstox v2 API:
- OAuth authorization-code and refresh-token grants
- Short-term positions
- Funds and margin
- Order placement

Every failure surfaces as BrokerAPIError carrying the broker's own
error message when the response has one. Nothing here retries.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from loguru import logger

from app.core.config import UpstoxSettings, settings
from app.core.exceptions import BrokerAPIError
from app.schemas.broker import FundsAndMargin, OrderRequest, Position


def extract_error_message(body: Any, default: str) -> str:
    """Pull ``errors[0].message`` (or ``message``) out of an Upstox error body."""
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            message = errors[0].get("message")
            if message:
                return str(message)
        if body.get("message"):
            return str(body["message"])
    return default


class UpstoxClient:
    """
    Async Upstox API client.

    Usage:
        client = UpstoxClient()
        tokens = await client.exchange_code(code)
        positions = await client.get_positions(tokens["access_token"])
    """

    BASE_URL = "https://api.upstox.com/v2"
    AUTH_URL = "https://api.upstox.com/v2/login/authorization/dialog"
    TOKEN_URL = "https://api.upstox.com/v2/login/authorization/token"

    def __init__(
        self,
        config: Optional[UpstoxSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or settings.upstox
        self._client = http_client or httpx.AsyncClient(
            timeout=self.config.request_timeout,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    async def close(self) -> None:
        """Release the HTTP connection pool."""
        await self._client.aclose()
        logger.info("Upstox client closed")

    # =========================================================================
    # OAuth
    # =========================================================================

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        """Generate the OAuth authorization dialog URL."""
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
        }
        if state:
            params["state"] = state
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for an access/refresh token pair."""
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "redirect_uri": self.config.redirect_uri,
        })

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Obtain a new token pair using the refresh token."""
        return await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        })

    async def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = await self._client.post(
                self.TOKEN_URL,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                data=form,
            )
        except httpx.HTTPError as e:
            raise BrokerAPIError(f"Token request failed: {e}") from e

        body = self._json(response)
        if response.status_code != 200:
            raise BrokerAPIError(
                extract_error_message(body, f"Token request failed: HTTP {response.status_code}"),
                status_code=response.status_code,
                detail=body,
            )
        return body

    # =========================================================================
    # Portfolio / Funds / Orders
    # =========================================================================

    async def get_positions(self, access_token: str) -> List[Position]:
        """Fetch short-term (intraday) positions."""
        body = await self._request("GET", "/portfolio/short-term-positions", access_token)
        positions = []
        for item in body.get("data") or []:
            try:
                quantity = int(float(item.get("quantity") or 0))
            except (TypeError, ValueError):
                quantity = 0
            positions.append(Position(
                symbol=item.get("trading_symbol") or item.get("tradingsymbol") or "",
                quantity=quantity,
                instrument_key=item.get("instrument_token"),
                exchange=item.get("exchange"),
                product_type=item.get("product"),
            ))
        return positions

    async def get_funds(self, access_token: str) -> FundsAndMargin:
        """Fetch equity-segment funds and margin."""
        body = await self._request("GET", "/user/get-funds-and-margin", access_token)
        equity = (body.get("data") or {}).get("equity")
        if not equity:
            raise BrokerAPIError("Funds response has no equity segment", detail=body)
        return FundsAndMargin(
            available_margin=float(equity.get("available_margin") or 0),
            used_margin=float(equity.get("used_margin") or 0),
            raw=equity,
        )

    async def place_order(self, order: OrderRequest, access_token: str) -> str:
        """
        Place an order.

        Returns:
            Broker-assigned order id
        """
        body = await self._request("POST", "/order/place", access_token, json_data=order.to_payload())
        order_id = (body.get("data") or {}).get("order_id")
        if not order_id:
            raise BrokerAPIError("Order response has no order_id", detail=body)
        return order_id

    async def _request(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated API request."""
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        url = f"{self.BASE_URL}{endpoint}"

        try:
            response = await self._client.request(method, url, headers=headers, json=json_data)
        except httpx.HTTPError as e:
            raise BrokerAPIError(f"{method} {endpoint} failed: {e}") from e

        body = self._json(response)
        if response.status_code >= 400:
            raise BrokerAPIError(
                extract_error_message(body, f"HTTP {response.status_code}"),
                status_code=response.status_code,
                detail=body,
            )
        return body

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"message": response.text}
        return body if isinstance(body, dict) else {"data": body}
