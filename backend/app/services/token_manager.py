"""
Token Lifecycle Manager
SignalBridge Webhook Relay

Owns the single live Upstox credential pair.

States:
    UNSET  - no access token (never logged in, or nothing persisted)
    LIVE   - token present and not within the refresh margin of expiry
    STALE  - token present but expiring; next ensure_valid() refreshes it

Upstox does not report an expiry, so one is assumed: 23 hours from the
moment a pair is obtained or loaded from storage.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from loguru import logger

from app.brokers.upstox import UpstoxClient
from app.core.exceptions import AuthFailure, BrokerAPIError, StorageError
from app.db.repositories.tokens import TokenRepository


TOKEN_LIFETIME = timedelta(hours=23)
REFRESH_MARGIN = timedelta(seconds=60)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenState(str, Enum):
    """Credential freshness."""
    UNSET = "unset"
    LIVE = "live"
    STALE = "stale"


@dataclass
class CredentialPair:
    """Access/refresh token pair with its assumed expiry."""
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime


class TokenManager:
    """
    Holds, persists, reloads and refreshes the Upstox credential pair.

    Usage:
        manager = TokenManager(client, TokenRepository(db))
        await manager.load()
        if await manager.ensure_valid():
            token = manager.access_token
    """

    def __init__(
        self,
        client: UpstoxClient,
        repository: Optional[TokenRepository] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.repository = repository
        self._clock = clock
        self._credentials: Optional[CredentialPair] = None

    @property
    def credentials(self) -> Optional[CredentialPair]:
        return self._credentials

    @property
    def access_token(self) -> Optional[str]:
        return self._credentials.access_token if self._credentials else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._credentials.refresh_token if self._credentials else None

    def state(self, margin: timedelta = REFRESH_MARGIN) -> TokenState:
        if not self.access_token:
            return TokenState.UNSET
        if self._clock() >= self._credentials.expires_at - margin:
            return TokenState.STALE
        return TokenState.LIVE

    def _set(self, access_token: str, refresh_token: Optional[str]) -> CredentialPair:
        self._credentials = CredentialPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self._clock() + TOKEN_LIFETIME,
        )
        return self._credentials

    # =========================================================================
    # Transitions
    # =========================================================================

    async def load(self) -> bool:
        """
        Load the persisted pair at startup (UNSET -> LIVE).

        Returns:
            True if a pair was found
        """
        if self.repository is None:
            return False

        logger.info("Loading tokens from storage...")
        try:
            row = await self.repository.load_latest()
        except StorageError as e:
            logger.error(f"Token load failed: {e.message} ({e.detail})")
            return False

        if row is None:
            logger.warning("No tokens found in storage")
            return False

        self._set(row.access_token, row.refresh_token)
        logger.info("Tokens loaded from storage")
        return True

    async def exchange_code(self, code: str) -> CredentialPair:
        """
        Complete the OAuth flow with an authorization code.

        Raises:
            AuthFailure: if Upstox rejects the code or returns no token
        """
        try:
            data = await self.client.exchange_code(code)
        except BrokerAPIError as e:
            raise AuthFailure(f"Token exchange failed: {e.message}", detail=e.detail) from e

        access_token = data.get("access_token")
        if not access_token:
            raise AuthFailure("Access token missing in Upstox response", detail=data)

        pair = self._set(access_token, data.get("refresh_token"))
        logger.info("Token exchange successful; expiry set to 23 hours from now")
        await self._persist()
        return pair

    async def ensure_valid(self, margin: Optional[timedelta] = None) -> bool:
        """
        True if a usable access token is available.

        A STALE token gets one refresh attempt; there is no retry loop.
        ``margin`` widens the staleness window so callers can refresh early.
        """
        state = self.state(margin or REFRESH_MARGIN)
        if state == TokenState.UNSET:
            return False
        if state == TokenState.LIVE:
            return True
        return await self.refresh()

    async def refresh(self) -> bool:
        """Exchange the refresh token for a new pair (STALE -> LIVE)."""
        if not self.refresh_token:
            logger.error("Token refresh impossible: no refresh token stored")
            return False

        logger.info("Refreshing access token...")
        try:
            data = await self.client.refresh_access_token(self.refresh_token)
        except BrokerAPIError as e:
            logger.error(f"Token refresh failed: {e.message}")
            return False

        access_token = data.get("access_token")
        if not access_token:
            logger.error("Token refresh failed: response had no access token")
            return False

        # Keep the previous refresh token if Upstox does not rotate it
        self._set(access_token, data.get("refresh_token") or self.refresh_token)
        logger.info("Token refreshed successfully")
        await self._persist()
        return True

    async def _persist(self) -> None:
        """Store the live pair; a storage failure never undoes the refresh."""
        if self.repository is None or self._credentials is None:
            return
        try:
            await self.repository.save(self._credentials.access_token, self._credentials.refresh_token)
        except StorageError as e:
            logger.error(f"Token save failed: {e.message} ({e.detail})")

    def get_status(self) -> Dict[str, Any]:
        """Get authentication status summary."""
        return {
            "state": self.state().value,
            "has_refresh_token": bool(self.refresh_token),
            "expires_at": self._credentials.expires_at.isoformat() if self._credentials else None,
        }
