"""
Tests for the Upstox credential lifecycle.
"""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from app.core.exceptions import AuthFailure, BrokerAPIError, StorageError
from app.db.repositories.tokens import TokenRepository
from app.services.token_manager import TokenManager, TokenState


class FakeClock:

    def __init__(self):
        self.now = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(mock_upstox_client, clock):
    return TokenManager(mock_upstox_client, clock=clock)


class TestStates:

    def test_starts_unset(self, manager):
        assert manager.state() == TokenState.UNSET
        assert manager.access_token is None

    @pytest.mark.asyncio
    async def test_exchange_makes_token_live(self, manager):
        pair = await manager.exchange_code("auth-code")

        assert pair.access_token == "access-1"
        assert pair.refresh_token == "refresh-1"
        assert manager.state() == TokenState.LIVE

    @pytest.mark.asyncio
    async def test_token_goes_stale_near_expiry(self, manager, clock):
        await manager.exchange_code("auth-code")

        clock.advance(hours=22, minutes=58)
        assert manager.state() == TokenState.LIVE

        clock.advance(minutes=1, seconds=30)
        assert manager.state() == TokenState.STALE

    @pytest.mark.asyncio
    async def test_wider_margin_reports_stale_earlier(self, manager, clock):
        await manager.exchange_code("auth-code")
        clock.advance(hours=20)

        assert manager.state() == TokenState.LIVE
        assert manager.state(margin=timedelta(hours=4)) == TokenState.STALE


class TestExchange:

    @pytest.mark.asyncio
    async def test_broker_error_becomes_auth_failure(self, manager, mock_upstox_client):
        mock_upstox_client.exchange_code.side_effect = BrokerAPIError("Invalid auth code", status_code=400)

        with pytest.raises(AuthFailure, match="Invalid auth code"):
            await manager.exchange_code("bad-code")
        assert manager.state() == TokenState.UNSET

    @pytest.mark.asyncio
    async def test_missing_access_token_is_auth_failure(self, manager, mock_upstox_client):
        mock_upstox_client.exchange_code.return_value = {"status": "success"}

        with pytest.raises(AuthFailure):
            await manager.exchange_code("auth-code")

    @pytest.mark.asyncio
    async def test_exchange_persists_pair(self, mock_upstox_client, clock):
        repository = AsyncMock()
        manager = TokenManager(mock_upstox_client, repository, clock=clock)

        await manager.exchange_code("auth-code")

        repository.save.assert_awaited_once_with("access-1", "refresh-1")


class TestEnsureValid:

    @pytest.mark.asyncio
    async def test_unset_is_invalid(self, manager, mock_upstox_client):
        assert await manager.ensure_valid() is False
        mock_upstox_client.refresh_access_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_live_token_needs_no_refresh(self, manager, mock_upstox_client):
        await manager.exchange_code("auth-code")

        assert await manager.ensure_valid() is True
        mock_upstox_client.refresh_access_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_token_refreshed(self, manager, mock_upstox_client, clock):
        await manager.exchange_code("auth-code")
        clock.advance(hours=23)

        assert await manager.ensure_valid() is True
        mock_upstox_client.refresh_access_token.assert_awaited_once_with("refresh-1")
        assert manager.access_token == "access-2"
        assert manager.state() == TokenState.LIVE

    @pytest.mark.asyncio
    async def test_failed_refresh_leaves_token_stale(self, manager, mock_upstox_client, clock):
        await manager.exchange_code("auth-code")
        clock.advance(hours=23)
        mock_upstox_client.refresh_access_token.side_effect = BrokerAPIError("Invalid refresh token")

        assert await manager.ensure_valid() is False
        assert manager.access_token == "access-1"
        assert manager.state() == TokenState.STALE
        assert mock_upstox_client.refresh_access_token.await_count == 1

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(self, manager, mock_upstox_client, clock):
        await manager.exchange_code("auth-code")
        clock.advance(hours=23)
        mock_upstox_client.refresh_access_token.return_value = {"access_token": "access-3"}

        assert await manager.ensure_valid() is True
        assert manager.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_proactive_refresh_with_margin(self, manager, mock_upstox_client, clock):
        await manager.exchange_code("auth-code")
        clock.advance(hours=20)

        assert await manager.ensure_valid(margin=timedelta(hours=4)) is True
        mock_upstox_client.refresh_access_token.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_undo_refresh(self, mock_upstox_client, clock):
        repository = AsyncMock()
        repository.save.side_effect = StorageError("db down")
        manager = TokenManager(mock_upstox_client, repository, clock=clock)
        await manager.exchange_code("auth-code")
        clock.advance(hours=23)

        assert await manager.ensure_valid() is True
        assert manager.access_token == "access-2"


class TestLoad:

    @pytest.mark.asyncio
    async def test_load_without_repository(self, manager):
        assert await manager.load() is False

    @pytest.mark.asyncio
    async def test_load_storage_error_is_not_raised(self, mock_upstox_client):
        repository = AsyncMock()
        repository.load_latest.side_effect = StorageError("db down")
        manager = TokenManager(mock_upstox_client, repository)

        assert await manager.load() is False
        assert manager.state() == TokenState.UNSET

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_saved_pair_survives_restart(self, database, mock_upstox_client, clock):
        first = TokenManager(mock_upstox_client, TokenRepository(database), clock=clock)
        await first.exchange_code("auth-code")

        second = TokenManager(mock_upstox_client, TokenRepository(database), clock=clock)
        assert await second.load() is True

        assert second.access_token == first.access_token == "access-1"
        assert second.refresh_token == first.refresh_token == "refresh-1"
        assert second.state() == TokenState.LIVE

    @pytest.mark.asyncio
    async def test_unreachable_database(self, unreachable_database, mock_upstox_client):
        manager = TokenManager(mock_upstox_client, TokenRepository(unreachable_database))

        assert await manager.load() is False
        assert manager.state() == TokenState.UNSET

        # Exchange still succeeds when the pair cannot be saved
        await manager.exchange_code("auth-code")
        assert manager.access_token == "access-1"


def test_status_reports_state(manager):
    status = manager.get_status()
    assert status == {"state": "unset", "has_refresh_token": False, "expires_at": None}
