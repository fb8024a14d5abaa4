"""
Repository round-trips against a SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.core.exceptions import StorageError
from app.db.models import AppUser, AuthToken, WebhookLog
from app.db.repositories import TokenRepository, UserRepository, WebhookLogRepository
from app.db.session import Database


pytestmark = pytest.mark.integration


class TestTokenRepository:

    @pytest.mark.asyncio
    async def test_load_latest_empty(self, database):
        assert await TokenRepository(database).load_latest() is None

    @pytest.mark.asyncio
    async def test_save_replaces_previous_pair(self, database):
        repository = TokenRepository(database)

        await repository.save("access-1", "refresh-1")
        await repository.save("access-2", None)

        assert await repository.count() == 1
        row = await repository.load_latest()
        assert isinstance(row, AuthToken)
        assert row.access_token == "access-2"
        assert row.refresh_token is None


class TestWebhookLogRepository:

    @pytest.mark.asyncio
    async def test_record_strips_secret(self, database):
        repository = WebhookLogRepository(database)

        ok = await repository.record(
            {"token": "shh", "symbol": "NSE:SBIN", "action": "BUY", "quantity": "10", "price": 0},
            "success",
            order_id="240101000000001",
        )

        assert ok is True
        (row,) = await repository.get_all()
        assert row.symbol == "NSE:SBIN"
        assert row.quantity == 10
        assert row.order_id == "240101000000001"
        assert "token" not in row.payload

    @pytest.mark.asyncio
    async def test_record_never_raises(self, tmp_path):
        # No tables created: every insert fails
        bare = Database(f"sqlite+aiosqlite:///{tmp_path / 'bare.db'}")
        try:
            ok = await WebhookLogRepository(bare).record({"symbol": "X"}, "failed", reason="boom")
        finally:
            await bare.close()

        assert ok is False

    @pytest.mark.asyncio
    async def test_prune_removes_old_entries(self, database):
        repository = WebhookLogRepository(database)
        old = datetime.now(timezone.utc) - timedelta(days=45)
        async with database.session() as session:
            session.add(WebhookLog(symbol="OLD", action="BUY", status="success", price=0, created_at=old))
        await repository.record({"symbol": "NEW", "action": "SELL", "quantity": 1}, "skipped", reason="duplicate signal")

        deleted = await repository.prune(retention_days=30)

        assert deleted == 1
        remaining = await repository.get_all()
        assert [r.symbol for r in remaining] == ["NEW"]


class TestUserRepository:

    @pytest.mark.asyncio
    async def test_verify_and_change_pin(self, database):
        async with database.session() as session:
            session.add(AppUser(user_password="1234"))
        repository = UserRepository(database)

        assert await repository.verify_pin("1234") is True
        assert await repository.verify_pin("0000") is False

        assert await repository.change_pin("0000", "9999") is False
        assert await repository.change_pin("1234", "9999") is True

        assert await repository.verify_pin("1234") is False
        async with database.session() as session:
            result = await session.execute(select(AppUser.user_password))
            assert result.scalars().all() == ["9999"]


class TestDatabaseDown:
    """Connection failures surface as StorageError, or False for the log."""

    @pytest.mark.asyncio
    async def test_record_returns_false(self, unreachable_database):
        repository = WebhookLogRepository(unreachable_database)
        ok = await repository.record({"symbol": "NSE:SBIN", "action": "BUY", "quantity": 1}, "skipped")
        assert ok is False

    @pytest.mark.asyncio
    async def test_token_calls_raise_storage_error(self, unreachable_database):
        repository = TokenRepository(unreachable_database)

        with pytest.raises(StorageError):
            await repository.load_latest()
        with pytest.raises(StorageError):
            await repository.save("access-1", "refresh-1")

    @pytest.mark.asyncio
    async def test_pin_calls_raise_storage_error(self, unreachable_database):
        repository = UserRepository(unreachable_database)

        with pytest.raises(StorageError):
            await repository.verify_pin("1234")
        with pytest.raises(StorageError):
            await repository.change_pin("1234", "9999")

    @pytest.mark.asyncio
    async def test_prune_raises_storage_error(self, unreachable_database):
        with pytest.raises(StorageError):
            await WebhookLogRepository(unreachable_database).prune(30)
