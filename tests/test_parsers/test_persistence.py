"""Tests for the queue-backed token repository (mocked sessions)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from pumpwatch.parsers.persistence import (
    TokenRepository,
    save_token_trade,
    upsert_tracked_token,
)
from pumpwatch.parsers.token_types import TrackedToken

MINT = "MintAddr111111111111"


def _session_factory() -> tuple[MagicMock, AsyncMock]:
    session = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory, session


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _token(**fields) -> TrackedToken:
    data = {
        "address": MINT,
        "symbol": "TEST",
        "name": "Test\x00 Coin",
        "created_at_ms": 1_700_000_000_000,
        "dev_wallet": "dev_wallet",
    }
    data.update(fields)
    return TrackedToken(**data)


class TestStatements:
    @pytest.mark.asyncio
    async def test_upsert_preserves_launch_data(self) -> None:
        session = AsyncMock()
        await upsert_tracked_token(session, _token())

        sql = _sql(session.execute.await_args.args[0])
        assert "ON CONFLICT (address) DO UPDATE" in sql
        update_clause = sql.split("DO UPDATE SET")[1]
        assert "dev_wallet" not in update_clause
        assert "created_at_ms" not in update_clause
        assert "symbol" in update_clause

    @pytest.mark.asyncio
    async def test_upsert_sanitizes_text(self) -> None:
        session = AsyncMock()
        await upsert_tracked_token(session, _token(symbol="  ", website="\x00"))

        params = session.execute.await_args.args[0].compile(dialect=postgresql.dialect()).params
        assert params["name"] == "Test Coin"
        assert params["symbol"] == "MINTAD"
        assert params["website"] is None

    @pytest.mark.asyncio
    async def test_trade_insert_is_idempotent(self, make_trade) -> None:
        session = AsyncMock()
        await save_token_trade(session, MINT, make_trade(signature="sig_x"))

        stmt = session.execute.await_args.args[0]
        assert "ON CONFLICT (tx_signature) DO NOTHING" in _sql(stmt)
        assert stmt.compile(dialect=postgresql.dialect()).params["tx_signature"] == "sig_x"


class TestTokenRepository:
    @pytest.mark.asyncio
    async def test_flush_writes_queued_items(self, make_trade) -> None:
        factory, session = _session_factory()
        repo = TokenRepository(factory)

        repo.save(_token())
        repo.append_trade(MINT, make_trade())
        assert repo.pending == 2

        assert await repo.flush() == 2
        assert session.execute.await_count == 2
        assert session.commit.await_count == 2
        assert repo.stats == {"pending": 0, "written": 2, "failed": 0, "dropped": 0}

    @pytest.mark.asyncio
    async def test_full_queue_drops(self) -> None:
        factory, _ = _session_factory()
        repo = TokenRepository(factory, max_queue=1)

        repo.save(_token())
        repo.save(_token())

        assert repo.pending == 1
        assert repo.stats["dropped"] == 1

    @pytest.mark.asyncio
    async def test_write_failure_logged_not_raised(self) -> None:
        factory, session = _session_factory()
        session.execute.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        repo = TokenRepository(factory)

        repo.save(_token())
        assert await repo.flush() == 1
        assert repo.stats["failed"] == 1
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_survives_connection_refused(self) -> None:
        factory = MagicMock(side_effect=ConnectionRefusedError("db down"))
        repo = TokenRepository(factory)
        repo.save(_token())
        repo.save(_token())

        task = asyncio.create_task(repo.run())
        await asyncio.sleep(0.05)

        assert not task.done()
        assert repo.pending == 0
        assert repo.stats["failed"] == 2

        # still draining after the failures
        repo.save(_token())
        await asyncio.sleep(0.05)
        assert repo.stats["failed"] == 3

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
