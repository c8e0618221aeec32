"""Persistence side-channel — maps tracked tokens and trades to SQLAlchemy rows.

The store hands updates to ``TokenRepository`` synchronously; the repository
only enqueues them. A background task drains the queue, so a slow or broken
database never blocks ingestion. Failed writes are logged and dropped.
"""

import asyncio

from loguru import logger
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pumpwatch.models.base import Base
from pumpwatch.models.token import TokenRecord, TokenTradeRecord
from pumpwatch.parsers.token_types import TrackedToken, Trade


def _sanitize(val: str | None) -> str | None:
    """Strip null bytes and control chars that PostgreSQL rejects."""
    if val is None:
        return None
    return val.replace("\x00", "").strip() or None


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def upsert_tracked_token(session: AsyncSession, token: TrackedToken) -> None:
    """Insert or update a token row, preserving launch data on conflict."""
    derived = token.derived
    values = {
        "address": token.address,
        "symbol": _sanitize(token.symbol) or token.address[:6].upper(),
        "name": _sanitize(token.name) or token.address[:8],
        "dev_wallet": token.dev_wallet,
        "bonding_curve_key": token.bonding_curve_key,
        "created_at_ms": token.created_at_ms,
        "v_sol_in_bonding_curve": token.reserves.sol_reserve,
        "v_tokens_in_bonding_curve": token.reserves.token_reserve,
        "price_usd": derived.price_usd,
        "market_cap_sol": derived.market_cap_sol,
        "market_cap_usd": derived.market_cap_usd,
        "volume_24h_usd": derived.volume_24h_usd,
        "total_risk": derived.risk.total_risk,
        "holder_count": derived.holders_count,
        "is_new": token.is_new,
        "image_url": _sanitize(token.image_url),
        "website": _sanitize(token.website),
        "twitter": _sanitize(token.twitter),
        "telegram": _sanitize(token.telegram),
    }
    # dev_wallet and created_at_ms are launch data, never overwritten
    update_cols = {
        k: v for k, v in values.items() if k not in ("address", "dev_wallet", "created_at_ms")
    }
    stmt = (
        pg_insert(TokenRecord)
        .values(**values)
        .on_conflict_do_update(index_elements=["address"], set_=update_cols)
    )
    await session.execute(stmt)


async def save_token_trade(session: AsyncSession, address: str, trade: Trade) -> None:
    """Insert a trade; a repeated signature is ignored."""
    stmt = (
        pg_insert(TokenTradeRecord)
        .values(
            token_address=address,
            tx_signature=trade.signature,
            side=trade.side.value,
            wallet_address=trade.trader_wallet,
            amount_tokens=trade.token_amount,
            amount_sol=trade.sol_amount,
            price_usd=trade.price_usd,
            timestamp_ms=trade.timestamp_ms,
            is_dev_trade=trade.is_dev_trade,
        )
        .on_conflict_do_nothing(index_elements=["tx_signature"])
    )
    await session.execute(stmt)


class TokenRepository:
    """Queue-backed, best-effort writer. Call ``save``/``append_trade`` from
    the event loop thread; run ``run()`` as a background task."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_queue: int = 10000,
    ) -> None:
        self._session_factory = session_factory
        self._queue: asyncio.Queue[tuple[str, TrackedToken | Trade]] = asyncio.Queue(
            maxsize=max_queue
        )
        self._dropped = 0
        self._written = 0
        self._failed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def stats(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "written": self._written,
            "failed": self._failed,
            "dropped": self._dropped,
        }

    def save(self, token: TrackedToken) -> None:
        self._enqueue(token.address, token)

    def append_trade(self, address: str, trade: Trade) -> None:
        self._enqueue(address, trade)

    def _enqueue(self, address: str, item: TrackedToken | Trade) -> None:
        try:
            self._queue.put_nowait((address, item))
        except asyncio.QueueFull:
            self._dropped += 1
            if self._dropped % 1000 == 1:
                logger.warning(f"[PERSIST] Queue full, dropped {self._dropped} writes")

    async def _write(self, address: str, item: TrackedToken | Trade) -> None:
        try:
            async with self._session_factory() as session:
                if isinstance(item, TrackedToken):
                    await upsert_tracked_token(session, item)
                else:
                    await save_token_trade(session, address, item)
                await session.commit()
            self._written += 1
        except (SQLAlchemyError, OSError, TimeoutError) as e:
            self._failed += 1
            logger.warning(f"[PERSIST] Write failed for {address[:12]}: {e}")

    async def flush(self) -> int:
        """Write everything currently queued. Returns the number processed."""
        processed = 0
        while not self._queue.empty():
            address, item = self._queue.get_nowait()
            await self._write(address, item)
            self._queue.task_done()
            processed += 1
        return processed

    async def run(self) -> None:
        """Drain the queue forever; cancel the task to stop."""
        while True:
            address, item = await self._queue.get()
            try:
                await self._write(address, item)
            finally:
                self._queue.task_done()
