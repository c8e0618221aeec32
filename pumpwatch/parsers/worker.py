"""Monitor worker — wires the PumpPortal stream into the token store.

Tasks:
1. PumpPortal WebSocket — creation + trade events for tracked tokens
2. SOL/USD price feed — re-quotes tokens when the rate moves
3. Persistence writer (optional) — drains the repository queue
4. Stats reporter — periodic one-line summary
Metadata URI fetches run as short-lived background tasks per new token.
"""

import asyncio

from loguru import logger

from config.settings import settings
from pumpwatch.db.database import create_engine, create_session_factory
from pumpwatch.parsers.persistence import TokenRepository, create_tables
from pumpwatch.parsers.pumpportal.models import (
    PumpPortalHeartbeat,
    PumpPortalNewToken,
    PumpPortalTrade,
)
from pumpwatch.parsers.pumpportal.ws_client import PumpPortalClient
from pumpwatch.parsers.sol_price import SolPriceFeed
from pumpwatch.parsers.token_metadata import MetadataFetcher
from pumpwatch.parsers.token_metrics import now_ms
from pumpwatch.parsers.token_store import TokenStore
from pumpwatch.parsers.token_types import LifecycleBucket

STATS_INTERVAL_SEC = 60


class StreamIngestor:
    """Translates typed stream events into store operations.

    Metadata fetches never block event handling: each runs in its own task
    with its own timeout and patches the token in when (if) it completes.
    """

    def __init__(
        self,
        store: TokenStore,
        client: PumpPortalClient | None = None,
        metadata_fetcher: MetadataFetcher | None = None,
        *,
        metadata_timeout: float = 5.0,
    ) -> None:
        self._store = store
        self._client = client
        self._fetcher = metadata_fetcher
        self._metadata_timeout = metadata_timeout
        self._pending: set[asyncio.Task] = set()
        self.trades_ingested = 0
        self.trades_dropped = 0

    @property
    def pending_fetches(self) -> int:
        return len(self._pending)

    def attach(self, client: PumpPortalClient) -> None:
        self._client = client
        client.on_new_token = self.on_new_token
        client.on_trade = self.on_trade
        client.on_heartbeat = self.on_heartbeat
        client.on_connection_change = self._store.set_connected

    async def on_new_token(self, event: PumpPortalNewToken) -> None:
        before = {t.address for t in self._store.tokens()}
        token = self._store.ingest_new_token(event)
        after = {t.address for t in self._store.tokens()}
        evicted = before - after

        if self._client is not None:
            await self._client.subscribe_tokens_live([token.address])
            if evicted:
                await self._client.unsubscribe_tokens_live(sorted(evicted))

        if self._fetcher is not None and event.uri:
            task = asyncio.create_task(
                self._enrich(token.address, event.uri), name=f"metadata_{token.address[:8]}"
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        logger.info(f"[PP] New token: {token.symbol} ({token.address[:12]}...)")

    async def on_trade(self, event: PumpPortalTrade) -> None:
        trade = self._store.trade_from_event(event, now_ms())
        if self._store.ingest_trade(event.mint, trade) is None:
            self.trades_dropped += 1
            return
        self.trades_ingested += 1
        if trade.is_dev_trade:
            logger.info(
                f"[PP] Dev {trade.side.value} on {event.mint[:12]}...: "
                f"{trade.sol_amount:.3f} SOL"
            )

    async def on_heartbeat(self, event: PumpPortalHeartbeat) -> None:
        logger.trace("[PP] Heartbeat")

    async def _enrich(self, address: str, uri: str) -> None:
        try:
            metadata = await asyncio.wait_for(
                self._fetcher.fetch(uri), timeout=self._metadata_timeout
            )
        except TimeoutError:
            logger.debug(f"[METADATA] Timed out for {address[:12]}")
            return
        if metadata is None:
            return
        if self._store.apply_metadata(address, metadata) is None:
            logger.debug(f"[METADATA] {address[:12]} evicted before metadata arrived")

    async def close(self) -> None:
        """Cancel outstanding metadata fetches."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()


async def _stats_reporter(
    store: TokenStore,
    client: PumpPortalClient,
    ingestor: StreamIngestor,
    repository: TokenRepository | None,
) -> None:
    while True:
        await asyncio.sleep(STATS_INTERVAL_SEC)
        buckets = {b.value: len(store.list_by_bucket(b)) for b in LifecycleBucket}
        parts = [
            f"tokens: {len(store)}",
            f"buckets: {buckets}",
            f"trades: {ingestor.trades_ingested} (+{ingestor.trades_dropped} dropped)",
            f"SOL: ${store.sol_price:.2f}",
            f"PP messages: {client.message_count}",
            f"PP state: {client.state.value}",
        ]
        if repository is not None:
            parts.append(f"persist: {repository.stats}")
        if client.gave_up:
            logger.error("[STATS] Stream disconnected permanently | " + " | ".join(parts))
        else:
            logger.info("[STATS] " + " | ".join(parts))


async def run_monitor() -> None:
    """Start the stream, price feed and optional persistence; tear down as a unit."""
    engine = None
    repository: TokenRepository | None = None
    if settings.persistence_enabled:
        engine = create_engine(settings.database_url)
        await create_tables(engine)
        repository = TokenRepository(
            create_session_factory(engine), max_queue=settings.persistence_queue_size
        )
        logger.info("Persistence enabled")

    store = TokenStore(
        max_tokens=settings.max_tokens_in_list,
        max_trades=settings.max_trades_per_token,
        repository=repository,
    )
    client = PumpPortalClient(
        settings.pumpportal_ws_url,
        reconnect_delay=settings.ws_reconnect_delay_sec,
        max_reconnect_attempts=settings.ws_max_reconnect_attempts,
        heartbeat_interval=settings.ws_heartbeat_interval_sec,
    )
    fetcher: MetadataFetcher | None = None
    if settings.metadata_fetch_enabled:
        fetcher = MetadataFetcher(
            timeout=settings.metadata_fetch_timeout_sec,
            gateway=settings.ipfs_gateway_url,
        )
    ingestor = StreamIngestor(
        store, metadata_fetcher=fetcher, metadata_timeout=settings.metadata_fetch_timeout_sec
    )
    ingestor.attach(client)
    sol_feed = SolPriceFeed(
        store, url=settings.sol_price_url, interval_sec=settings.sol_price_interval_sec
    )

    tasks = [
        asyncio.create_task(sol_feed.run(), name="sol_price"),
        asyncio.create_task(client.connect(), name="pumpportal_ws"),
        asyncio.create_task(
            _stats_reporter(store, client, ingestor, repository), name="stats"
        ),
    ]
    if repository is not None:
        tasks.append(asyncio.create_task(repository.run(), name="persistence"))

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("Monitor tasks cancelled")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await client.stop()
        await ingestor.close()
        await sol_feed.close()
        if fetcher:
            await fetcher.close()
        if repository:
            await repository.flush()
        if engine:
            await engine.dispose()
