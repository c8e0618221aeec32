"""SOL/USD price feed — polls a public ticker and pushes the rate into the store.

The store owns the current rate; this loop only writes it. A failed poll
keeps the last known rate.
"""

import asyncio

import httpx
from loguru import logger

from pumpwatch.parsers.token_store import TokenStore

BINANCE_SOL_PRICE_URL = "https://api.binance.com/api/v3/ticker/price?symbol=SOLUSDT"
STALE_WARNING_SEC = 300.0


class SolPriceFeed:
    def __init__(
        self,
        store: TokenStore,
        *,
        url: str = BINANCE_SOL_PRICE_URL,
        interval_sec: float = 10.0,
        timeout: float = 10.0,
    ) -> None:
        self._store = store
        self._url = url
        self._interval = interval_sec
        self._client = httpx.AsyncClient(timeout=timeout)
        self._last_update: float = 0.0

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_once(self) -> float | None:
        """Fetch the current rate. Returns None on any failure."""
        try:
            resp = await self._client.get(self._url)
            if resp.status_code != 200:
                logger.debug(f"[SOL_PRICE] HTTP {resp.status_code}")
                return None
            data = resp.json()
            price = float(data["price"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"[SOL_PRICE] Fetch failed: {type(e).__name__}: {e}")
            return None

        if price <= 0:
            return None
        return price

    async def refresh(self) -> bool:
        price = await self.fetch_once()
        loop_time = asyncio.get_running_loop().time()
        if price is None:
            stale = loop_time - self._last_update if self._last_update > 0 else 0
            if stale > STALE_WARNING_SEC:
                logger.warning(
                    f"[SOL_PRICE] Stale for {stale:.0f}s, "
                    f"using cached: ${self._store.sol_price:.2f}"
                )
            return False

        self._last_update = loop_time
        self._store.set_sol_price(price)
        logger.debug(f"[SOL_PRICE] Updated: ${price:.2f}")
        return True

    async def run(self) -> None:
        """Poll forever; cancel the task to stop."""
        while True:
            await self.refresh()
            await asyncio.sleep(self._interval)
