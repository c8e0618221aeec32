"""Token aggregate store — bounded, in-memory view of recently launched tokens.

Holds at most ``max_tokens`` tokens (most recently created first) with at most
``max_trades`` trades each (newest first). Every ingestion recomputes the
token's derived metrics over its whole bounded trade window, so reads never
pay for analysis.

Concurrency: all writes go through one lock and replace the token object
wholesale (frozen dataclasses), so readers on any thread always observe a
fully updated token. Subscribers and the repository are called after the
lock is released.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from loguru import logger

from pumpwatch.parsers.holder_ledger import (
    replay_balances,
    top_holders_pct,
    wallet_holding_pct,
)
from pumpwatch.parsers.pumpportal.models import PumpPortalNewToken, PumpPortalTrade
from pumpwatch.parsers.token_metrics import (
    compute_price_and_market_cap,
    compute_volume_24h,
    finite,
    now_ms,
    risk_level,
)
from pumpwatch.parsers.token_risk import (
    calculate_insider_metrics,
    calculate_token_risk,
    count_snipers,
)
from pumpwatch.parsers.token_types import (
    BondingCurveReserves,
    DerivedMetrics,
    LifecycleBucket,
    TrackedToken,
    Trade,
    TradeSide,
)

if TYPE_CHECKING:
    from pumpwatch.parsers.token_metadata import TokenMetadataInfo

MAX_TRADES_PER_TOKEN = 1000
MAX_TOKENS_IN_LIST = 50

# Market cap thresholds in SOL
ABOUT_TO_GRADUATE_MCAP_SOL = 70.0
GRADUATED_MCAP_SOL = 100.0

Subscriber = Callable[[TrackedToken], None]


def empty_to_none(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value


def classify_bucket(token: TrackedToken) -> LifecycleBucket | None:
    """Lifecycle bucket from ``is_new`` and SOL market cap.

    Active tokens below the graduation band belong to no bucket.
    """
    if token.is_new:
        return LifecycleBucket.NEW
    mcap = token.derived.market_cap_sol
    if mcap >= GRADUATED_MCAP_SOL:
        return LifecycleBucket.GRADUATED
    if mcap >= ABOUT_TO_GRADUATE_MCAP_SOL:
        return LifecycleBucket.ABOUT_TO_GRADUATE
    return None


class TokenStore:
    """Aggregate of tracked tokens, fed by the stream ingestor.

    ``repository`` is optional and duck-typed: ``save(token)`` and
    ``append_trade(address, trade)`` are called after every in-memory update
    and must not block (see ``persistence.TokenRepository``).
    """

    def __init__(
        self,
        *,
        max_tokens: int = MAX_TOKENS_IN_LIST,
        max_trades: int = MAX_TRADES_PER_TOKEN,
        sol_price: float = 0.0,
        repository: Any | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._max_tokens = max_tokens
        self._max_trades = max_trades
        self._sol_price = finite(sol_price)
        self._repository = repository
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens: list[TrackedToken] = []  # most recently created first
        self._by_address: dict[str, TrackedToken] = {}
        self._subscribers: list[Subscriber] = []
        self._connected = False

    # ── Read side ─────────────────────────────────────────────────────

    @property
    def sol_price(self) -> float:
        return self._sol_price

    @property
    def is_connected(self) -> bool:
        return self._connected

    def __len__(self) -> int:
        return len(self._tokens)

    def tokens(self) -> list[TrackedToken]:
        with self._lock:
            return list(self._tokens)

    def get_token(self, address: str) -> TrackedToken | None:
        with self._lock:
            return self._by_address.get(address)

    def list_by_bucket(self, bucket: LifecycleBucket) -> list[TrackedToken]:
        with self._lock:
            return [t for t in self._tokens if classify_bucket(t) is bucket]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback fired with every updated token. Returns unsubscribe."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # ── Ingestion ─────────────────────────────────────────────────────

    def ingest_new_token(
        self, event: PumpPortalNewToken, trades: Sequence[Trade] = ()
    ) -> TrackedToken:
        """Upsert a token from a creation event and move it to the front.

        A repeated creation event merges: metadata is overwritten, launch
        data (dev wallet, creation time, ``is_new``) is preserved, and any
        trades carried by the event are appended to the existing window.
        """
        address = event.mint
        now = self._clock()
        reserves = BondingCurveReserves(
            sol_reserve=finite(event.vSolInBondingCurve),
            token_reserve=finite(event.vTokensInBondingCurve),
        )

        with self._lock:
            existing = self._by_address.get(address)
            if existing is not None:
                has_reserves = reserves.sol_reserve > 0 or reserves.token_reserve > 0
                token = replace(
                    existing,
                    symbol=event.symbol or existing.symbol,
                    name=event.name or existing.name,
                    bonding_curve_key=event.bondingCurveKey or existing.bonding_curve_key,
                    reserves=reserves if has_reserves else existing.reserves,
                    recent_trades=(existing.recent_trades + tuple(trades))[: self._max_trades],
                    uri=empty_to_none(event.uri) or existing.uri,
                    image_url=empty_to_none(event.imageUrl) or existing.image_url,
                    website=empty_to_none(event.website) or existing.website,
                    twitter=empty_to_none(event.twitter) or existing.twitter,
                    telegram=empty_to_none(event.telegram) or existing.telegram,
                    updated_at_ms=now,
                )
                self._tokens.remove(existing)
            else:
                token = TrackedToken(
                    address=address,
                    symbol=event.symbol or address[:6].upper(),
                    name=event.name or f"Token {address[:8]}",
                    created_at_ms=event.timestamp or now,
                    reserves=reserves,
                    bonding_curve_key=event.bondingCurveKey,
                    dev_wallet=event.traderPublicKey,
                    recent_trades=tuple(trades)[: self._max_trades],
                    is_new=True,
                    uri=empty_to_none(event.uri),
                    image_url=empty_to_none(event.imageUrl),
                    website=empty_to_none(event.website),
                    twitter=empty_to_none(event.twitter),
                    telegram=empty_to_none(event.telegram),
                    updated_at_ms=now,
                )

            token = replace(token, derived=self._derive(token, now))
            self._tokens.insert(0, token)
            self._by_address[address] = token

            evicted = self._tokens[self._max_tokens :]
            del self._tokens[self._max_tokens :]
            for old in evicted:
                self._by_address.pop(old.address, None)

        for old in evicted:
            logger.debug(f"[STORE] Evicted {old.symbol} ({old.address[:12]}...)")
        logger.debug(
            f"[STORE] {'Merged' if existing else 'New'} token {token.symbol} "
            f"({address[:12]}...) mcap={token.derived.market_cap_sol:.2f} SOL"
        )

        self._persist(token)
        self._notify(token)
        return token

    def ingest_trade(self, address: str, trade: Trade) -> TrackedToken | None:
        """Prepend a trade, overwrite reserves from its snapshot, recompute metrics.

        Trades for unknown tokens are dropped. The token keeps its position
        in the list: only creation events reorder.
        """
        now = self._clock()
        with self._lock:
            existing = self._by_address.get(address)
            if existing is None:
                token = None
            else:
                token = replace(
                    existing,
                    recent_trades=((trade,) + existing.recent_trades)[: self._max_trades],
                    reserves=trade.reserves,
                    bonding_curve_key=trade.bonding_curve_key or existing.bonding_curve_key,
                    updated_at_ms=now,
                )
                token = replace(token, derived=self._derive(token, now))
                self._replace_locked(existing, token)

        if token is None:
            logger.debug(f"[STORE] Trade for unknown token {address[:12]}... dropped")
            return None

        self._persist(token, trade)
        self._notify(token)
        return token

    def trade_from_event(
        self, event: PumpPortalTrade, received_at_ms: int | None = None
    ) -> Trade:
        """Build a Trade, pricing it with the SOL rate current right now."""
        reserves = BondingCurveReserves(
            sol_reserve=finite(event.vSolInBondingCurve),
            token_reserve=finite(event.vTokensInBondingCurve),
        )
        quote = compute_price_and_market_cap(reserves, self._sol_price)
        token = self.get_token(event.mint)
        dev_wallet = token.dev_wallet if token else None
        timestamp = event.timestamp or received_at_ms or self._clock()

        return Trade(
            signature=event.signature or f"{event.mint}:{event.traderPublicKey}:{timestamp}",
            timestamp_ms=timestamp,
            side=TradeSide(event.txType),
            trader_wallet=event.traderPublicKey,
            counterparty_wallet=event.counterpartyPublicKey,
            token_amount=finite(event.tokenAmount),
            sol_amount=finite(event.solAmount),
            reserves=reserves,
            bonding_curve_key=event.bondingCurveKey,
            market_cap_sol=finite(event.marketCapSol) or quote.market_cap_sol,
            price_sol=quote.price_sol,
            price_usd=quote.price_usd,
            is_dev_trade=dev_wallet is not None and dev_wallet == event.traderPublicKey,
        )

    # ── Quotes and metadata ───────────────────────────────────────────

    def update_quote(self, address: str, new_price_usd: float) -> TrackedToken | None:
        """Set a token's live USD price.

        A zero price never overwrites a nonzero one (a bad oracle read).
        """
        with self._lock:
            existing = self._by_address.get(address)
            if existing is None:
                return None
            token = self._requote_locked(existing, finite(new_price_usd))

        self._notify(token)
        return token

    def set_sol_price(self, rate: float) -> None:
        """Update the SOL/USD rate and re-quote every token from its reserves.

        Historical trades keep the USD price frozen at their ingestion.
        """
        rate = finite(rate)
        if rate <= 0:
            logger.warning(f"[STORE] Ignoring invalid SOL price {rate}")
            return

        updated: list[TrackedToken] = []
        with self._lock:
            self._sol_price = rate
            for existing in list(self._tokens):
                if existing.reserves.sol_reserve <= 0 or existing.reserves.token_reserve <= 0:
                    continue
                quote = compute_price_and_market_cap(existing.reserves, rate)
                token = self._requote_locked(
                    existing,
                    quote.price_usd,
                    market_cap_sol=quote.market_cap_sol,
                    market_cap_usd=quote.market_cap_usd,
                )
                updated.append(token)

        logger.debug(f"[STORE] SOL=${rate:.2f}, re-quoted {len(updated)} tokens")
        for token in updated:
            self._notify(token)

    def mark_active(self, address: str) -> TrackedToken | None:
        """Clear ``is_new``; the store never does this on its own."""
        with self._lock:
            existing = self._by_address.get(address)
            if existing is None or not existing.is_new:
                return existing
            token = replace(existing, is_new=False)
            self._replace_locked(existing, token)

        self._notify(token)
        return token

    def apply_metadata(
        self, address: str, metadata: TokenMetadataInfo
    ) -> TrackedToken | None:
        """Patch off-chain metadata in, if the token is still tracked."""
        with self._lock:
            existing = self._by_address.get(address)
            if existing is None:
                return None
            token = replace(
                existing,
                image_url=metadata.image_url or existing.image_url,
                description=metadata.description or existing.description,
                website=metadata.website or existing.website,
                twitter=metadata.twitter or existing.twitter,
                telegram=metadata.telegram or existing.telegram,
            )
            self._replace_locked(existing, token)

        self._persist(token)
        self._notify(token)
        return token

    def set_connected(self, connected: bool) -> None:
        self._connected = connected

    def reset(self) -> None:
        with self._lock:
            self._tokens.clear()
            self._by_address.clear()

    # ── Internals ─────────────────────────────────────────────────────

    def _derive(self, token: TrackedToken, now: int) -> DerivedMetrics:
        trades = token.recent_trades
        reserve = token.reserves.token_reserve
        quote = compute_price_and_market_cap(token.reserves, self._sol_price)
        volume = compute_volume_24h(trades, now)
        insider = calculate_insider_metrics(
            trades, token.dev_wallet, token.created_at_ms, reserve
        )
        risk = calculate_token_risk(
            trades, token.dev_wallet, token.created_at_ms, reserve, now, insider=insider
        )
        balances = replay_balances(trades)

        return DerivedMetrics(
            price_sol=quote.price_sol,
            price_usd=quote.price_usd,
            market_cap_sol=quote.market_cap_sol,
            market_cap_usd=quote.market_cap_usd,
            volume_24h_sol=volume.volume_sol,
            volume_24h_usd=volume.volume_usd,
            risk=risk,
            risk_level=risk_level(risk.total_risk),
            holders_count=len(balances),
            top10_holders_pct=top_holders_pct(balances, reserve),
            dev_holding_pct=wallet_holding_pct(balances, token.dev_wallet, reserve),
            insider_pct=insider.percentage,
            sniper_count=count_snipers(trades, token.dev_wallet, token.created_at_ms),
        )

    def _requote_locked(
        self,
        existing: TrackedToken,
        price_usd: float,
        *,
        market_cap_sol: float | None = None,
        market_cap_usd: float | None = None,
    ) -> TrackedToken:
        current = existing.derived
        if price_usd == 0 and current.price_usd > 0:
            price_usd = current.price_usd
        price_sol = price_usd / self._sol_price if self._sol_price > 0 else 0.0

        derived = replace(
            current,
            price_usd=price_usd,
            price_sol=price_sol,
            market_cap_sol=current.market_cap_sol if market_cap_sol is None else market_cap_sol,
            market_cap_usd=current.market_cap_usd if market_cap_usd is None else market_cap_usd,
        )
        token = replace(existing, derived=derived)
        self._replace_locked(existing, token)
        return token

    def _replace_locked(self, old: TrackedToken, new: TrackedToken) -> None:
        for i, tracked in enumerate(self._tokens):
            if tracked is old:
                self._tokens[i] = new
                break
        self._by_address[new.address] = new

    def _notify(self, token: TrackedToken) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(token)
            except Exception as e:
                logger.error(f"[STORE] Subscriber failed for {token.address[:12]}: {e}")

    def _persist(self, token: TrackedToken, trade: Trade | None = None) -> None:
        if self._repository is None:
            return
        try:
            self._repository.save(token)
            if trade is not None:
                self._repository.append_trade(token.address, trade)
        except Exception as e:
            logger.warning(f"[STORE] Persistence hand-off failed for {token.address[:12]}: {e}")
