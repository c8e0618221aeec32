"""Domain types for the token aggregation engine.

All types are frozen: the store replaces a token wholesale on every update,
so any reference handed to a reader is a consistent snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class LifecycleBucket(str, Enum):
    """Dashboard columns a token can be listed under."""

    NEW = "new"
    ABOUT_TO_GRADUATE = "about_to_graduate"
    GRADUATED = "graduated"


@dataclass(frozen=True)
class BondingCurveReserves:
    """Virtual reserves of the bonding curve (post-trade absolute totals)."""

    sol_reserve: float = 0.0
    token_reserve: float = 0.0


@dataclass(frozen=True)
class PriceQuote:
    price_sol: float = 0.0
    price_usd: float = 0.0
    market_cap_sol: float = 0.0
    market_cap_usd: float = 0.0


@dataclass(frozen=True)
class VolumeMetrics:
    volume_sol: float = 0.0
    volume_usd: float = 0.0


@dataclass(frozen=True)
class Trade:
    """One buy/sell event.

    ``price_sol``/``price_usd`` are frozen at ingestion using the SOL/USD rate
    of that moment and are never re-priced afterwards.
    """

    signature: str
    timestamp_ms: int
    side: TradeSide
    trader_wallet: str
    token_amount: float = 0.0
    sol_amount: float = 0.0
    reserves: BondingCurveReserves = field(default_factory=BondingCurveReserves)
    counterparty_wallet: str | None = None
    bonding_curve_key: str | None = None
    market_cap_sol: float = 0.0
    price_sol: float = 0.0
    price_usd: float = 0.0
    is_dev_trade: bool = False


@dataclass(frozen=True)
class RiskMetrics:
    """Risk sub-scores. ``insider_risk`` is on a 0-10 scale, the rest 0-100."""

    holders_risk: float
    volume_risk: float
    dev_wallet_risk: float
    insider_risk: float
    total_risk: float


# No trades: {100, 100, 50, 0} averaged.
NO_TRADES_RISK = RiskMetrics(
    holders_risk=100.0,
    volume_risk=100.0,
    dev_wallet_risk=50.0,
    insider_risk=0.0,
    total_risk=83.33,
)


@dataclass(frozen=True)
class InsiderMetrics:
    """Early-trader (insider) pattern analysis."""

    percentage: float = 0.0  # early traders' balance as % of token reserve
    risk: int = 0  # 0-10
    count: int = 0  # number of early traders
    quick_flips: int = 0  # early traders with more than 2 quick flips
    large_holders: int = 0
    coordinated_buys: int = 0  # 1-minute windows with >= 3 trades
    flips_by_wallet: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class DerivedMetrics:
    """Cached per-token figures, recomputed on ingestion, never on read."""

    price_sol: float = 0.0
    price_usd: float = 0.0
    market_cap_sol: float = 0.0
    market_cap_usd: float = 0.0
    volume_24h_sol: float = 0.0
    volume_24h_usd: float = 0.0
    risk: RiskMetrics = NO_TRADES_RISK
    risk_level: str = "high"
    holders_count: int = 0
    top10_holders_pct: float = 0.0
    dev_holding_pct: float = 0.0
    insider_pct: float = 0.0
    sniper_count: int = 0


@dataclass(frozen=True)
class TrackedToken:
    address: str
    symbol: str
    name: str
    created_at_ms: int
    reserves: BondingCurveReserves = field(default_factory=BondingCurveReserves)
    bonding_curve_key: str | None = None
    dev_wallet: str | None = None
    recent_trades: tuple[Trade, ...] = ()  # newest first
    is_new: bool = True
    derived: DerivedMetrics = field(default_factory=DerivedMetrics)
    updated_at_ms: int = 0

    # Off-chain metadata, patched in after the creation event
    uri: str | None = None
    image_url: str | None = None
    description: str | None = None
    website: str | None = None
    twitter: str | None = None
    telegram: str | None = None
