"""Bonding-curve price, market cap and volume figures.

Pure functions: no state, never raise, never return NaN or inf.
"""

import math
import time
from collections.abc import Sequence

from pumpwatch.parsers.token_types import (
    BondingCurveReserves,
    PriceQuote,
    Trade,
    VolumeMetrics,
)

DAY_MS = 86_400_000

# USD market cap thresholds for the progress bar (33% / 66% / 100% marks)
LOW_MCAP_USD = 100_000.0
MED_MCAP_USD = 500_000.0
HIGH_MCAP_USD = 1_000_000.0

RISK_LOW = 15.0
RISK_MED = 50.0


def now_ms() -> int:
    return int(time.time() * 1000)


def finite(value: float | None) -> float:
    """Coerce None/NaN/inf to 0.0."""
    if value is None:
        return 0.0
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    return value


def compute_price_and_market_cap(
    reserves: BondingCurveReserves, sol_usd_rate: float
) -> PriceQuote:
    """Price and market cap from virtual reserves.

    Market cap in SOL is the virtual SOL reserve itself.
    """
    sol_reserve = finite(reserves.sol_reserve)
    token_reserve = finite(reserves.token_reserve)
    rate = finite(sol_usd_rate)

    if token_reserve <= 0 or sol_reserve <= 0 or rate <= 0:
        return PriceQuote()

    price_sol = sol_reserve / token_reserve
    return PriceQuote(
        price_sol=price_sol,
        price_usd=price_sol * rate,
        market_cap_sol=sol_reserve,
        market_cap_usd=sol_reserve * rate,
    )


def compute_volume_24h(
    trades: Sequence[Trade], current_ms: int | None = None
) -> VolumeMetrics:
    """Sum SOL volume over the last 24h.

    USD volume uses the newest trade's frozen USD price, not the live quote.
    ``trades`` must be newest-first.
    """
    if not trades:
        return VolumeMetrics()

    cutoff = (current_ms if current_ms is not None else now_ms()) - DAY_MS
    volume_sol = sum(finite(t.sol_amount) for t in trades if t.timestamp_ms > cutoff)
    latest_price = finite(trades[0].price_usd)

    return VolumeMetrics(volume_sol=volume_sol, volume_usd=volume_sol * latest_price)


def market_cap_progress(market_cap_sol: float, sol_usd_rate: float) -> float:
    """Piecewise-linear 0-100 progress of USD market cap across the thresholds."""
    mcap_usd = finite(market_cap_sol) * finite(sol_usd_rate)
    if mcap_usd <= 0:
        return 0.0

    if mcap_usd <= LOW_MCAP_USD:
        return min(33.0, mcap_usd / LOW_MCAP_USD * 33)
    if mcap_usd <= MED_MCAP_USD:
        rel = (mcap_usd - LOW_MCAP_USD) / (MED_MCAP_USD - LOW_MCAP_USD)
        return 33 + 33 * rel
    if mcap_usd <= HIGH_MCAP_USD:
        rel = (mcap_usd - MED_MCAP_USD) / (HIGH_MCAP_USD - MED_MCAP_USD)
        return 66 + 34 * rel
    return 100.0


def risk_level(total_risk: float) -> str:
    if total_risk <= RISK_LOW:
        return "low"
    if total_risk <= RISK_MED:
        return "medium"
    return "high"
