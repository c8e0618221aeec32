"""Token risk scoring from the bounded trade window.

Four independent sub-scores combined into a total:
  holders     0-100  trader concentration (overall + last 10 trades)
  volume      0-100  irregularity of trade sizes and timing over 24h
  dev wallet  0-100  creator's share of trade count and volume
  insider     0-10   early-trader patterns (quick flips, large holders,
                     coordinated buys); rescaled x10 in the total

Every function tolerates empty trade lists and a missing dev wallet by
returning its fallback constant. Trade lists are expected newest-first.
"""

import math
from collections.abc import Sequence

from pumpwatch.parsers.holder_ledger import chronological
from pumpwatch.parsers.token_metrics import DAY_MS, finite, now_ms
from pumpwatch.parsers.token_types import (
    NO_TRADES_RISK,
    InsiderMetrics,
    RiskMetrics,
    Trade,
    TradeSide,
)

MINUTE_MS = 60_000
HOUR_MS = 3_600_000

RECENT_WINDOW_TRADES = 10
NO_RECENT_VOLUME_RISK = 75.0
UNKNOWN_DEV_RISK = 50.0
DEV_NOT_TRADING_RISK = 25.0

EARLY_TRADER_WINDOW_MS = 6 * HOUR_MS
QUICK_FLIP_WINDOW_MS = 5 * MINUTE_MS
QUICK_FLIPS_PER_FLIPPER = 2  # a wallet needs more than this to count as a flipper
LARGE_HOLDER_PCT = 5.0
COORDINATED_WINDOW_MS = HOUR_MS
COORDINATED_BUCKET_MS = MINUTE_MS
COORDINATED_MIN_TRADES = 3
SNIPER_WINDOW_MS = 15_000


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    if not math.isfinite(value):
        return high
    return max(low, min(high, value))


def _mean_std(values: Sequence[float]) -> tuple[float, float]:
    """Mean and population standard deviation."""
    n = len(values)
    if n == 0:
        return 0.0, 0.0
    mean = sum(values) / n
    variance = sum((v - mean) ** 2 for v in values) / n
    return mean, math.sqrt(variance)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_holders_risk(trades: Sequence[Trade]) -> float:
    total = len(trades)
    if total == 0:
        return 100.0

    unique = len({t.trader_wallet for t in trades})
    concentration = unique / total
    normalized = max(0.0, 100 - concentration * 100)

    recent = trades[: min(RECENT_WINDOW_TRADES, total)]
    recent_concentration = len({t.trader_wallet for t in recent}) / len(recent)

    return _clamp(normalized * 0.7 + (1 - recent_concentration) * 100 * 0.3)


def calculate_volume_risk(
    trades: Sequence[Trade], current_ms: int | None = None
) -> float:
    if not trades:
        return 100.0

    cutoff = (current_ms if current_ms is not None else now_ms()) - DAY_MS
    recent = [t for t in trades if t.timestamp_ms > cutoff]
    if not recent:
        return NO_RECENT_VOLUME_RISK

    avg_volume, std_volume = _mean_std([max(0.0, finite(t.sol_amount)) for t in recent])
    if avg_volume <= 0:
        return 100.0
    volume_variance = std_volume / avg_volume

    ordered = chronological(recent)
    gaps = [
        later.timestamp_ms - earlier.timestamp_ms
        for earlier, later in zip(ordered, ordered[1:])
    ]
    avg_gap, std_gap = _mean_std(gaps)
    time_variance = std_gap / avg_gap if avg_gap > 0 else 0.0

    return _clamp(volume_variance * 50 + time_variance * 25)


def calculate_dev_wallet_risk(
    trades: Sequence[Trade], dev_wallet: str | None
) -> float:
    if not dev_wallet or not trades:
        return UNKNOWN_DEV_RISK

    dev_trades = [
        t
        for t in trades
        if t.trader_wallet == dev_wallet or t.counterparty_wallet == dev_wallet
    ]
    if not dev_trades:
        return DEV_NOT_TRADING_RISK

    count_share = len(dev_trades) / len(trades) * 100
    total_volume = sum(finite(t.sol_amount) for t in trades)
    dev_volume = sum(finite(t.sol_amount) for t in dev_trades)
    volume_share = dev_volume / total_volume * 100 if total_volume > 0 else 0.0

    weighted = count_share * 0.4 + volume_share * 0.6
    return _clamp(weighted * 2)


def calculate_insider_metrics(
    trades: Sequence[Trade],
    dev_wallet: str | None,
    created_at_ms: int,
    token_reserve: float,
) -> InsiderMetrics:
    """Early-trader (insider) patterns.

    Early trader: non-dev wallet whose first trade lands within 6h of creation.
    Quick flip: a buy following a sell by the same wallet within 5 minutes.
    Large holder: early trader holding more than 5% of the token reserve.
    Coordinated window: a 1-minute bucket in the first hour with >= 3 trades.
    """
    if not trades:
        return InsiderMetrics()

    reserve = finite(token_reserve)
    ordered = chronological(trades)

    first_trade: dict[str, int] = {}
    balances: dict[str, float] = {}
    flips: dict[str, int] = {}
    sells: dict[str, list[int]] = {}

    for trade in ordered:
        wallet = trade.trader_wallet
        if not wallet or wallet == dev_wallet:
            continue

        first_trade.setdefault(wallet, trade.timestamp_ms)
        amount = finite(trade.token_amount)

        if trade.side == TradeSide.BUY:
            balances[wallet] = balances.get(wallet, 0.0) + amount
            if any(
                trade.timestamp_ms - sold_at < QUICK_FLIP_WINDOW_MS
                for sold_at in sells.get(wallet, ())
            ):
                flips[wallet] = flips.get(wallet, 0) + 1
        else:
            balances[wallet] = balances.get(wallet, 0.0) - amount
            sells.setdefault(wallet, []).append(trade.timestamp_ms)

    early = [
        wallet
        for wallet, first_at in first_trade.items()
        if first_at <= created_at_ms + EARLY_TRADER_WINDOW_MS
    ]

    quick_flippers = 0
    large_holders = 0
    insider_balance = 0.0
    for wallet in early:
        balance = max(0.0, balances.get(wallet, 0.0))
        if flips.get(wallet, 0) > QUICK_FLIPS_PER_FLIPPER:
            quick_flippers += 1
        if reserve > 0 and balance / reserve * 100 > LARGE_HOLDER_PCT:
            large_holders += 1
        insider_balance += balance

    buckets: dict[int, int] = {}
    for trade in ordered:
        if trade.timestamp_ms <= created_at_ms + COORDINATED_WINDOW_MS:
            bucket = trade.timestamp_ms // COORDINATED_BUCKET_MS
            buckets[bucket] = buckets.get(bucket, 0) + 1
    coordinated = sum(1 for count in buckets.values() if count >= COORDINATED_MIN_TRADES)

    percentage = insider_balance / reserve * 100 if reserve > 0 else 0.0
    pattern_risk = (quick_flippers * 2 + large_holders * 3 + coordinated * 2) / 7

    return InsiderMetrics(
        percentage=_clamp(percentage),
        risk=int(_clamp(_round_half_up(pattern_risk), 0, 10)),
        count=len(early),
        quick_flips=quick_flippers,
        large_holders=large_holders,
        coordinated_buys=coordinated,
        flips_by_wallet={w: flips.get(w, 0) for w in early},
    )


def count_snipers(
    trades: Sequence[Trade], dev_wallet: str | None, created_at_ms: int
) -> int:
    """Distinct non-dev wallets whose first buy landed within 15s of creation."""
    first_buy: dict[str, int] = {}
    for trade in chronological(trades):
        if trade.side != TradeSide.BUY or not trade.trader_wallet:
            continue
        if trade.trader_wallet == dev_wallet:
            continue
        first_buy.setdefault(trade.trader_wallet, trade.timestamp_ms)

    return sum(
        1
        for bought_at in first_buy.values()
        if bought_at - created_at_ms <= SNIPER_WINDOW_MS
    )


def calculate_token_risk(
    trades: Sequence[Trade],
    dev_wallet: str | None,
    created_at_ms: int,
    token_reserve: float,
    current_ms: int | None = None,
    insider: InsiderMetrics | None = None,
) -> RiskMetrics:
    """Combine the sub-scores. Pass ``insider`` to reuse an existing analysis."""
    if not trades:
        return NO_TRADES_RISK

    holders_risk = calculate_holders_risk(trades)
    volume_risk = calculate_volume_risk(trades, current_ms)
    dev_wallet_risk = calculate_dev_wallet_risk(trades, dev_wallet)
    if insider is None:
        insider = calculate_insider_metrics(trades, dev_wallet, created_at_ms, token_reserve)
    insider_risk = float(insider.risk)

    return RiskMetrics(
        holders_risk=holders_risk,
        volume_risk=volume_risk,
        dev_wallet_risk=dev_wallet_risk,
        insider_risk=insider_risk,
        total_risk=(holders_risk + volume_risk + dev_wallet_risk + insider_risk * 10) / 4,
    )
