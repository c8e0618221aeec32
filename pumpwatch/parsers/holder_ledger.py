"""Per-wallet token balances replayed from a token's bounded trade window.

Not persisted: balances are recomputed from ``recent_trades`` whenever the
store refreshes a token, so wallets whose buys fell out of the window are
under-counted. Good enough for a streaming approximation.
"""

from collections.abc import Iterable, Sequence

from pumpwatch.parsers.token_metrics import finite
from pumpwatch.parsers.token_types import Trade, TradeSide


def chronological(trades: Iterable[Trade]) -> list[Trade]:
    """Oldest first from a newest-first window.

    Equal timestamps keep arrival order, so a same-millisecond buy then sell
    replays as buy then sell.
    """
    return sorted(reversed(list(trades)), key=lambda t: t.timestamp_ms)


def replay_balances(trades: Sequence[Trade]) -> dict[str, float]:
    """Replay trades oldest-first into wallet → balance.

    Wallets whose balance drops to zero or below leave the ledger.
    """
    balances: dict[str, float] = {}
    for trade in chronological(trades):
        wallet = trade.trader_wallet
        if not wallet:
            continue
        amount = finite(trade.token_amount)
        current = balances.get(wallet, 0.0)
        if trade.side == TradeSide.BUY:
            balances[wallet] = current + amount
        else:
            remaining = current - amount
            if remaining > 0:
                balances[wallet] = remaining
            else:
                balances.pop(wallet, None)
    return balances


def holder_percentages(
    balances: dict[str, float], token_reserve: float
) -> dict[str, float]:
    """Each holder's balance as a percentage of the curve's token reserve."""
    reserve = finite(token_reserve)
    if reserve <= 0:
        return {wallet: 0.0 for wallet in balances}
    return {wallet: balance / reserve * 100 for wallet, balance in balances.items()}


def top_holders_pct(
    balances: dict[str, float], token_reserve: float, top_n: int = 10
) -> float:
    pcts = sorted(holder_percentages(balances, token_reserve).values(), reverse=True)
    return min(100.0, sum(pcts[:top_n]))


def wallet_holding_pct(
    balances: dict[str, float], wallet: str | None, token_reserve: float
) -> float:
    if not wallet or wallet not in balances:
        return 0.0
    reserve = finite(token_reserve)
    if reserve <= 0:
        return 0.0
    return min(100.0, balances[wallet] / reserve * 100)
