"""Tests for token risk scoring."""

import pytest

from pumpwatch.parsers.token_risk import (
    calculate_dev_wallet_risk,
    calculate_holders_risk,
    calculate_insider_metrics,
    calculate_token_risk,
    calculate_volume_risk,
    count_snipers,
)
from pumpwatch.parsers.token_types import NO_TRADES_RISK, TradeSide

CREATED_AT = 1_700_000_040_000
NOW = CREATED_AT + 10 * 60_000

HOUR = 3_600_000
RESERVE = 1_000_000_000.0


class TestHoldersRisk:
    def test_empty(self) -> None:
        assert calculate_holders_risk([]) == 100

    def test_single_trader_per_trade(self, make_trade) -> None:
        trades = [make_trade(wallet=f"w{i}") for i in range(5)]
        assert calculate_holders_risk(trades) == 0

    def test_two_wallets_alternating(self, make_trade) -> None:
        trades = [make_trade(wallet="a"), make_trade(wallet="b")] * 2
        # 0.7 * 50 + 0.3 * 50
        assert calculate_holders_risk(trades) == pytest.approx(50)


class TestVolumeRisk:
    def test_empty(self) -> None:
        assert calculate_volume_risk([], NOW) == 100

    def test_nothing_in_last_day(self, make_trade) -> None:
        trades = [make_trade(ts=NOW - 25 * HOUR)]
        assert calculate_volume_risk(trades, NOW) == 75

    def test_zero_volume(self, make_trade) -> None:
        trades = [make_trade(ts=NOW - 1000, sol=0), make_trade(ts=NOW - 2000, sol=0)]
        assert calculate_volume_risk(trades, NOW) == 100

    def test_regular_trading_is_low_risk(self, make_trade) -> None:
        trades = [make_trade(ts=NOW - i * 10_000, sol=1.0) for i in range(6)]
        assert calculate_volume_risk(trades, NOW) == pytest.approx(0)

    def test_irregular_sizes(self, make_trade) -> None:
        trades = [make_trade(ts=NOW - 1000, sol=3.0), make_trade(ts=NOW - 2000, sol=1.0)]
        # mean 2, std 1 -> variance ratio 0.5 -> 25; one gap -> no timing variance
        assert calculate_volume_risk(trades, NOW) == pytest.approx(25)

    def test_capped_at_100(self, make_trade) -> None:
        trades = [make_trade(ts=NOW - 1000, sol=1000.0)] + [
            make_trade(ts=NOW - 1000 - i, sol=0.001) for i in range(1, 30)
        ]
        assert calculate_volume_risk(trades, NOW) == 100


class TestDevWalletRisk:
    def test_unknown_dev(self, make_trade) -> None:
        assert calculate_dev_wallet_risk([make_trade()], None) == 50

    def test_no_trades(self) -> None:
        assert calculate_dev_wallet_risk([], "dev") == 50

    def test_dev_not_trading(self, make_trade) -> None:
        assert calculate_dev_wallet_risk([make_trade(wallet="other")], "dev") == 25

    def test_dev_quarter_share(self, make_trade) -> None:
        trades = [make_trade(wallet="dev")] + [make_trade(wallet=f"w{i}") for i in range(3)]
        # 25% count, 25% volume -> 25 weighted -> x2
        assert calculate_dev_wallet_risk(trades, "dev") == pytest.approx(50)

    def test_counterparty_match(self, make_trade) -> None:
        trades = [make_trade(wallet="x", counterparty="dev"), make_trade(wallet="y")]
        assert calculate_dev_wallet_risk(trades, "dev") == 100

    def test_dev_only_capped(self, make_trade) -> None:
        assert calculate_dev_wallet_risk([make_trade(wallet="dev")], "dev") == 100


class TestInsiderMetrics:
    def test_empty(self) -> None:
        metrics = calculate_insider_metrics([], "dev", CREATED_AT, RESERVE)
        assert metrics.count == 0
        assert metrics.risk == 0
        assert metrics.percentage == 0

    def test_coordinated_window(self, make_trade) -> None:
        trades = [make_trade(wallet="w", ts=CREATED_AT + i * 1000) for i in range(1, 5)]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.coordinated_buys >= 1

    def test_trades_after_first_hour_not_coordinated(self, make_trade) -> None:
        start = CREATED_AT + 2 * HOUR
        trades = [make_trade(wallet=f"w{i}", ts=start + i * 1000) for i in range(5)]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.coordinated_buys == 0

    def test_buy_sell_buy_is_one_flip(self, make_trade) -> None:
        trades = [
            make_trade(wallet="w", side=TradeSide.BUY, ts=CREATED_AT + 60_000),
            make_trade(wallet="w", side=TradeSide.SELL, ts=CREATED_AT + 120_000),
            make_trade(wallet="w", side=TradeSide.BUY, ts=CREATED_AT + 240_000),
        ]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.flips_by_wallet["w"] == 1
        assert metrics.quick_flips == 0  # one flip is not a flipper pattern

    def test_same_millisecond_sell_then_rebuy_is_a_flip(self, make_trade) -> None:
        ts = CREATED_AT + 120_000
        # Newest first, as the store keeps them
        trades = [
            make_trade(wallet="w", side=TradeSide.BUY, ts=ts),
            make_trade(wallet="w", side=TradeSide.SELL, ts=ts),
            make_trade(wallet="w", side=TradeSide.BUY, ts=CREATED_AT + 60_000),
        ]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.flips_by_wallet["w"] == 1

    def test_slow_rebuy_is_not_a_flip(self, make_trade) -> None:
        trades = [
            make_trade(wallet="w", side=TradeSide.BUY, ts=CREATED_AT + 60_000),
            make_trade(wallet="w", side=TradeSide.SELL, ts=CREATED_AT + 120_000),
            make_trade(wallet="w", side=TradeSide.BUY, ts=CREATED_AT + 120_000 + 6 * 60_000),
        ]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.flips_by_wallet["w"] == 0

    def test_repeat_flipper_counted(self, make_trade) -> None:
        sides = [TradeSide.BUY, TradeSide.SELL] * 3 + [TradeSide.BUY]
        trades = [
            make_trade(wallet="w", side=side, ts=CREATED_AT + (i + 1) * 10_000)
            for i, side in enumerate(sides)
        ]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.flips_by_wallet["w"] == 3
        assert metrics.quick_flips == 1

    def test_large_holders_and_percentage(self, make_trade) -> None:
        trades = [
            make_trade(wallet="a", tokens=100_000_000, ts=CREATED_AT + 1000),
            make_trade(wallet="b", tokens=100_000_000, ts=CREATED_AT + 2 * 60_000),
        ]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.large_holders == 2
        assert metrics.percentage == pytest.approx(20)
        # (2 * 3) / 7 rounds to 1
        assert metrics.risk == 1

    def test_late_wallets_and_dev_excluded(self, make_trade) -> None:
        trades = [
            make_trade(wallet="dev", ts=CREATED_AT + 1000),
            make_trade(wallet="early", ts=CREATED_AT + 5 * HOUR),
            make_trade(wallet="late", ts=CREATED_AT + 7 * HOUR),
        ]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, RESERVE)
        assert metrics.count == 1
        assert set(metrics.flips_by_wallet) == {"early"}

    def test_zero_reserve(self, make_trade) -> None:
        trades = [make_trade(wallet="a", tokens=1e9, ts=CREATED_AT + 1000)]
        metrics = calculate_insider_metrics(trades, "dev", CREATED_AT, 0)
        assert metrics.percentage == 0
        assert metrics.large_holders == 0


class TestSnipers:
    def test_counts_first_buys_within_15s(self, make_trade) -> None:
        trades = [
            make_trade(wallet="fast", ts=CREATED_AT + 10_000),
            make_trade(wallet="fast", ts=CREATED_AT + 12_000),
            make_trade(wallet="edge", ts=CREATED_AT + 15_000),
            make_trade(wallet="slow", ts=CREATED_AT + 20_000),
            make_trade(wallet="dev", ts=CREATED_AT + 1_000),
            make_trade(wallet="seller", side=TradeSide.SELL, ts=CREATED_AT + 2_000),
        ]
        assert count_snipers(trades, "dev", CREATED_AT) == 2

    def test_empty(self) -> None:
        assert count_snipers([], "dev", CREATED_AT) == 0


class TestTokenRisk:
    def test_no_trades_fallback(self) -> None:
        risk = calculate_token_risk([], "dev", CREATED_AT, RESERVE, NOW)
        assert risk == NO_TRADES_RISK
        assert risk.holders_risk == 100
        assert risk.volume_risk == 100
        assert risk.dev_wallet_risk == 50
        assert risk.insider_risk == 0
        assert risk.total_risk == pytest.approx(83.33, abs=0.01)

    def test_single_trade_unknown_dev(self, make_trade) -> None:
        trades = [make_trade(wallet="a", ts=NOW - 1000)]
        risk = calculate_token_risk(trades, None, CREATED_AT, RESERVE, NOW)
        assert risk.holders_risk == 0
        assert risk.volume_risk == 0
        assert risk.dev_wallet_risk == 50
        assert risk.total_risk == pytest.approx(12.5)

    def test_insider_scaled_by_ten(self, make_trade) -> None:
        trades = [
            make_trade(wallet="a", tokens=100_000_000, ts=CREATED_AT + 1000),
            make_trade(wallet="b", tokens=100_000_000, ts=CREATED_AT + 2 * 60_000),
        ]
        risk = calculate_token_risk(trades, None, CREATED_AT, RESERVE, NOW)
        assert risk.insider_risk == 1
        expected = (risk.holders_risk + risk.volume_risk + risk.dev_wallet_risk + 10) / 4
        assert risk.total_risk == pytest.approx(expected)
