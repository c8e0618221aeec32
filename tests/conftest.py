"""Shared test fixtures."""

from collections.abc import Callable

import pytest

from pumpwatch.parsers.pumpportal.models import PumpPortalNewToken, PumpPortalTrade
from pumpwatch.parsers.token_store import TokenStore
from pumpwatch.parsers.token_types import BondingCurveReserves, Trade, TradeSide

CREATED_AT = 1_700_000_040_000  # aligned to a minute boundary
NOW = CREATED_AT + 10 * 60_000


@pytest.fixture
def make_trade() -> Callable[..., Trade]:
    counter = {"n": 0}

    def _make(
        wallet: str = "wallet_a",
        side: TradeSide = TradeSide.BUY,
        ts: int = CREATED_AT + 60_000,
        tokens: float = 1000.0,
        sol: float = 1.0,
        sol_reserve: float = 30.0,
        token_reserve: float = 1_000_000_000.0,
        price_usd: float = 0.0,
        counterparty: str | None = None,
        signature: str | None = None,
    ) -> Trade:
        counter["n"] += 1
        return Trade(
            signature=signature or f"sig{counter['n']}",
            timestamp_ms=ts,
            side=side,
            trader_wallet=wallet,
            token_amount=tokens,
            sol_amount=sol,
            reserves=BondingCurveReserves(sol_reserve, token_reserve),
            counterparty_wallet=counterparty,
            price_usd=price_usd,
        )

    return _make


@pytest.fixture
def make_new_token() -> Callable[..., PumpPortalNewToken]:
    def _make(mint: str = "MintAddr111111111111", **fields) -> PumpPortalNewToken:
        data = {
            "mint": mint,
            "name": "Test Coin",
            "symbol": "TEST",
            "traderPublicKey": "dev_wallet",
            "bondingCurveKey": "curve_key",
            "vSolInBondingCurve": 30,
            "vTokensInBondingCurve": 1_073_000_000,
            "timestamp": CREATED_AT,
        }
        data.update(fields)
        return PumpPortalNewToken.model_validate(data)

    return _make


@pytest.fixture
def make_trade_event() -> Callable[..., PumpPortalTrade]:
    def _make(mint: str = "MintAddr111111111111", **fields) -> PumpPortalTrade:
        data = {
            "mint": mint,
            "txType": "buy",
            "traderPublicKey": "buyer_wallet",
            "tokenAmount": 1_000_000,
            "solAmount": 0.5,
            "bondingCurveKey": "curve_key",
            "vSolInBondingCurve": 40,
            "vTokensInBondingCurve": 1_000_000_000,
            "marketCapSol": 40,
            "signature": "trade_sig_1",
            "timestamp": CREATED_AT + 5_000,
        }
        data.update(fields)
        return PumpPortalTrade.model_validate(data)

    return _make


@pytest.fixture
def store() -> TokenStore:
    return TokenStore(sol_price=150.0, clock=lambda: NOW)
