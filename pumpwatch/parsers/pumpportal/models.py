from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class EventKind(Enum):
    CREATE = "create"
    TRADE = "trade"
    HEARTBEAT = "heartbeat"
    UNKNOWN = "unknown"


_KIND_BY_TYPE: dict[str, EventKind] = {
    "create": EventKind.CREATE,
    "newToken": EventKind.CREATE,
    "trade": EventKind.TRADE,
    "buy": EventKind.TRADE,
    "sell": EventKind.TRADE,
    "heartbeat": EventKind.HEARTBEAT,
}


class PumpPortalNewToken(BaseModel):
    """Token creation event (subscribeNewToken)."""

    signature: str | None = None
    mint: str = Field(min_length=1)
    name: str | None = None
    symbol: str | None = None
    uri: str | None = None
    traderPublicKey: str | None = None
    txType: str | None = None
    initialBuy: Decimal | None = None
    marketCapSol: Decimal | None = None
    bondingCurveKey: str | None = None
    vTokensInBondingCurve: Decimal | None = None
    vSolInBondingCurve: Decimal | None = None
    timestamp: int | None = None  # epoch ms; stamped on receipt when absent

    # Present when a relay forwards already-enriched tokens
    imageUrl: str | None = None
    website: str | None = None
    twitter: str | None = None
    telegram: str | None = None

    model_config = {"extra": "ignore"}


class PumpPortalTrade(BaseModel):
    """Trade event (subscribeTokenTrade). Reserves are post-trade totals."""

    signature: str | None = None
    mint: str = Field(min_length=1)
    txType: Literal["buy", "sell"]
    traderPublicKey: str
    counterpartyPublicKey: str | None = None
    tokenAmount: Decimal | None = None
    solAmount: Decimal | None = None
    newTokenBalance: Decimal | None = None
    marketCapSol: Decimal | None = None
    bondingCurveKey: str | None = None
    vTokensInBondingCurve: Decimal | None = None
    vSolInBondingCurve: Decimal | None = None
    timestamp: int | None = None

    model_config = {"extra": "ignore"}


class PumpPortalHeartbeat(BaseModel):
    model_config = {"extra": "allow"}


def event_kind(data: dict) -> EventKind:
    """Classify an envelope by ``type``, falling back to PumpPortal's ``txType``."""
    raw = data.get("type") or data.get("txType")
    if not isinstance(raw, str):
        return EventKind.UNKNOWN
    return _KIND_BY_TYPE.get(raw, EventKind.UNKNOWN)


def parse_event(
    data: dict,
) -> tuple[EventKind, PumpPortalNewToken | PumpPortalTrade | PumpPortalHeartbeat | None]:
    """Validate an envelope into its typed model.

    Raises pydantic ValidationError for malformed payloads (missing mint,
    trader or side). UNKNOWN kinds return ``None`` as the payload.
    A relay may wrap the payload as ``{"type": ..., "data": {...}}``.
    """
    kind = event_kind(data)
    payload = data.get("data") if isinstance(data.get("data"), dict) else data

    if kind is EventKind.CREATE:
        return kind, PumpPortalNewToken.model_validate(payload)
    if kind is EventKind.TRADE:
        if payload.get("txType") not in ("buy", "sell"):
            payload = {**payload, "txType": data.get("type")}
        return kind, PumpPortalTrade.model_validate(payload)
    if kind is EventKind.HEARTBEAT:
        return kind, PumpPortalHeartbeat.model_validate(payload)
    return kind, None
