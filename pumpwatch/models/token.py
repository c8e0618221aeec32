from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from pumpwatch.models.base import Base


class TokenRecord(Base):
    """Latest known state of a tracked token (one row per address)."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    address: Mapped[str] = mapped_column(String(64), unique=True)
    symbol: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(255))
    dev_wallet: Mapped[str | None] = mapped_column(String(64))
    bonding_curve_key: Mapped[str | None] = mapped_column(String(64))
    created_at_ms: Mapped[int] = mapped_column(BigInteger)

    # Bonding curve snapshot
    v_sol_in_bonding_curve: Mapped[float] = mapped_column(Float, default=0.0)
    v_tokens_in_bonding_curve: Mapped[float] = mapped_column(Float, default=0.0)

    # Derived metrics at last update
    price_usd: Mapped[float] = mapped_column(Float, default=0.0)
    market_cap_sol: Mapped[float] = mapped_column(Float, default=0.0)
    market_cap_usd: Mapped[float] = mapped_column(Float, default=0.0)
    volume_24h_usd: Mapped[float] = mapped_column(Float, default=0.0)
    total_risk: Mapped[float] = mapped_column(Float, default=0.0)
    holder_count: Mapped[int] = mapped_column(default=0)
    is_new: Mapped[bool] = mapped_column(Boolean, default=True)

    # Off-chain metadata
    image_url: Mapped[str | None] = mapped_column(String(500))
    website: Mapped[str | None] = mapped_column(String(500))
    twitter: Mapped[str | None] = mapped_column(String(500))
    telegram: Mapped[str | None] = mapped_column(String(500))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class TokenTradeRecord(Base):
    """Individual trade events; the signature makes inserts idempotent."""

    __tablename__ = "token_trades"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_address: Mapped[str] = mapped_column(String(64))
    tx_signature: Mapped[str] = mapped_column(String(128), unique=True)
    side: Mapped[str] = mapped_column(String(4))  # "buy" or "sell"
    wallet_address: Mapped[str] = mapped_column(String(64))
    amount_tokens: Mapped[float] = mapped_column(Float, default=0.0)
    amount_sol: Mapped[float] = mapped_column(Float, default=0.0)
    price_usd: Mapped[float] = mapped_column(Float, default=0.0)
    timestamp_ms: Mapped[int] = mapped_column(BigInteger)
    is_dev_trade: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("idx_trades_token_time", "token_address", "timestamp_ms"),
        Index("idx_trades_wallet", "wallet_address"),
    )
