# backend/app/models.py
import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import String, Date, DateTime, ForeignKey, Enum, Numeric, UniqueConstraint, JSON, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Basket(str, enum.Enum):
    """
    Allocation basket a coin belongs to.

    Drives the base risk factor and the maximum sensible share of a portfolio.
    """
    BITCOIN = "bitcoin"
    BLUE_CHIP = "blue_chip"
    SMALL_CAP = "small_cap"


class MetricsKind(str, enum.Enum):
    """Whether an analysis ran on live/stored series or on static coin attributes."""
    REAL = "real"
    FALLBACK = "fallback"


class Coin(Base):
    """
    Coin metadata and static fallback statistics.

    The id is the slug used throughout the API ("bitcoin", "ethereum").
    cagr_36m / beta / volatility are last-known values used by the fallback
    analysis path when no usable price history exists.
    """
    __tablename__ = "coins"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    symbol: Mapped[str] = mapped_column(String, index=True)  # e.g. "BTC"
    name: Mapped[str] = mapped_column(String)
    basket: Mapped[Basket] = mapped_column(Enum(Basket), default=Basket.SMALL_CAP)

    # Glassnode asset code when it differs from the symbol; NULL = use symbol
    glassnode_asset: Mapped[str | None] = mapped_column(String, nullable=True)

    price: Mapped[Decimal | None] = mapped_column(Numeric(24, 10), nullable=True)
    market_cap: Mapped[Decimal | None] = mapped_column(Numeric(30, 2), nullable=True)

    # Fallback statistics (decimals, 0.25 = 25%)
    cagr_36m: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
    beta: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
    volatility: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    price_history: Mapped[list["PriceHistory"]] = relationship(
        back_populates="coin",
        cascade="all, delete-orphan",
    )


class PriceHistory(Base):
    """
    Stored daily price/volume history, one row per coin per day.

    Written back after every successful live fetch and read as the fallback
    series when the provider is unavailable.
    """
    __tablename__ = "price_history"
    __table_args__ = (
        UniqueConstraint('coin_id', 'price_date', name='uq_coin_price_date'),
        Index('ix_price_history_coin_date', 'coin_id', 'price_date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    coin_id: Mapped[str] = mapped_column(ForeignKey("coins.id"), index=True)
    price_date: Mapped[date] = mapped_column(Date)
    price_usd: Mapped[Decimal] = mapped_column(Numeric(24, 10))
    volume_usd: Mapped[Decimal | None] = mapped_column(Numeric(30, 2), nullable=True)
    market_cap: Mapped[Decimal | None] = mapped_column(Numeric(30, 2), nullable=True)
    data_source: Mapped[str] = mapped_column(String, default="glassnode")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    coin: Mapped["Coin"] = relationship(back_populates="price_history")


class OnChainMetric(Base):
    """
    Snapshot of on-chain indicators for a coin (AVIV, supply split, MVRV-Z ...).

    Append-only; the latest row per coin is the current snapshot.
    """
    __tablename__ = "onchain_metrics"
    __table_args__ = (
        Index('ix_onchain_metrics_coin_recorded', 'coin_id', 'recorded_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    coin_id: Mapped[str] = mapped_column(ForeignKey("coins.id"), index=True)
    metrics: Mapped[dict] = mapped_column(JSON)
    data_source: Mapped[str] = mapped_column(String, default="glassnode")
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Analysis(Base):
    """
    One completed investment analysis.

    Rows are only ever inserted: an analysis is an audit record of what was
    recommended with which inputs and data.
    """
    __tablename__ = "analyses"
    __table_args__ = (
        Index('ix_analyses_coin_created', 'coin_id', 'created_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    coin_id: Mapped[str] = mapped_column(ForeignKey("coins.id"), index=True)
    inputs: Mapped[dict] = mapped_column(JSON)
    metrics: Mapped[dict] = mapped_column(JSON)
    market_conditions: Mapped[dict] = mapped_column(JSON)
    recommendation: Mapped[dict] = mapped_column(JSON)
    metrics_kind: Mapped[MetricsKind] = mapped_column(Enum(MetricsKind))
    data_source: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class CacheEntry(Base):
    """
    Generic key/value cache row backing DatabaseTtlCache.

    Freshness is decided by the reader from created_at and its own TTL.
    """
    __tablename__ = "cache_entries"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    cache_key: Mapped[str] = mapped_column(String, unique=True, index=True)
    data: Mapped[Any] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
