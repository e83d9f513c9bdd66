# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Fake Glassnode / FRED providers with configurable series and errors
- Price series and coin factories
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("APP_NAME", "Test App")

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator

import numpy as np
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.models import Base, Basket, Coin
from app.services.analysis import AnalysisService
from app.services.cache import InMemoryTtlCache
from app.services.circuit_breaker import CircuitBreaker
from app.services.exceptions import SeriesNotFoundError
from app.services.market_data.base import PricePoint, SeriesPoint
from app.services.market_data.fetcher import SeriesFetcher
from app.services.market_data.glassnode import to_glassnode_symbol

# Fixed reference day so series and windows are reproducible
AS_OF = date(2024, 6, 30)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# SERIES FACTORIES
# =============================================================================

def make_price_series(
        n: int,
        end: date = AS_OF,
        start_price: float = 100.0,
        drift: float = 0.0005,
        volatility: float = 0.03,
        seed: int = 7,
        volume: float | None = None,
) -> list[PricePoint]:
    """
    n consecutive daily prices ending at `end`.

    Prices follow a seeded geometric random walk, so two calls with the
    same arguments return the same series.
    """
    rng = np.random.default_rng(seed)
    shocks = drift + volatility * rng.standard_normal(n - 1)
    levels = start_price * np.exp(np.concatenate(([0.0], np.cumsum(shocks))))
    start = end - timedelta(days=n - 1)
    return [
        PricePoint(date=start + timedelta(days=i), price=float(level), volume=volume)
        for i, level in enumerate(levels)
    ]


def to_series_points(prices: list[PricePoint]) -> list[SeriesPoint]:
    return [SeriesPoint(date=p.date, value=p.price) for p in prices]


def make_flat_series(n: int, value: float, end: date = AS_OF) -> list[SeriesPoint]:
    start = end - timedelta(days=n - 1)
    return [SeriesPoint(date=start + timedelta(days=i), value=value) for i in range(n)]


# =============================================================================
# FAKE PROVIDERS
# =============================================================================

class FakeGlassnodeProvider:
    """
    In-memory stand-in for GlassnodeProvider.

    Prices are keyed by Glassnode symbol, metrics by (symbol, metric path).
    Errors registered with fail_with() are raised for the matching symbol
    or metric path.
    """

    def __init__(self):
        self._prices: dict[str, list[PricePoint]] = {}
        self._metrics: dict[tuple[str, str], list[SeriesPoint]] = {}
        self._errors: dict[str, Exception] = {}
        self.price_calls: list[tuple[str, date, date]] = []
        self.metric_calls: list[tuple[str, str]] = []
        self.circuit_breaker = CircuitBreaker(name="glassnode")

    @property
    def name(self) -> str:
        return "glassnode"

    @property
    def is_configured(self) -> bool:
        return True

    def add_prices(self, asset: str, points: list[PricePoint]) -> None:
        self._prices[to_glassnode_symbol(asset)] = list(points)

    def add_metric(self, metric: str, points: list[SeriesPoint], asset: str = "BTC") -> None:
        self._metrics[(to_glassnode_symbol(asset), metric)] = list(points)

    def fail_with(self, key: str, error: Exception) -> None:
        """Raise `error` for a symbol (prices) or metric path."""
        self._errors[key] = error

    def get_price_history(self, asset, start, end, include_volume=False):
        symbol = to_glassnode_symbol(asset)
        self.price_calls.append((symbol, start, end))
        if symbol in self._errors:
            raise self._errors[symbol]
        return [p for p in self._prices.get(symbol, []) if start <= p.date <= end]

    def get_metric(self, asset, metric, start, end):
        symbol = to_glassnode_symbol(asset)
        self.metric_calls.append((symbol, metric))
        if metric in self._errors:
            raise self._errors[metric]
        return [p for p in self._metrics.get((symbol, metric), []) if start <= p.date <= end]

    def close(self) -> None:
        pass


class FakeFredProvider:
    """In-memory stand-in for FredProvider."""

    def __init__(self, risk_free_rate: float = 0.04, fed_rate_change: float = 0.0):
        self._series: dict[str, list[SeriesPoint]] = {}
        self.risk_free_rate = risk_free_rate
        self.fed_rate_change = fed_rate_change
        self.circuit_breaker = CircuitBreaker(name="fred")

    @property
    def name(self) -> str:
        return "fred"

    @property
    def is_configured(self) -> bool:
        return True

    def add_series(self, series_id: str, points: list[SeriesPoint]) -> None:
        self._series[series_id] = list(points)

    def get_series(self, series_id, start, end):
        if series_id not in self._series:
            raise SeriesNotFoundError(series_id, self.name)
        return [p for p in self._series[series_id] if start <= p.date <= end]

    def get_risk_free_rate(self, as_of=None):
        return self.risk_free_rate

    def get_fed_rate_change(self, lookback_days=90, as_of=None):
        return self.fed_rate_change

    def close(self) -> None:
        pass


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def glassnode() -> FakeGlassnodeProvider:
    return FakeGlassnodeProvider()


@pytest.fixture
def fred() -> FakeFredProvider:
    return FakeFredProvider()


@pytest.fixture
def fetcher(glassnode, fred) -> SeriesFetcher:
    return SeriesFetcher(glassnode=glassnode, fred=fred)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a small simulation count to keep tests fast."""
    return Settings(environment="test", monte_carlo_simulations=2000)


@pytest.fixture
def service(fetcher, test_settings) -> AnalysisService:
    """AnalysisService over fake providers with a private in-memory cache."""
    return AnalysisService(
        fetcher=fetcher,
        cache=InMemoryTtlCache(),
        config=test_settings,
        rng_seed=42,
    )


# =============================================================================
# COIN FACTORY
# =============================================================================

def create_coin(
        db: Session,
        coin_id: str = "bitcoin",
        symbol: str = "BTC",
        name: str = "Bitcoin",
        basket: Basket = Basket.BITCOIN,
        **kwargs,
) -> Coin:
    """Insert a coin row; static statistics are passed as decimals or floats."""
    values = {k: Decimal(str(v)) if isinstance(v, float) else v for k, v in kwargs.items()}
    coin = Coin(id=coin_id, symbol=symbol, name=name, basket=basket, **values)
    db.add(coin)
    db.commit()
    db.refresh(coin)
    return coin
