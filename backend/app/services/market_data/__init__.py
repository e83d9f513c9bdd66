# backend/app/services/market_data/__init__.py
"""
Market data services package.

This package contains:
- Abstract interface and point types for series providers (base.py)
- Glassnode on-chain/price provider (glassnode.py)
- FRED macro series provider (fred.py)
- Stored history repository (repository.py)
- Live-first fetch policy with stored fallback (fetcher.py)

Architecture:
    SeriesProvider (ABC)
    ├── GlassnodeProvider
    └── FredProvider

    SeriesFetcher
    └── live provider -> StoredSeriesRepository fallback
"""

from app.services.market_data.base import (
    PricePoint,
    SeriesPoint,
    SeriesProvider,
    normalize_prices,
    normalize_series,
)
from app.services.market_data.fetcher import (
    FetchedPrices,
    FetchedSeries,
    SeriesFetcher,
)
from app.services.market_data.fred import FredProvider
from app.services.market_data.glassnode import GlassnodeProvider, to_glassnode_symbol
from app.services.market_data.repository import StoredSeriesRepository

__all__ = [
    # Interface and data classes
    "SeriesProvider",
    "PricePoint",
    "SeriesPoint",
    "normalize_prices",
    "normalize_series",
    # Concrete providers
    "GlassnodeProvider",
    "FredProvider",
    "to_glassnode_symbol",
    # Storage and fetch policy
    "StoredSeriesRepository",
    "SeriesFetcher",
    "FetchedPrices",
    "FetchedSeries",
]
