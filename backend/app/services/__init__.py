# backend/app/services/__init__.py
"""
Service layer for business logic.

This package contains the service layer which encapsulates business logic
separate from the API (router) layer. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)
- Are easily testable via dependency injection

Usage:
    from app.services import AnalysisService
    from app.services import SeriesFetcher, GlassnodeProvider, FredProvider
    from app.services import (
        InsufficientDataError,
        MarketDataError,
        CoinNotFoundError,
    )

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Calculation thresholds and limits
    ├── circuit_breaker.py           # Circuit breaker for external APIs
    ├── cache.py                     # TTL cache (in-memory / database)
    ├── analysis/                    # Analysis engine
    │   ├── service.py               # Main analysis orchestrator
    │   ├── types.py                 # Analysis data types
    │   ├── primitives.py            # Returns, moments, alignment
    │   ├── cagr.py                  # Basic and volatility-adjusted CAGR
    │   ├── beta.py                  # Basic and comprehensive beta
    │   ├── valuation.py             # Discount rate, NPV, IRR
    │   ├── monte_carlo.py           # Terminal value simulation
    │   ├── market.py                # Bitcoin market state, AVIV zones
    │   └── recommendation.py        # Rule-based recommendation
    └── market_data/                 # Market data package
        ├── base.py                  # Abstract provider interface
        ├── glassnode.py             # Glassnode implementation
        ├── fred.py                  # FRED implementation
        ├── repository.py            # Stored history
        └── fetcher.py               # Live-first fetch with stored fallback
"""

# Analysis Service
from app.services.analysis import AnalysisService
# Cache
from app.services.cache import DatabaseTtlCache, InMemoryTtlCache, TtlCache, get_fresh
# Circuit breaker
from app.services.circuit_breaker import CircuitBreaker, CircuitState
# Exceptions
from app.services.exceptions import (
    # Base exceptions
    ServiceError,
    ValidationError,
    # Not found
    NotFoundError,
    CoinNotFoundError,
    # Analysis
    AnalysisError,
    InsufficientDataError,
    DeadAssetError,
    # Market data exceptions
    MarketDataError,
    ProviderUnavailableError,
    RateLimitError,
    SeriesNotFoundError,
    ProviderNotConfiguredError,
    CircuitBreakerOpen,
)
# Market Data
from app.services.market_data import (
    FredProvider,
    GlassnodeProvider,
    SeriesFetcher,
    StoredSeriesRepository,
)

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "AnalysisService",

    # Market Data
    "SeriesFetcher",
    "GlassnodeProvider",
    "FredProvider",
    "StoredSeriesRepository",

    # Infrastructure
    "CircuitBreaker",
    "CircuitState",
    "TtlCache",
    "InMemoryTtlCache",
    "DatabaseTtlCache",
    "get_fresh",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    # Base
    "ServiceError",
    "ValidationError",
    # Not found
    "NotFoundError",
    "CoinNotFoundError",
    # Analysis
    "AnalysisError",
    "InsufficientDataError",
    "DeadAssetError",
    # Market data
    "MarketDataError",
    "ProviderUnavailableError",
    "RateLimitError",
    "SeriesNotFoundError",
    "ProviderNotConfiguredError",
    "CircuitBreakerOpen",
]
