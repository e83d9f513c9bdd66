# backend/app/dependencies.py
"""
Dependency injection module for FastAPI services.

This module provides singleton service instances that are shared across
all requests. Sharing the providers means one circuit breaker per upstream
API and one Glassnode request pacer for the whole process.

Services are lazily initialized on first use to avoid import-time side effects.

Usage in routers:
    from app.dependencies import get_analysis_service

    @router.post("/cagr")
    def calculate_cagr(
        service: AnalysisService = Depends(get_analysis_service),
    ):
        ...
"""

import logging
from functools import lru_cache

from app.config import settings
from app.services.analysis import AnalysisService
from app.services.cache import InMemoryTtlCache
from app.services.market_data import FredProvider, GlassnodeProvider, SeriesFetcher

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_glassnode_provider / get_fred_provider (no deps)
# 2. get_series_fetcher (depends on both providers)
# 3. get_cache (no deps; None selects the database-backed cache per request)
# 4. get_analysis_service (depends on fetcher and cache)


@lru_cache(maxsize=1)
def get_glassnode_provider() -> GlassnodeProvider:
    """
    Get the singleton Glassnode provider.

    Shares the circuit breaker and the request pacer across all requests.
    """
    logger.debug("Initializing singleton GlassnodeProvider")
    return GlassnodeProvider(
        api_key=settings.glassnode_api_key,
        base_url=settings.glassnode_base_url,
        request_delay=settings.glassnode_request_delay_seconds,
        timeout=settings.external_api_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_fred_provider() -> FredProvider:
    """Get the singleton FRED provider."""
    logger.debug("Initializing singleton FredProvider")
    return FredProvider(
        api_key=settings.fred_api_key,
        base_url=settings.fred_base_url,
        default_risk_free_rate=settings.default_risk_free_rate,
        timeout=settings.external_api_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_series_fetcher() -> SeriesFetcher:
    logger.debug("Initializing singleton SeriesFetcher")
    return SeriesFetcher(glassnode=get_glassnode_provider(), fred=get_fred_provider())


@lru_cache(maxsize=1)
def get_cache() -> InMemoryTtlCache | None:
    """
    Get the process-wide cache, or None for the cache_entries table.

    The database cache needs the request's session, so the service builds
    it per call when this returns None.
    """
    if settings.cache_backend == "memory":
        logger.debug("Initializing singleton InMemoryTtlCache")
        return InMemoryTtlCache()
    return None


@lru_cache(maxsize=1)
def get_analysis_service() -> AnalysisService:
    """
    Get the singleton AnalysisService instance.

    The service holds no per-request state; the session is passed per call.
    """
    logger.debug("Initializing singleton AnalysisService")
    return AnalysisService(fetcher=get_series_fetcher(), cache=get_cache())


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """
    Clear all service caches.

    Useful for testing or when you need to reset state.
    """
    get_glassnode_provider.cache_clear()
    get_fred_provider.cache_clear()
    get_series_fetcher.cache_clear()
    get_cache.cache_clear()
    get_analysis_service.cache_clear()
    logger.info("Cleared all service singleton caches")
