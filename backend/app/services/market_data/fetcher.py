# backend/app/services/market_data/fetcher.py
"""
Live-first series fetching with stored fallback.

Fetch policy:
    1. Ask the live provider (Glassnode for prices and on-chain metrics,
       FRED for macro series)
    2. On any MarketDataError or CircuitBreakerOpen, or an empty answer,
       read the stored history instead
    3. If neither yields data, raise InsufficientDataError

Every result is tagged with where it came from ("glassnode", "fred",
"database") so confidence scoring and the API response can report it.
Successful live price pulls are written back to price_history.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from app.services.circuit_breaker import CircuitBreakerOpen
from app.services.exceptions import InsufficientDataError, MarketDataError
from app.services.market_data.base import PricePoint, SeriesPoint
from app.services.market_data.fred import FredProvider
from app.services.market_data.glassnode import GlassnodeProvider
from app.services.market_data.repository import StoredSeriesRepository

logger = logging.getLogger(__name__)

SOURCE_DATABASE = "database"


@dataclass
class FetchedPrices:
    """Price series together with its provenance."""
    points: list[PricePoint]
    data_source: str
    warnings: list[str] = field(default_factory=list)

    @property
    def has_volume(self) -> bool:
        return any(p.volume is not None for p in self.points)


@dataclass
class FetchedSeries:
    """Scalar series together with its provenance."""
    points: list[SeriesPoint]
    data_source: str


class SeriesFetcher:
    """
    Combines the live providers with the stored repository.

    Stateless apart from the provider objects; the database session is passed
    per call so one fetcher can serve concurrent requests.
    """

    def __init__(self, glassnode: GlassnodeProvider, fred: FredProvider) -> None:
        self._glassnode = glassnode
        self._fred = fred

    @property
    def glassnode(self) -> GlassnodeProvider:
        return self._glassnode

    @property
    def fred(self) -> FredProvider:
        return self._fred

    def fetch_prices(
            self,
            db: Session,
            coin_id: str,
            start: date,
            end: date,
            include_volume: bool = False,
            symbol: str | None = None,
    ) -> FetchedPrices:
        """
        Daily prices for a coin, live first.

        Args:
            db: Session for fallback reads and write-back
            coin_id: Storage key in price_history ("bitcoin")
            start: First day (inclusive)
            end: Last day (inclusive)
            include_volume: Request transfer volume from the live provider
            symbol: Live provider asset code; defaults to coin_id

        Raises:
            InsufficientDataError: Neither live nor stored data available
        """
        repository = StoredSeriesRepository(db)
        warnings: list[str] = []

        try:
            points = self._glassnode.get_price_history(
                symbol or coin_id, start, end, include_volume=include_volume
            )
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"Live prices unavailable for {coin_id}, using stored history: {e}")
            warnings.append(f"Live data unavailable ({e}); using stored history")
            points = []
        else:
            if points:
                try:
                    repository.save_price_history(coin_id, points, self._glassnode.name)
                except Exception as e:
                    logger.error(f"Write-back of {coin_id} prices failed: {e}")
                return FetchedPrices(points=points, data_source=self._glassnode.name)
            warnings.append("Live provider returned no prices; using stored history")

        stored = repository.get_price_history(coin_id, start, end)
        if not stored:
            raise InsufficientDataError(
                f"No price data available for '{coin_id}' from live or stored sources",
                asset=coin_id,
                start_date=start,
                end_date=end,
            )

        logger.info(f"Using {len(stored)} stored prices for {coin_id}")
        return FetchedPrices(points=stored, data_source=SOURCE_DATABASE, warnings=warnings)

    def fetch_metric(self, asset: str, metric: str, start: date, end: date) -> FetchedSeries:
        """
        On-chain metric from the live provider.

        There is no stored per-day history of on-chain metrics; callers fall
        back to the latest stored snapshot themselves.

        Raises:
            InsufficientDataError: Provider failed or returned nothing
        """
        try:
            points = self._glassnode.get_metric(asset, metric, start, end)
        except (MarketDataError, CircuitBreakerOpen) as e:
            raise InsufficientDataError(
                f"Metric '{metric}' unavailable for '{asset}': {e}",
                asset=asset, start_date=start, end_date=end,
            ) from e

        if not points:
            raise InsufficientDataError(
                f"Metric '{metric}' returned no data for '{asset}'",
                asset=asset, start_date=start, end_date=end,
            )
        return FetchedSeries(points=points, data_source=self._glassnode.name)

    def fetch_macro(self, series_id: str, start: date, end: date) -> FetchedSeries:
        """
        FRED macro series.

        Raises:
            InsufficientDataError: Provider failed or returned nothing
        """
        try:
            points = self._fred.get_series(series_id, start, end)
        except (MarketDataError, CircuitBreakerOpen) as e:
            raise InsufficientDataError(
                f"Series '{series_id}' unavailable: {e}",
                asset=series_id, start_date=start, end_date=end,
            ) from e

        if not points:
            raise InsufficientDataError(
                f"Series '{series_id}' returned no data",
                asset=series_id, start_date=start, end_date=end,
            )
        return FetchedSeries(points=points, data_source=self._fred.name)

    def get_risk_free_rate(self, as_of: date | None = None) -> float:
        return self._fred.get_risk_free_rate(as_of)

    def get_fed_rate_change(self, as_of: date | None = None) -> float:
        return self._fred.get_fed_rate_change(as_of=as_of)
