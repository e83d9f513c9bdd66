# backend/app/services/market_data/fred.py
"""
FRED (Federal Reserve Economic Data) macro series provider.

Used for:
- DGS10: 10-year Treasury yield, the risk-free rate
- SP500: S&P 500 index level, the equity benchmark for BTC
- FEDFUNDS: effective federal funds rate, the policy-rate trend

FRED reports missing observations as the string "."; those are dropped.
"""

import logging
from datetime import date, timedelta
from typing import Any

import httpx

from app.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from app.services.constants import (
    FED_FUNDS_SERIES,
    FED_RATE_LOOKBACK_DAYS,
    TREASURY_10Y_SERIES,
)
from app.services.exceptions import MarketDataError, ProviderNotConfiguredError
from app.services.market_data.base import SeriesPoint, SeriesProvider, normalize_series

logger = logging.getLogger(__name__)

# DGS10 is published on business days only; look back far enough to span holidays
RISK_FREE_LOOKBACK_DAYS = 14


class FredProvider(SeriesProvider):
    """
    FRED implementation of SeriesProvider.

    Configuration:
        api_key: FRED API key; None makes get_series raise
                 ProviderNotConfiguredError
        default_risk_free_rate: Returned by get_risk_free_rate when DGS10
                                cannot be read
    """

    def __init__(
            self,
            api_key: str | None,
            base_url: str = "https://api.stlouisfed.org",
            default_risk_free_rate: float = 0.045,
            timeout: float = 30.0,
            client: httpx.Client | None = None,
            circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._default_risk_free_rate = default_risk_free_rate
        super().__init__(client=client, timeout=timeout, circuit_breaker=circuit_breaker)
        logger.info(f"FredProvider initialized (configured={api_key is not None})")

    @property
    def name(self) -> str:
        return "fred"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def get_series(self, series_id: str, start: date, end: date) -> list[SeriesPoint]:
        """
        Fetch observations of a FRED series, ascending by date.

        Raises:
            ProviderNotConfiguredError, SeriesNotFoundError, MarketDataError,
            CircuitBreakerOpen
        """
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.name)

        params = {
            "series_id": series_id,
            "api_key": self._api_key,
            "file_type": "json",
            "observation_start": start.isoformat(),
            "observation_end": end.isoformat(),
            "sort_order": "asc",
        }
        payload = self._request_json(
            f"{self._base_url}/fred/series/observations", params, series_id
        )
        points = self._parse_observations(payload, series_id)
        logger.debug(f"FRED {series_id}: {len(points)} observations ({start} to {end})")
        return points

    def get_risk_free_rate(self, as_of: date | None = None) -> float:
        """
        Latest 10-year Treasury yield as a decimal (4.25 -> 0.0425).

        Falls back to the configured default when the series is unavailable.
        """
        end = as_of or date.today()
        try:
            points = self.get_series(
                TREASURY_10Y_SERIES, end - timedelta(days=RISK_FREE_LOOKBACK_DAYS), end
            )
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(
                f"Risk-free rate unavailable ({e}); using default {self._default_risk_free_rate}"
            )
            return self._default_risk_free_rate

        if not points:
            logger.warning(
                f"No recent {TREASURY_10Y_SERIES} observations; "
                f"using default {self._default_risk_free_rate}"
            )
            return self._default_risk_free_rate

        return points[-1].value / 100

    def get_fed_rate_change(
            self,
            lookback_days: int = FED_RATE_LOOKBACK_DAYS,
            as_of: date | None = None,
    ) -> float:
        """
        Change of the federal funds rate over the window, in percentage points.

        Returns 0.0 when the series is unavailable or has fewer than two points.
        """
        end = as_of or date.today()
        try:
            points = self.get_series(FED_FUNDS_SERIES, end - timedelta(days=lookback_days), end)
        except (MarketDataError, CircuitBreakerOpen) as e:
            logger.warning(f"Fed funds rate unavailable ({e}); assuming no change")
            return 0.0

        if len(points) < 2:
            return 0.0
        return points[-1].value - points[0].value

    def _parse_observations(self, payload: Any, series_id: str) -> list[SeriesPoint]:
        if not isinstance(payload, dict) or not isinstance(payload.get("observations"), list):
            raise MarketDataError(
                f"Unexpected FRED payload for {series_id}", provider=self.name
            )

        points: list[SeriesPoint] = []
        for obs in payload["observations"]:
            raw = obs.get("value")
            if raw in (None, "", "."):
                continue
            try:
                points.append(SeriesPoint(date=date.fromisoformat(obs["date"]), value=float(raw)))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed FRED observation for {series_id}: {obs} ({e})")

        return normalize_series(points)
