# backend/app/services/market_data/glassnode.py
"""
Glassnode on-chain and market data provider.

Every Glassnode metric is served from the same endpoint shape:

    GET {base}/v1/metrics/{metric}?a=BTC&i=24h&s=<unix>&u=<unix>&api_key=KEY
    -> [{"t": 1609459200, "v": 29374.15}, ...]

Key features:
- Coin id to Glassnode asset symbol mapping ("bitcoin" -> "BTC")
- Daily price history with optional transfer volume merged in
- Generic metric access (AVIV, supply split, MVRV-Z, drawdown, volatility)
- Fixed spacing between consecutive requests
- Retry and circuit breaking inherited from SeriesProvider

Limitations:
- Observations with a null value are skipped, so series may have gaps
- Tier-restricted metrics answer 401/403, reported as a configuration problem
"""

import logging
import threading
import time
from datetime import date, datetime, time as dt_time, timezone
from typing import Any, Callable

import httpx

from app.services.circuit_breaker import CircuitBreaker
from app.services.exceptions import MarketDataError, ProviderNotConfiguredError
from app.services.market_data.base import (
    PricePoint,
    SeriesPoint,
    SeriesProvider,
    normalize_prices,
    normalize_series,
)

logger = logging.getLogger(__name__)

PRICE_METRIC = "market/price_usd_close"
VOLUME_METRIC = "transactions/transfers_volume_sum"
AVIV_METRIC = "indicators/aviv"
LIQUID_SUPPLY_METRIC = "supply/liquid_sum"
ILLIQUID_SUPPLY_METRIC = "supply/illiquid_sum"
MVRV_Z_METRIC = "market/mvrv_z_score"
DRAWDOWN_METRIC = "market/price_drawdown_relative"
REALIZED_VOLATILITY_METRIC = "market/realized_volatility_all"

COIN_SYMBOLS: dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "solana": "SOL",
    "cardano": "ADA",
    "litecoin": "LTC",
    "bitcoin-cash": "BCH",
    "chainlink": "LINK",
    "uniswap": "UNI",
    "aave": "AAVE",
    "compound": "COMP",
    "maker": "MKR",
}


def to_glassnode_symbol(asset: str) -> str:
    """
    Map a coin id or symbol to the Glassnode asset code.

    Examples:
        to_glassnode_symbol("bitcoin")  -> "BTC"
        to_glassnode_symbol("eth")      -> "ETH"
    """
    return COIN_SYMBOLS.get(asset.lower(), asset.upper())


def _to_unix(day: date) -> int:
    return int(datetime.combine(day, dt_time.min, tzinfo=timezone.utc).timestamp())


def _from_unix(seconds: int | float) -> date:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).date()


class GlassnodeProvider(SeriesProvider):
    """
    Glassnode implementation of SeriesProvider.

    Configuration:
        api_key: Glassnode API key; None makes every call raise
                 ProviderNotConfiguredError without touching the network
        base_url: API root (default: https://api.glassnode.com)
        request_delay: Minimum seconds between consecutive requests
        timeout: HTTP timeout in seconds
    """

    def __init__(
            self,
            api_key: str | None,
            base_url: str = "https://api.glassnode.com",
            request_delay: float = 0.2,
            timeout: float = 30.0,
            client: httpx.Client | None = None,
            circuit_breaker: CircuitBreaker | None = None,
            sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._request_delay = request_delay
        self._sleep = sleep
        self._last_request_at: float | None = None
        self._throttle_lock = threading.Lock()
        super().__init__(client=client, timeout=timeout, circuit_breaker=circuit_breaker)
        logger.info(
            f"GlassnodeProvider initialized (configured={api_key is not None}, "
            f"delay={request_delay}s)"
        )

    @property
    def name(self) -> str:
        return "glassnode"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get_price_history(
            self,
            asset: str,
            start: date,
            end: date,
            include_volume: bool = False,
    ) -> list[PricePoint]:
        """
        Fetch daily close prices, optionally with transfer volume.

        Args:
            asset: Coin id or symbol
            start: First day (inclusive)
            end: Last day (inclusive)
            include_volume: Merge transfers_volume_sum in as PricePoint.volume

        Returns:
            PricePoints sorted by date with unique dates; days with a null or
            non-positive close are dropped

        Raises:
            ProviderNotConfiguredError, SeriesNotFoundError, MarketDataError,
            CircuitBreakerOpen
        """
        prices = self.get_metric(asset, PRICE_METRIC, start, end)

        volumes: dict[date, float] = {}
        if include_volume:
            volumes = {p.date: p.value for p in self.get_metric(asset, VOLUME_METRIC, start, end)}

        points = [
            PricePoint(date=p.date, price=p.value, volume=volumes.get(p.date))
            for p in prices
            if p.value > 0
        ]

        logger.debug(
            f"Glassnode price history {to_glassnode_symbol(asset)}: "
            f"{len(points)} points ({start} to {end}, volume={include_volume})"
        )
        return normalize_prices(points)

    def get_metric(self, asset: str, metric: str, start: date, end: date) -> list[SeriesPoint]:
        """
        Fetch any daily Glassnode metric.

        Args:
            asset: Coin id or symbol
            metric: Metric path, e.g. "indicators/aviv"
            start: First day (inclusive)
            end: Last day (inclusive)

        Returns:
            SeriesPoints sorted by date; null values skipped
        """
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.name)

        symbol = to_glassnode_symbol(asset)
        params = {
            "a": symbol,
            "i": "24h",
            "s": _to_unix(start),
            "u": _to_unix(end),
            "api_key": self._api_key,
        }

        self._throttle()
        payload = self._request_json(f"{self._base_url}/v1/metrics/{metric}", params, metric, symbol)
        return self._parse_points(payload, metric)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _throttle(self) -> None:
        """Space consecutive requests by at least request_delay seconds."""
        with self._throttle_lock:
            now = time.monotonic()
            if self._last_request_at is not None:
                wait = self._request_delay - (now - self._last_request_at)
                if wait > 0:
                    self._sleep(wait)
            self._last_request_at = time.monotonic()

    def _parse_points(self, payload: Any, metric: str) -> list[SeriesPoint]:
        if not isinstance(payload, list):
            raise MarketDataError(
                f"Unexpected Glassnode payload for {metric}: {type(payload).__name__}",
                provider=self.name,
            )

        points: list[SeriesPoint] = []
        for row in payload:
            value = row.get("v") if isinstance(row, dict) else None
            if value is None or row.get("t") is None:
                continue
            try:
                points.append(SeriesPoint(date=_from_unix(row["t"]), value=float(value)))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed Glassnode row for {metric}: {row} ({e})")

        return normalize_series(points)
