# backend/app/services/market_data/base.py
"""
Abstract interface for time-series data providers.

Every upstream source (Glassnode for prices and on-chain metrics, FRED for
macro series) implements SeriesProvider. The base class supplies:
- Frozen point types shared by providers, repository and calculators
- Retry with exponential backoff for transient failures (tenacity)
- A per-provider circuit breaker wrapped around each HTTP call
- Mapping of HTTP status codes to the service exception hierarchy

Retryable Exceptions:
    - ProviderUnavailableError: Network issues, timeouts, server errors
    - RateLimitError: HTTP 429

Non-Retryable Exceptions:
    - SeriesNotFoundError: Unknown metric or series
    - ProviderNotConfiguredError: Missing or rejected API key
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, TypeVar

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from app.services.circuit_breaker import CircuitBreaker
from app.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_FAILURE_WINDOW,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
)
from app.services.exceptions import (
    MarketDataError,
    ProviderNotConfiguredError,
    ProviderUnavailableError,
    RateLimitError,
    SeriesNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PricePoint:
    """
    One daily observation of an asset's price.

    Attributes:
        date: Observation date (UTC day)
        price: Close price in USD, strictly positive
        volume: Transfer/trading volume in USD (optional)
        market_cap: Market capitalization in USD (optional)
    """
    date: date
    price: float
    volume: float | None = None
    market_cap: float | None = None

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")


@dataclass(frozen=True)
class SeriesPoint:
    """One observation of a scalar series (yield, index level, AVIV, supply)."""
    date: date
    value: float


def normalize_prices(points: list[PricePoint]) -> list[PricePoint]:
    """
    Sort by date and keep the last observation for duplicated dates.

    The result has strictly increasing dates.
    """
    by_date: dict[date, PricePoint] = {}
    for point in points:
        by_date[point.date] = point
    return [by_date[d] for d in sorted(by_date)]


def normalize_series(points: list[SeriesPoint]) -> list[SeriesPoint]:
    """Series counterpart of normalize_prices."""
    by_date: dict[date, SeriesPoint] = {}
    for point in points:
        by_date[point.date] = point
    return [by_date[d] for d in sorted(by_date)]


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class SeriesProvider(ABC):
    """
    Abstract base class for HTTP time-series providers.

    Subclasses implement `name` and their fetch methods, and route every
    outbound request through `_request_json`, which adds the circuit breaker,
    status mapping and retry policy.

    Retry configuration (class attributes, overridable):
        - MAX_RETRY_ATTEMPTS: Total attempts (default: 3)
        - RETRY_MIN_WAIT / RETRY_MAX_WAIT: Backoff bounds in seconds (1 / 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 10
    RETRY_MULTIPLIER: int = 1

    def __init__(
            self,
            client: httpx.Client | None = None,
            timeout: float = 30.0,
            circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout)
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name=self.name,
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            failure_window=CIRCUIT_BREAKER_FAILURE_WINDOW,
            excluded_exceptions=(SeriesNotFoundError,),
        )

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs, errors and health output."""
        pass

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def close(self) -> None:
        self._client.close()

    # =========================================================================
    # HTTP
    # =========================================================================

    def _request_json(self, url: str, params: dict[str, Any], series: str, asset: str | None = None) -> Any:
        """
        GET a JSON document with circuit breaking and retries.

        Args:
            url: Absolute endpoint URL
            params: Query parameters (API key included by the caller)
            series: Metric or series name, for error messages
            asset: Asset symbol, for error messages

        Raises:
            CircuitBreakerOpen: Breaker open, no request attempted
            SeriesNotFoundError, ProviderNotConfiguredError, RateLimitError,
            ProviderUnavailableError, MarketDataError
        """
        def _fetch() -> Any:
            with self._circuit_breaker:
                try:
                    response = self._client.get(url, params=params)
                except httpx.TimeoutException as e:
                    raise ProviderUnavailableError(self.name, f"timeout: {e}")
                except httpx.RequestError as e:
                    raise ProviderUnavailableError(self.name, f"network error: {e}")

                self._raise_for_status(response, series, asset)

                try:
                    return response.json()
                except ValueError as e:
                    raise MarketDataError(
                        f"Invalid JSON from {self.name} for {series}: {e}", provider=self.name
                    )

        return self._execute_with_retry(_fetch)

    def _raise_for_status(self, response: httpx.Response, series: str, asset: str | None) -> None:
        """Translate an HTTP error status into the service exception hierarchy."""
        status = response.status_code
        if status < 400:
            return

        if status in (401, 403):
            raise ProviderNotConfiguredError(self.name, f"credentials rejected (HTTP {status})")
        if status == 404:
            raise SeriesNotFoundError(series, self.name, asset)
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                self.name,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status >= 500:
            raise ProviderUnavailableError(self.name, f"HTTP {status}")

        raise MarketDataError(
            f"{self.name} returned HTTP {status} for {series}", provider=self.name
        )

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute a function with retry logic for transient failures.

        Retries ProviderUnavailableError and RateLimitError with exponential
        backoff; everything else propagates immediately.
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()
