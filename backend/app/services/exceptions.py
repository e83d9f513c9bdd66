# backend/app/services/exceptions.py
"""
Centralized exception hierarchy for the Crypto Investment Analyzer.

All service-layer exceptions derive from ServiceError. Analysis and provider
failures additionally carry a wire `code` that becomes the `error` field of
the JSON error envelope returned by the API.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError                       VALIDATION_ERROR
    ├── NotFoundError                         NOT_FOUND
    │   └── CoinNotFoundError
    ├── AnalysisError                         (code per subclass)
    │   ├── InsufficientDataError             INSUFFICIENT_DATA
    │   └── DeadAssetError                    DEAD_ASSET
    └── MarketDataError                       API_ERROR
        ├── ProviderUnavailableError          (retryable)
        ├── RateLimitError                    (retryable)
        ├── SeriesNotFoundError
        └── ProviderNotConfiguredError

CircuitBreakerOpen is re-exported here so callers can import every failure
type from one place.

Usage:
    from app.services.exceptions import InsufficientDataError

    raise InsufficientDataError(
        "Minimum 90 days required", asset="BTC",
        start_date=start, end_date=end,
    )
"""

from datetime import date

from app.services.constants import (
    API_ERROR_CODE,
    CALCULATION_FAILED_CODE,
    DEAD_ASSET_CODE,
    INSUFFICIENT_DATA_CODE,
    NOT_FOUND_CODE,
    VALIDATION_ERROR_CODE,
)


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for all service-layer errors.

    Attributes:
        message: Human-readable error description
        code: Wire error code for the API envelope
    """

    code: str = CALCULATION_FAILED_CODE

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when calculation inputs are out of range.

    Input shape is validated by Pydantic at the HTTP boundary; this covers
    programmatic callers (non-positive investment, zero-year horizon, ...).

    Attributes:
        field: The offending input (optional)
    """

    code = VALIDATION_ERROR_CODE

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Coin")
        resource_id: Identifier of the resource
    """

    code = NOT_FOUND_CODE

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class CoinNotFoundError(NotFoundError):
    """Raised when a coin id is not present in the coins table."""

    def __init__(self, coin_id: str) -> None:
        self.coin_id = coin_id
        super().__init__(
            f"Coin '{coin_id}' not found",
            resource_type="Coin",
            resource_id=coin_id,
        )


# =============================================================================
# ANALYSIS ERRORS
# =============================================================================


class AnalysisError(ServiceError):
    """
    Base exception for calculation failures tied to a specific series.

    Attributes:
        asset: Asset being analysed (symbol or coin id)
        start_date: Start of the requested period, if known
        end_date: End of the requested period, if known
    """

    def __init__(
            self,
            message: str,
            asset: str | None = None,
            start_date: date | None = None,
            end_date: date | None = None,
    ) -> None:
        self.asset = asset
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(message)

    def to_details(self) -> dict:
        """Envelope `details` payload; dates as ISO strings."""
        return {
            "asset": self.asset or "",
            "start_date": self.start_date.isoformat() if self.start_date else "",
            "end_date": self.end_date.isoformat() if self.end_date else "",
        }


class InsufficientDataError(AnalysisError):
    """
    Raised when history is too short or too sparse for a metric.

    Examples:
    - Fewer than 90 days between first and last observation
    - More than 3 consecutive missing days
    - Completeness below 95%
    - Neither live nor stored series available

    This is NOT retryable; callers fall back or surface the error.
    """

    code = INSUFFICIENT_DATA_CODE


class DeadAssetError(AnalysisError):
    """
    Raised when the final price is below 1% of the all-time high and the
    caller asked for strict handling instead of the -100% short-circuit.

    Attributes:
        end_price: Last observed price
        all_time_high: Maximum price in the series
    """

    code = DEAD_ASSET_CODE

    def __init__(
            self,
            asset: str | None,
            end_price: float,
            all_time_high: float,
            start_date: date | None = None,
            end_date: date | None = None,
    ) -> None:
        self.end_price = end_price
        self.all_time_high = all_time_high
        super().__init__(
            f"Asset '{asset}' is dead: final price {end_price:.6g} is below 1% "
            f"of all-time high {all_time_high:.6g}",
            asset=asset,
            start_date=start_date,
            end_date=end_date,
        )


# =============================================================================
# MARKET DATA PROVIDER ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for upstream data provider failures.

    Attributes:
        provider: Name of the provider that failed ("glassnode", "fred")
    """

    code = API_ERROR_CODE

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when a provider is temporarily unavailable.

    Examples:
    - Network timeout
    - Server errors (500, 502, 503)

    This is a retryable error.
    """

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class RateLimitError(MarketDataError):
    """
    Raised when the provider's rate limit has been exceeded (HTTP 429).

    This is a retryable error (with backoff).

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class SeriesNotFoundError(MarketDataError):
    """
    Raised when the provider does not know the requested series.

    Examples:
    - Metric path not available for the asset on Glassnode
    - Unknown FRED series id

    This is NOT a retryable error.
    """

    def __init__(self, series: str, provider: str, asset: str | None = None) -> None:
        target = f"'{series}' for '{asset}'" if asset else f"'{series}'"
        super().__init__(f"Series {target} not found by {provider}", provider=provider)
        self.series = series
        self.asset = asset


class ProviderNotConfiguredError(MarketDataError):
    """
    Raised when a provider is called without credentials.

    Also used for rejected credentials (HTTP 401/403), which retrying
    cannot fix.
    """

    def __init__(self, provider: str, reason: str = "API key not configured") -> None:
        super().__init__(f"Provider '{provider}': {reason}", provider=provider)
        self.reason = reason


# =============================================================================
# CIRCUIT BREAKER (re-exported for convenience)
# =============================================================================

from app.services.circuit_breaker import CircuitBreakerOpen  # noqa: E402

__all__ = [
    # Base
    "ServiceError",
    # Validation
    "ValidationError",
    # Not Found
    "NotFoundError",
    "CoinNotFoundError",
    # Analysis
    "AnalysisError",
    "InsufficientDataError",
    "DeadAssetError",
    # Market Data
    "MarketDataError",
    "ProviderUnavailableError",
    "RateLimitError",
    "SeriesNotFoundError",
    "ProviderNotConfiguredError",
    # Circuit Breaker
    "CircuitBreakerOpen",
]
