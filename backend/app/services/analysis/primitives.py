# backend/app/services/analysis/primitives.py
"""
Return and volatility primitives.

Pure functions shared by the CAGR, beta, valuation and Monte Carlo modules.
All of them accept plain floats and never raise on short input: statistics
of fewer observations than their degrees of freedom require come back as 0.0.

No external dependencies (numpy, pandas) - uses only `statistics` stdlib.

Formulas:
    Log return     r_i = ln(p_i / p_{i-1}), clipped to [-cap, cap]
    Simple return  r_i = (p_i - p_{i-1}) / p_{i-1}, clipped to [-cap, cap]
    Annualized volatility = stdev(window) * sqrt(365.25)
"""

import math
import statistics
from datetime import date
from typing import Iterable, Sequence, TypeVar

from app.services.constants import DAYS_PER_YEAR, RETURN_CAP, VOLATILITY_WINDOW_DAYS

T = TypeVar("T")


# =============================================================================
# RETURNS
# =============================================================================

def simple_returns(prices: Sequence[float], cap: float = RETURN_CAP) -> list[float]:
    """Period-over-period simple returns clipped to [-cap, cap]; zero prices are skipped."""
    return [
        clamp((prices[i] - prices[i - 1]) / prices[i - 1], -cap, cap)
        for i in range(1, len(prices))
        if prices[i - 1] != 0
    ]


def log_returns(prices: Sequence[float], cap: float = RETURN_CAP) -> list[float]:
    """
    Log returns clipped to [-cap, cap].

    Non-positive prices are skipped pairwise (no log of zero).
    """
    returns: list[float] = []
    for i in range(1, len(prices)):
        previous, current = prices[i - 1], prices[i]
        if previous <= 0 or current <= 0:
            continue
        returns.append(clamp(math.log(current / previous), -cap, cap))
    return returns


# =============================================================================
# DESCRIPTIVE STATISTICS
# =============================================================================

def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return statistics.fmean(values)


def median(values: Sequence[float]) -> float:
    """Median; for even lengths the average of the two middle values."""
    if not values:
        return 0.0
    return float(statistics.median(values))


def variance(values: Sequence[float], ddof: int = 1) -> float:
    """
    Variance with explicit degrees of freedom.

    ddof=1 gives the sample estimate, ddof=0 the population variance.
    Returns 0.0 when len(values) <= ddof or len(values) < 2.
    """
    n = len(values)
    if n < 2 or n <= ddof:
        return 0.0
    m = statistics.fmean(values)
    return sum((v - m) ** 2 for v in values) / (n - ddof)


def standard_deviation(values: Sequence[float], ddof: int = 1) -> float:
    return math.sqrt(variance(values, ddof))


def covariance(xs: Sequence[float], ys: Sequence[float], ddof: int = 1) -> float:
    """
    Covariance of two pairwise-aligned series.

    Raises:
        ValueError: If the series have different lengths
    """
    if len(xs) != len(ys):
        raise ValueError(f"covariance requires equal lengths, got {len(xs)} and {len(ys)}")

    n = len(xs)
    if n < 2 or n <= ddof:
        return 0.0

    mx = statistics.fmean(xs)
    my = statistics.fmean(ys)
    return sum((x - mx) * (y - my) for x, y in zip(xs, ys)) / (n - ddof)


def rolling_annualized_volatility(
        returns: Sequence[float],
        window: int = VOLATILITY_WINDOW_DAYS,
        periods_per_year: float = DAYS_PER_YEAR,
) -> list[float]:
    """
    Annualized sample volatility over every full window of returns.

    Returns an empty list when fewer than `window` returns exist.
    """
    if window < 2 or len(returns) < window:
        return []

    annualizer = math.sqrt(periods_per_year)
    return [
        standard_deviation(returns[i - window:i]) * annualizer
        for i in range(window, len(returns) + 1)
    ]


# =============================================================================
# HELPERS
# =============================================================================

def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def align_series(
        a: Iterable[tuple[date, T]],
        b: Iterable[tuple[date, T]],
) -> tuple[list[date], list[T], list[T]]:
    """
    Intersect two date-keyed series.

    Args:
        a: (date, value) pairs
        b: (date, value) pairs

    Returns:
        (dates, a_values, b_values) for the dates present in both, ascending
    """
    a_map = dict(a)
    b_map = dict(b)
    dates = sorted(a_map.keys() & b_map.keys())
    return dates, [a_map[d] for d in dates], [b_map[d] for d in dates]
