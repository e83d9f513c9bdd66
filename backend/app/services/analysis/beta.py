# backend/app/services/analysis/beta.py
"""
Beta estimation.

Two estimators:
- calculate_beta: sample covariance / sample benchmark variance over
  pre-aligned return series, clamped to [0.1, 5.0]
- calculate_comprehensive_beta: aligns raw price series, picks an adaptive
  lookback from recent volatility, applies a liquidity multiplier and scores
  data quality; falls back to a sector table when history is short

Formulas:
    beta = cov(r_asset, r_bench) / var(r_bench)

    lookback: vol_30d > 5% -> 90d, vol_30d < 1.5% -> 360d, else 180d
    liquidity multiplier: median volume < $10M -> 1.2, > $1B -> 0.9
"""

import logging
import math
from datetime import date
from typing import Sequence

from app.services.analysis.primitives import (
    align_series,
    clamp,
    covariance,
    log_returns,
    mean,
    median,
    standard_deviation,
    variance,
)
from app.services.analysis.types import (
    Benchmark,
    BetaResult,
    ComprehensiveBetaResult,
    Confidence,
)
from app.services.constants import (
    BETA_IMPLAUSIBLE_ABS,
    BETA_LOW_CONFIDENCE_POINTS,
    BETA_MAX,
    BETA_MEDIUM_CONFIDENCE_POINTS,
    BETA_MIN,
    BETA_MIN_ABS_COVARIANCE,
    DEEP_LIQUIDITY_BETA_MULTIPLIER,
    DEEP_LIQUIDITY_VOLUME_USD,
    DEFAULT_BETA,
    DEFAULT_SECTOR_BETA,
    EQUITY_BLEND_WEIGHT,
    HIGH_CONFIDENCE_MAX_VOL,
    HIGH_CONFIDENCE_POINTS,
    HIGH_CONFIDENCE_VARIANCE,
    HIGH_VOLATILITY_THRESHOLD,
    ILLIQUID_BETA_MULTIPLIER,
    LIQUID_VOLUME_USD,
    LIQUIDITY_LOOKBACK_DAYS,
    LIQUIDITY_WARNING_VOLUME_USD,
    LOOKBACK_DEFAULT,
    LOOKBACK_HIGH_VOLATILITY,
    LOOKBACK_LOW_VOLATILITY,
    LOW_VOLATILITY_THRESHOLD,
    MAX_SHORT_VOLATILITY,
    MEDIUM_CONFIDENCE_MAX_VOL,
    MIN_ALIGNED_POINTS,
    MIN_BENCHMARK_VARIANCE,
    MIN_BETA_RETURNS,
    MIN_VOLUME_COMPLETENESS,
    RECENCY_TOLERANCE_DAYS,
    RETURN_CAP,
    SECTOR_BETAS,
    SHORT_VOLATILITY_WINDOW,
)
from app.services.exceptions import InsufficientDataError

logger = logging.getLogger(__name__)

DatedValues = Sequence[tuple[date, float]]


# =============================================================================
# BASIC BETA
# =============================================================================

def beta_confidence(data_points: int, beta: float, cov: float) -> Confidence:
    """
    Classify a basic beta estimate.

    low    - fewer than 30 points, |beta| > 10 or |cov| < 1e-8
    medium - fewer than 900 points
    high   - otherwise
    """
    if (
            data_points < BETA_LOW_CONFIDENCE_POINTS
            or abs(beta) > BETA_IMPLAUSIBLE_ABS
            or abs(cov) < BETA_MIN_ABS_COVARIANCE
    ):
        return Confidence.LOW
    if data_points < BETA_MEDIUM_CONFIDENCE_POINTS:
        return Confidence.MEDIUM
    return Confidence.HIGH


def _default_beta(data_points: int, reason: str) -> BetaResult:
    logger.debug(f"Using default beta {DEFAULT_BETA}: {reason}")
    return BetaResult(
        beta=DEFAULT_BETA,
        confidence=Confidence.LOW,
        data_points=data_points,
        covariance=0.0,
        benchmark_variance=0.0,
        is_default=True,
        warnings=[reason],
    )


def calculate_beta(
        asset_returns: Sequence[float],
        benchmark_returns: Sequence[float] | None,
) -> BetaResult:
    """
    Basic beta over pairwise-aligned return series.

    Returns the default beta 1.0 when the benchmark is missing, fewer than
    10 pairs exist, or the benchmark variance is zero or undefined.

    Raises:
        ValueError: If both series are present but differ in length
    """
    if not benchmark_returns:
        return _default_beta(len(asset_returns), "Benchmark returns unavailable")

    if len(asset_returns) != len(benchmark_returns):
        raise ValueError(
            f"Return series must be aligned: {len(asset_returns)} vs {len(benchmark_returns)}"
        )

    n = len(asset_returns)
    if n < MIN_BETA_RETURNS:
        return _default_beta(n, f"Only {n} paired returns (minimum {MIN_BETA_RETURNS})")

    bench_var = variance(benchmark_returns)
    if not math.isfinite(bench_var) or bench_var <= 0:
        return _default_beta(n, "Benchmark variance is zero")

    cov = covariance(asset_returns, benchmark_returns)
    raw = cov / bench_var

    return BetaResult(
        beta=clamp(raw, BETA_MIN, BETA_MAX),
        confidence=beta_confidence(n, raw, cov),
        data_points=n,
        covariance=cov,
        benchmark_variance=bench_var,
    )


# =============================================================================
# BENCHMARK CONSTRUCTION
# =============================================================================

def blend_benchmark(
        equity: DatedValues,
        treasury: DatedValues,
        equity_weight: float = EQUITY_BLEND_WEIGHT,
) -> list[tuple[date, float]]:
    """Weighted blend of two level series on their common dates."""
    dates, eq, tr = align_series(equity, treasury)
    return [
        (d, equity_weight * e + (1 - equity_weight) * t)
        for d, e, t in zip(dates, eq, tr)
    ]


# =============================================================================
# COMPREHENSIVE BETA
# =============================================================================

def sector_beta_estimate(
        asset: str,
        benchmark: Benchmark,
        aligned_points: int = 0,
        data_source: str = "",
) -> ComprehensiveBetaResult:
    """Provisional beta from the sector table, used when history is short."""
    raw = SECTOR_BETAS.get(asset.lower(), DEFAULT_SECTOR_BETA)
    return ComprehensiveBetaResult(
        asset=asset,
        benchmark=benchmark,
        beta=clamp(raw, BETA_MIN, BETA_MAX),
        raw_beta=raw,
        liquidity_adjustment=1.0,
        confidence=Confidence.LOW,
        methodology="Sector-based estimate",
        aligned_points=aligned_points,
        lookback_days=0,
        volatility_30d=0.0,
        benchmark_variance=0.0,
        data_quality=0.0,
        provisional_estimate=True,
        data_source=data_source,
        warnings=[
            f"Only {aligned_points} aligned data points (minimum {MIN_ALIGNED_POINTS}); "
            f"using sector-based estimate"
        ],
    )


def select_lookback(volatility_30d: float) -> int:
    if volatility_30d > HIGH_VOLATILITY_THRESHOLD:
        return LOOKBACK_HIGH_VOLATILITY
    if volatility_30d < LOW_VOLATILITY_THRESHOLD:
        return LOOKBACK_LOW_VOLATILITY
    return LOOKBACK_DEFAULT


def liquidity_multiplier(median_volume: float | None) -> float:
    if median_volume is None:
        return 1.0
    if median_volume < LIQUID_VOLUME_USD:
        return ILLIQUID_BETA_MULTIPLIER
    if median_volume > DEEP_LIQUIDITY_VOLUME_USD:
        return DEEP_LIQUIDITY_BETA_MULTIPLIER
    return 1.0


def _comprehensive_confidence(points: int, bench_var: float, volatility: float) -> Confidence:
    if (
            points >= HIGH_CONFIDENCE_POINTS
            and bench_var > HIGH_CONFIDENCE_VARIANCE
            and volatility < HIGH_CONFIDENCE_MAX_VOL
    ):
        return Confidence.HIGH
    if (
            points >= MIN_ALIGNED_POINTS
            and bench_var > MIN_BENCHMARK_VARIANCE
            and volatility < MEDIUM_CONFIDENCE_MAX_VOL
    ):
        return Confidence.MEDIUM
    return Confidence.LOW


def _return_quality(prices: Sequence[float]) -> float:
    """Share of raw log returns that are finite and within the cap."""
    raw = log_returns(prices, cap=math.inf)
    if not raw:
        return 0.0
    good = sum(1 for r in raw if math.isfinite(r) and abs(r) <= RETURN_CAP)
    return good / len(raw)


def calculate_comprehensive_beta(
        asset_prices: DatedValues,
        benchmark_prices: DatedValues,
        asset: str,
        benchmark: Benchmark,
        volumes: Sequence[float | None] | None = None,
        series_end: date | None = None,
        data_source: str = "",
) -> ComprehensiveBetaResult:
    """
    Beta with adaptive lookback, liquidity adjustment and quality scoring.

    Args:
        asset_prices: (date, price) pairs for the asset
        benchmark_prices: (date, level) pairs for the benchmark
        asset: Asset symbol, used for the sector table fallback
        benchmark: Which benchmark the levels belong to
        volumes: Asset volumes in date order (None entries allowed)
        series_end: Requested end of the period, for the recency check
        data_source: Provenance tag copied to the result

    Raises:
        InsufficientDataError: 30-day volatility above 200% or benchmark
                               variance below 1e-6 over the window
    """
    dates, asset_values, bench_values = align_series(
        [(d, v) for d, v in asset_prices if v > 0],
        [(d, v) for d, v in benchmark_prices if v > 0],
    )
    n = len(dates)

    if n < MIN_ALIGNED_POINTS:
        logger.info(f"Beta {asset} vs {benchmark.value}: {n} aligned points, using sector estimate")
        return sector_beta_estimate(asset, benchmark, n, data_source)

    asset_returns = log_returns(asset_values)
    bench_returns = log_returns(bench_values)

    volatility = standard_deviation(asset_returns[-SHORT_VOLATILITY_WINDOW:])
    if volatility > MAX_SHORT_VOLATILITY:
        raise InsufficientDataError(
            f"30-day volatility {volatility:.2f} exceeds {MAX_SHORT_VOLATILITY} - data quality too poor",
            asset=asset, start_date=dates[0], end_date=dates[-1],
        )

    window = min(select_lookback(volatility), len(asset_returns))
    window_asset = asset_returns[-window:]
    window_bench = bench_returns[-window:]

    bench_var = variance(window_bench)
    if bench_var < MIN_BENCHMARK_VARIANCE:
        raise InsufficientDataError(
            f"Benchmark variance {bench_var:.2e} below {MIN_BENCHMARK_VARIANCE:.0e}",
            asset=asset, start_date=dates[0], end_date=dates[-1],
        )

    raw_beta = covariance(window_asset, window_bench) / bench_var

    recent_volumes = list(volumes or [])[-LIQUIDITY_LOOKBACK_DAYS:]
    positive_volumes = [v for v in recent_volumes if v is not None and v > 0]
    median_volume = median(positive_volumes) if positive_volumes else None
    volume_completeness = len(positive_volumes) / LIQUIDITY_LOOKBACK_DAYS

    adjustment = liquidity_multiplier(median_volume)
    beta = clamp(raw_beta * adjustment, BETA_MIN, BETA_MAX)

    end = series_end or dates[-1]
    recency = 1.0 if (end - dates[-1]).days <= RECENCY_TOLERANCE_DAYS else 0.5
    data_quality = mean([
        min(1.0, n / 365),
        _return_quality(asset_values),
        volume_completeness,
        recency,
    ])

    liquidity_warning = median_volume is not None and median_volume < LIQUIDITY_WARNING_VOLUME_USD
    volume_warning = volume_completeness < MIN_VOLUME_COMPLETENESS

    warnings: list[str] = []
    if liquidity_warning:
        warnings.append(f"Low liquidity: median volume ${median_volume:,.0f}")
    if volume_warning:
        warnings.append(f"Volume data {volume_completeness:.0%} complete over the last 30 days")

    logger.debug(
        f"Beta {asset} vs {benchmark.value}: raw={raw_beta:.3f}, adj={adjustment}, "
        f"window={window}, vol30={volatility:.4f}"
    )

    return ComprehensiveBetaResult(
        asset=asset,
        benchmark=benchmark,
        beta=beta,
        raw_beta=raw_beta,
        liquidity_adjustment=adjustment,
        confidence=_comprehensive_confidence(n, bench_var, volatility),
        methodology=f"Log-return covariance over {window} days",
        aligned_points=n,
        lookback_days=window,
        volatility_30d=volatility,
        benchmark_variance=bench_var,
        data_quality=round(data_quality, 4),
        liquidity_warning=liquidity_warning,
        volume_completeness_warning=volume_warning,
        data_source=data_source,
        warnings=warnings,
    )
