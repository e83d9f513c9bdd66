# backend/app/services/analysis/cagr.py
"""
CAGR engine.

Computes basic and volatility-adjusted compound annual growth from a daily
price series, together with liquidity, confidence and data-quality scores.

Formulas:
    years       = days_held / 365.25
    basic CAGR  = (end / start)^(1 / years) - 1
    factor      = clamp(1 / (1 + median(rolling_90d_vol)), 0.1, 2.0)
    adjusted    = basic x factor

Data sufficiency (checked when validate=True):
    - span of at least 90 days
    - at most 3 consecutive missing days
    - at least 95% of the days in the span present

Dead assets (final price < 1% of all-time high) short-circuit to -100%
without volatility adjustment and with low confidence.
"""

import logging
from datetime import date
from typing import Sequence

from app.services.analysis.primitives import (
    clamp,
    log_returns,
    median,
    rolling_annualized_volatility,
)
from app.services.analysis.types import (
    CagrCalculationSteps,
    CagrResult,
    Confidence,
    LiquidityAssessment,
    LiquidityStatus,
)
from app.services.constants import (
    CALENDAR_DAYS_PER_YEAR,
    CONFIDENCE_COMPLETENESS_BONUS_THRESHOLD,
    CONFIDENCE_HIGH_SCORE,
    CONFIDENCE_MEDIUM_SCORE,
    CONFIDENCE_POINTS_BY_COUNT,
    CONFIDENCE_POINTS_BY_DAYS,
    CONFIDENCE_POINTS_BY_SOURCE,
    DAYS_PER_YEAR,
    DEAD_ASSET_ATH_RATIO,
    DEAD_ASSET_CAGR_PCT,
    DEAD_ASSET_CODE,
    KNOWN_LIQUID_SYMBOLS,
    LIQUID_VOLUME_USD,
    LIQUIDITY_LOOKBACK_DAYS,
    LIQUIDITY_PREMIUMS,
    MAX_CONSECUTIVE_MISSING_DAYS,
    MIN_CAGR_DAYS,
    MIN_DATA_COMPLETENESS,
    MODERATE_VOLUME_USD,
    SHORT_PERIOD_WARNING,
    VOLATILITY_FACTOR_MAX,
    VOLATILITY_FACTOR_MIN,
    VOLATILITY_WINDOW_DAYS,
)
from app.services.exceptions import DeadAssetError, InsufficientDataError
from app.services.market_data.base import PricePoint, normalize_prices

logger = logging.getLogger(__name__)


# =============================================================================
# BASIC FORMULAS
# =============================================================================

def calculate_basic_cagr(start_price: float, end_price: float, years: float) -> float:
    """
    (end / start)^(1 / years) - 1, as a decimal.

    Example:
        calculate_basic_cagr(10000, 40000, 3)  -> 0.5874...
    """
    if start_price <= 0 or end_price <= 0:
        raise ValueError("prices must be positive")
    if years <= 0:
        raise ValueError("years must be positive")
    return (end_price / start_price) ** (1 / years) - 1


def is_dead_asset(prices: Sequence[float]) -> bool:
    """True when the final price is below 1% of the series maximum."""
    if not prices:
        return False
    return prices[-1] < DEAD_ASSET_ATH_RATIO * max(prices)


def calculate_volatility_adjustment(prices: Sequence[float]) -> tuple[float, float] | None:
    """
    Median 90-day annualized volatility and the resulting adjustment factor.

    Returns:
        (median_volatility, factor), or None when fewer than 90 returns exist
    """
    returns = log_returns(prices)
    if len(returns) < VOLATILITY_WINDOW_DAYS:
        return None

    vols = rolling_annualized_volatility(returns, VOLATILITY_WINDOW_DAYS)
    median_vol = median(vols)
    factor = clamp(1 / (1 + median_vol), VOLATILITY_FACTOR_MIN, VOLATILITY_FACTOR_MAX)
    return median_vol, factor


# =============================================================================
# LIQUIDITY / CONFIDENCE / QUALITY
# =============================================================================

def classify_liquidity(
        volumes: Sequence[float | None],
        symbol: str | None = None,
) -> LiquidityAssessment:
    """
    Classify liquidity from the median of the last 30 volume observations.

    Thresholds:
        >= $10M  -> liquid   (2% premium)
        >= $1M   -> moderate (5% premium)
        else     -> illiquid (15% premium)

    Without any volume data, well-known large caps are assumed liquid and
    everything else moderate.
    """
    recent = [v for v in list(volumes)[-LIQUIDITY_LOOKBACK_DAYS:] if v is not None and v > 0]

    if not recent:
        status = (
            LiquidityStatus.LIQUID
            if symbol and symbol.lower() in KNOWN_LIQUID_SYMBOLS
            else LiquidityStatus.MODERATE
        )
        return LiquidityAssessment(status=status, premium=LIQUIDITY_PREMIUMS[status.value])

    median_volume = median(recent)
    if median_volume >= LIQUID_VOLUME_USD:
        status = LiquidityStatus.LIQUID
    elif median_volume >= MODERATE_VOLUME_USD:
        status = LiquidityStatus.MODERATE
    else:
        status = LiquidityStatus.ILLIQUID

    return LiquidityAssessment(
        status=status,
        premium=LIQUIDITY_PREMIUMS[status.value],
        median_volume=median_volume,
    )


def _points_for(value: float, table: tuple[tuple[int, int], ...]) -> int:
    for threshold, points in table:
        if value >= threshold:
            return points
    return 0


def score_confidence(
        data_points: int,
        days_held: int,
        data_source: str,
        completeness: float,
) -> Confidence:
    """
    Weighted score over count, span, source and completeness.

    Scoring:
        points:        >=1000 +3, >=500 +2, >=250 +1
        days held:     >=1095 +3, >=730 +2, >=365 +1
        source:        glassnode +2, database +1
        completeness:  >=99% +1

        >= 6 high, >= 3 medium, else low
    """
    score = (
        _points_for(data_points, CONFIDENCE_POINTS_BY_COUNT)
        + _points_for(days_held, CONFIDENCE_POINTS_BY_DAYS)
        + CONFIDENCE_POINTS_BY_SOURCE.get(data_source, 0)
        + (1 if completeness >= CONFIDENCE_COMPLETENESS_BONUS_THRESHOLD else 0)
    )

    if score >= CONFIDENCE_HIGH_SCORE:
        return Confidence.HIGH
    if score >= CONFIDENCE_MEDIUM_SCORE:
        return Confidence.MEDIUM
    return Confidence.LOW


def data_quality_score(data_points: int, years: float, warning_count: int) -> float:
    """0-100 score: coverage of the period, penalised for short spans and warnings."""
    if years <= 0:
        return 0.0

    score = 100 * min(data_points / (years * CALENDAR_DAYS_PER_YEAR), 1.0)
    if years < 1:
        score *= 0.7
    elif years < 2:
        score *= 0.85
    score *= 0.9 ** warning_count
    return round(score, 1)


# =============================================================================
# DATA SUFFICIENCY
# =============================================================================

def completeness_ratio(dates: Sequence[date]) -> float:
    """Distinct dates divided by the number of days in the span (inclusive)."""
    if not dates:
        return 0.0
    span = (dates[-1] - dates[0]).days
    return len(set(dates)) / (span + 1)


def max_consecutive_missing(dates: Sequence[date]) -> int:
    """Largest run of missing days between consecutive observations."""
    return max(((b - a).days - 1 for a, b in zip(dates, dates[1:])), default=0)


def validate_series(points: Sequence[PricePoint], asset: str) -> float:
    """
    Check span, gaps and completeness of a sorted price series.

    Returns:
        The completeness ratio

    Raises:
        InsufficientDataError: On the first failed check
    """
    dates = [p.date for p in points]
    start, end = dates[0], dates[-1]
    span = (end - start).days

    if span < MIN_CAGR_DAYS:
        raise InsufficientDataError(
            f"Minimum {MIN_CAGR_DAYS} days of history required, got {span}",
            asset=asset, start_date=start, end_date=end,
        )

    gap = max_consecutive_missing(dates)
    if gap > MAX_CONSECUTIVE_MISSING_DAYS:
        raise InsufficientDataError(
            f"{gap} consecutive days missing (maximum {MAX_CONSECUTIVE_MISSING_DAYS})",
            asset=asset, start_date=start, end_date=end,
        )

    completeness = completeness_ratio(dates)
    if completeness < MIN_DATA_COMPLETENESS:
        raise InsufficientDataError(
            f"Data completeness {completeness:.1%} below {MIN_DATA_COMPLETENESS:.0%}",
            asset=asset, start_date=start, end_date=end,
        )

    return completeness


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def calculate_cagr(
        prices: Sequence[PricePoint],
        asset: str,
        data_source: str = "glassnode",
        validate: bool = True,
        strict: bool = False,
        symbol: str | None = None,
) -> CagrResult:
    """
    Full CAGR calculation for a daily price series.

    Args:
        prices: PricePoints in any order; duplicate dates keep the last one
        asset: Asset label for errors and the result
        data_source: "glassnode" or "database", used in confidence scoring
        validate: Enforce the data sufficiency checks
        strict: Raise DeadAssetError instead of returning the -100% result
        symbol: Ticker for the no-volume liquidity fallback (default: asset)

    Raises:
        InsufficientDataError: Fewer than 2 points, zero span, or failed checks
        DeadAssetError: Dead asset with strict=True
    """
    points = normalize_prices(list(prices))
    if len(points) < 2:
        raise InsufficientDataError(
            f"At least 2 price points required, got {len(points)}",
            asset=asset,
            start_date=points[0].date if points else None,
            end_date=points[-1].date if points else None,
        )

    first, last = points[0], points[-1]
    values = [p.price for p in points]
    days_held = (last.date - first.date).days
    years = days_held / DAYS_PER_YEAR

    if is_dead_asset(values):
        all_time_high = max(values)
        if strict:
            raise DeadAssetError(asset, last.price, all_time_high, first.date, last.date)
        logger.warning(
            f"Dead asset {asset}: end price {last.price} < 1% of ATH {all_time_high}"
        )
        return CagrResult(
            asset=asset,
            start_date=first.date,
            end_date=last.date,
            basic_cagr=DEAD_ASSET_CAGR_PCT,
            adjusted_cagr=DEAD_ASSET_CAGR_PCT,
            start_price=first.price,
            end_price=last.price,
            days_held=days_held,
            years=years,
            volatility_90d=0.0,
            adjustment_factor=1.0,
            liquidity=LiquidityAssessment(
                status=LiquidityStatus.ILLIQUID,
                premium=LIQUIDITY_PREMIUMS[LiquidityStatus.ILLIQUID.value],
            ),
            data_points=len(points),
            data_source=data_source,
            confidence=Confidence.LOW,
            data_quality_score=0.0,
            is_dead_asset=True,
            warnings=[
                f"{DEAD_ASSET_CODE}: final price is below 1% of the all-time high "
                f"({last.price:.6g} vs {all_time_high:.6g})"
            ],
        )

    if days_held <= 0:
        raise InsufficientDataError(
            "Price series spans zero days",
            asset=asset, start_date=first.date, end_date=last.date,
        )

    if validate:
        completeness = validate_series(points, asset)
    else:
        completeness = completeness_ratio([p.date for p in points])

    warnings: list[str] = []

    basic = calculate_basic_cagr(first.price, last.price, years)
    growth_ratio = last.price / first.price
    steps = CagrCalculationSteps(
        growth_ratio=growth_ratio,
        exponent=1 / years,
        base=growth_ratio ** (1 / years),
    )

    adjustment = calculate_volatility_adjustment(values)
    if adjustment is None:
        volatility, factor = 0.0, 1.0
        warnings.append(
            f"Fewer than {VOLATILITY_WINDOW_DAYS} daily returns - volatility adjustment skipped"
        )
    else:
        volatility, factor = adjustment

    if years < 1:
        warnings.append(SHORT_PERIOD_WARNING)

    liquidity = classify_liquidity([p.volume for p in points], symbol or asset)
    confidence = score_confidence(len(points), days_held, data_source, completeness)

    logger.debug(
        f"CAGR {asset}: basic={basic:.4f}, factor={factor:.3f}, "
        f"points={len(points)}, days={days_held}, confidence={confidence.value}"
    )

    return CagrResult(
        asset=asset,
        start_date=first.date,
        end_date=last.date,
        basic_cagr=basic * 100,
        adjusted_cagr=basic * factor * 100,
        start_price=first.price,
        end_price=last.price,
        days_held=days_held,
        years=years,
        volatility_90d=volatility,
        adjustment_factor=factor,
        liquidity=liquidity,
        data_points=len(points),
        data_source=data_source,
        confidence=confidence,
        data_quality_score=data_quality_score(len(points), years, len(warnings)),
        steps=steps,
        warnings=warnings,
    )
