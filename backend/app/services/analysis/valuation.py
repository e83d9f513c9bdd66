# backend/app/services/analysis/valuation.py
"""
Discount rate, NPV and IRR.

Pure functions for a single-terminal-cash-flow investment model: the
investment is paid today and the whole position is realised at the horizon.

Formulas:
    Discount rate   d = rf + beta x (mr - rf) + liquidity_premium
    Terminal value  TV = amount x (1 + cagr)^years
    NPV             = TV / (1 + d)^years - amount
    IRR             = (TV / amount)^(1 / years) - 1

    Volatility (annualized) = sqrt(var_pop(simple_returns) x 365)
    Sharpe ratio            = (cagr - 2%) / volatility
    Risk-adjusted NPV       = NPV - volatility x amount x 0.1
"""

import math
from typing import Sequence

from app.services.analysis.primitives import simple_returns, variance
from app.services.analysis.types import (
    Benchmark,
    DiscountRateBreakdown,
    NpvResult,
    YearlyCashFlow,
)
from app.services.constants import (
    CALENDAR_DAYS_PER_YEAR,
    NPV_CONFIDENCE_BASE,
    NPV_CONFIDENCE_CAP,
    RISK_ADJUSTED_NPV_FACTOR,
    SHARPE_RISK_FREE_RATE,
)
from app.services.exceptions import ValidationError


# =============================================================================
# DISCOUNT RATE
# =============================================================================

def market_return_for(
        benchmark: Benchmark,
        equity_return: float = 0.10,
        crypto_return: float = 0.15,
) -> float:
    """Expected market return for the benchmark the beta was measured against."""
    return equity_return if benchmark.is_equity else crypto_return


def calculate_discount_rate(
        risk_free_rate: float,
        beta: float,
        market_return: float,
        liquidity_premium: float,
) -> DiscountRateBreakdown:
    """CAPM discount rate plus a liquidity premium, with each component."""
    market_risk_premium = market_return - risk_free_rate
    beta_adjustment = beta * market_risk_premium
    return DiscountRateBreakdown(
        risk_free_rate=risk_free_rate,
        beta=beta,
        market_return=market_return,
        market_risk_premium=market_risk_premium,
        beta_adjustment=beta_adjustment,
        liquidity_premium=liquidity_premium,
        discount_rate=risk_free_rate + beta_adjustment + liquidity_premium,
    )


# =============================================================================
# NPV / IRR
# =============================================================================

def yearly_breakdown(
        amount: float,
        terminal_value: float,
        discount_rate: float,
        years: float,
) -> list[YearlyCashFlow]:
    """
    Year-by-year view of the position for display.

    Covers years 1..ceil(years). Only the final year carries a cash flow.
    """
    periods = math.ceil(years)
    growth = (terminal_value / amount) ** (1 / years) - 1 if terminal_value > 0 else -1.0

    rows: list[YearlyCashFlow] = []
    for year in range(1, periods + 1):
        future_value = amount * (1 + growth) ** year
        discount_factor = 1 / (1 + discount_rate) ** year
        rows.append(YearlyCashFlow(
            year=year,
            cash_flow=future_value if year == periods else 0.0,
            future_value=future_value,
            discount_factor=discount_factor,
            present_value=future_value * discount_factor,
        ))
    return rows


def calculate_npv(amount: float, cagr: float, years: float, discount_rate: float) -> NpvResult:
    """
    NPV and IRR of holding `amount` for `years` at growth `cagr`.

    Args:
        amount: Investment in USD (> 0)
        cagr: Annual growth rate as a decimal (>= -1)
        years: Holding period (> 0, fractional allowed)
        discount_rate: Annual discount rate as a decimal (> -1)

    Raises:
        ValidationError: On out-of-range inputs
    """
    if amount <= 0:
        raise ValidationError("Investment amount must be positive", field="amount")
    if years <= 0:
        raise ValidationError("Investment horizon must be positive", field="years")
    if cagr < -1:
        raise ValidationError("CAGR cannot be below -100%", field="cagr")
    if discount_rate <= -1:
        raise ValidationError("Discount rate must be above -100%", field="discount_rate")

    terminal_value = amount * (1 + cagr) ** years
    npv = terminal_value / (1 + discount_rate) ** years - amount
    irr = (terminal_value / amount) ** (1 / years) - 1 if terminal_value > 0 else -1.0

    return NpvResult(
        investment=amount,
        years=years,
        cagr=cagr,
        discount_rate=discount_rate,
        terminal_value=terminal_value,
        npv=npv,
        irr=irr,
        breakdown=yearly_breakdown(amount, terminal_value, discount_rate, years),
    )


def npv_confidence_score(price_points: int, has_volume: bool, beta: float) -> int:
    """
    0-95 confidence in an NPV figure.

    Scoring:
        base 40
        history: > 365 points +20, > 90 +15, else +5
        volume data present +15
        beta in [0.5, 2] +15, in [0.1, 5] +10, else +5
    """
    score = NPV_CONFIDENCE_BASE

    if price_points > 365:
        score += 20
    elif price_points > 90:
        score += 15
    else:
        score += 5

    if has_volume:
        score += 15

    if 0.5 <= beta <= 2.0:
        score += 15
    elif 0.1 <= beta <= 5.0:
        score += 10
    else:
        score += 5

    return min(score, NPV_CONFIDENCE_CAP)


# =============================================================================
# SUPPLEMENTARY METRICS
# =============================================================================

def annualized_volatility(prices: Sequence[float]) -> float:
    """Population stdev of daily simple returns, scaled by sqrt(365)."""
    returns = simple_returns(prices)
    return math.sqrt(variance(returns, ddof=0) * CALENDAR_DAYS_PER_YEAR)


def sharpe_ratio(cagr: float, volatility: float, risk_free_rate: float = SHARPE_RISK_FREE_RATE) -> float:
    if volatility == 0:
        return 0.0
    return (cagr - risk_free_rate) / volatility


def risk_adjusted_npv(npv: float, volatility: float, amount: float) -> float:
    return npv - volatility * amount * RISK_ADJUSTED_NPV_FACTOR


def calculate_roi(expected_value: float, amount: float) -> float:
    """(expected - amount) / amount, as a decimal."""
    if amount <= 0:
        raise ValidationError("Investment amount must be positive", field="amount")
    return (expected_value - amount) / amount
