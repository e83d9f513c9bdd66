# backend/app/services/analysis/market.py
"""
Bitcoin market state assessment.

Pure functions turning on-chain indicator readings into a market state
(bullish / bearish / neutral) and an AVIV valuation zone.

Signals:
    Indicator   Bullish     Bearish
    AVIV        < 0.7       > 2.5
    Volatility  < 30%       > 90%
    MVRV-Z      < -1        > 6
    Drawdown    > 50%       < 10%

Three or more signals on one side decide the state.
"""

from typing import Sequence

from app.services.analysis.types import AvivZone, BitcoinState, MarketStateAssessment
from app.services.constants import (
    AVIV_ZONES,
    STATE_AVIV_BEARISH,
    STATE_AVIV_BULLISH,
    STATE_DRAWDOWN_BEARISH,
    STATE_DRAWDOWN_BULLISH,
    STATE_FALLBACK_CONFIDENCE,
    STATE_MIN_SIGNALS,
    STATE_MVRV_BEARISH,
    STATE_MVRV_BULLISH,
    STATE_VOLATILITY_BEARISH,
    STATE_VOLATILITY_BULLISH,
)


def classify_aviv(aviv: float) -> AvivZone:
    """
    Map an AVIV ratio to its zone.

    Zones (lower bound inclusive):
        [0, 0.5) strong_buy, [0.5, 1.0) dca_buy, [1.0, 1.5) accumulate,
        [1.5, 1.9) neutral, [1.9, 2.5) prepare_sell, >= 2.5 strong_sell
    """
    for upper, zone in AVIV_ZONES:
        if aviv < upper:
            return AvivZone(zone)
    return AvivZone.STRONG_SELL


def assess_bitcoin_market_state(
        aviv: float | None = None,
        volatility_pct: float | None = None,
        mvrv_z: float | None = None,
        drawdown: float | None = None,
) -> MarketStateAssessment:
    """
    Vote the market state from whichever indicators are available.

    Args:
        aviv: AVIV ratio
        volatility_pct: Realized volatility in percent (45.0 = 45%)
        mvrv_z: MVRV Z-score
        drawdown: Drawdown from ATH as a positive fraction (0.6 = 60% below)
    """
    if all(v is None for v in (aviv, volatility_pct, mvrv_z, drawdown)):
        return MarketStateAssessment(state=BitcoinState.NEUTRAL, confidence=STATE_FALLBACK_CONFIDENCE)

    bullish: list[str] = []
    bearish: list[str] = []

    if aviv is not None:
        if aviv < STATE_AVIV_BULLISH:
            bullish.append(f"AVIV {aviv:.2f} indicates undervaluation")
        elif aviv > STATE_AVIV_BEARISH:
            bearish.append(f"AVIV {aviv:.2f} indicates overvaluation")

    if volatility_pct is not None:
        if volatility_pct < STATE_VOLATILITY_BULLISH:
            bullish.append(f"Low volatility ({volatility_pct:.0f}%)")
        elif volatility_pct > STATE_VOLATILITY_BEARISH:
            bearish.append(f"Extreme volatility ({volatility_pct:.0f}%)")

    if mvrv_z is not None:
        if mvrv_z < STATE_MVRV_BULLISH:
            bullish.append(f"MVRV Z-score {mvrv_z:.2f} below realized value")
        elif mvrv_z > STATE_MVRV_BEARISH:
            bearish.append(f"MVRV Z-score {mvrv_z:.2f} in euphoria range")

    if drawdown is not None:
        if drawdown > STATE_DRAWDOWN_BULLISH:
            bullish.append(f"Deep drawdown from ATH ({drawdown:.0%})")
        elif drawdown < STATE_DRAWDOWN_BEARISH:
            bearish.append(f"Trading near ATH ({drawdown:.0%} drawdown)")

    if len(bullish) >= STATE_MIN_SIGNALS:
        state = BitcoinState.BULLISH
        confidence = min(95, 70 + 8 * len(bullish))
    elif len(bearish) >= STATE_MIN_SIGNALS:
        state = BitcoinState.BEARISH
        confidence = min(95, 70 + 8 * len(bearish))
    else:
        state = BitcoinState.NEUTRAL
        confidence = 50 + 10 * abs(len(bullish) - len(bearish))

    return MarketStateAssessment(
        state=state,
        confidence=confidence,
        bullish_signals=bullish,
        bearish_signals=bearish,
    )


def detect_smart_money_activity(liquid_supply: Sequence[float]) -> bool:
    """Liquid supply falling over the window means coins are moving to strong hands."""
    if len(liquid_supply) < 2:
        return False
    return liquid_supply[-1] < liquid_supply[0]


def normalize_drawdown(value: float | None) -> float | None:
    """Glassnode reports drawdown as a negative fraction; use its magnitude."""
    return abs(value) if value is not None else None
