# backend/app/services/analysis/recommendation.py
"""
Rule-based recommendation composer.

Deterministic and stateless: the same metrics always produce the same
recommendation. No clock, no randomness, no learned weights.

Pipeline:
    1. classify_signals    - threshold rules -> positive / negative reasons
    2. choose_action       - compare signal counts -> action + confidence
    3. market overlay      - bearish bitcoin state can downgrade the action
    4. allocation checks   - basket caps, diversification, Fed rate trend
"""

from app.models import Basket
from app.services.analysis.primitives import clamp
from app.services.analysis.types import (
    Action,
    BitcoinState,
    FinancialMetrics,
    MarketConditions,
    MonteCarloResult,
    Recommendation,
    SignalSummary,
)
from app.services.constants import (
    AVIV_OVERBOUGHT,
    AVIV_OVERSOLD,
    BASKET_ALLOCATION_CAPS,
    BASKET_BASE_RISK,
    FED_RATE_NOTABLE_CHANGE,
    FED_RATE_RISK_CHANGE,
    IRR_NEGATIVE_THRESHOLD,
    IRR_POSITIVE_THRESHOLD,
    LOSS_PROBABILITY_HIGH,
    LOSS_PROBABILITY_LOW,
    RISK_VOLATILITY_HIGH_PCT,
    RISK_VOLATILITY_LOW_PCT,
    SHARPE_NEGATIVE_THRESHOLD,
    SHARPE_POSITIVE_THRESHOLD,
    STRONG_SELL_NPV,
    VOLATILITY_HIGH_PCT,
    VOLATILITY_LOW_PCT,
)


# =============================================================================
# SIGNALS
# =============================================================================

def classify_signals(
        metrics: FinancialMetrics,
        probability_of_loss: float,
        aviv: float | None = None,
) -> SignalSummary:
    """Apply each threshold rule and collect human-readable reasons."""
    signals = SignalSummary()
    positive, negative = signals.positive, signals.negative

    if metrics.npv > 0:
        positive.append(f"Positive NPV (${metrics.npv:,.0f})")
    else:
        negative.append(f"Non-positive NPV (${metrics.npv:,.0f})")

    if metrics.irr > IRR_POSITIVE_THRESHOLD:
        positive.append(f"Strong IRR ({metrics.irr:.1%})")
    elif metrics.irr < IRR_NEGATIVE_THRESHOLD:
        negative.append(f"Weak IRR ({metrics.irr:.1%})")

    volatility = metrics.volatility_pct
    if volatility < VOLATILITY_LOW_PCT:
        positive.append(f"Moderate volatility ({volatility:.0f}%)")
    elif volatility > VOLATILITY_HIGH_PCT:
        negative.append(f"High volatility ({volatility:.0f}%)")

    if metrics.sharpe_ratio > SHARPE_POSITIVE_THRESHOLD:
        positive.append(f"Good risk-adjusted return (Sharpe {metrics.sharpe_ratio:.2f})")
    elif metrics.sharpe_ratio < SHARPE_NEGATIVE_THRESHOLD:
        negative.append(f"Poor risk-adjusted return (Sharpe {metrics.sharpe_ratio:.2f})")

    if probability_of_loss < LOSS_PROBABILITY_LOW:
        positive.append(f"Low probability of loss ({probability_of_loss:.0%})")
    elif probability_of_loss > LOSS_PROBABILITY_HIGH:
        negative.append(f"High probability of loss ({probability_of_loss:.0%})")

    if aviv is not None:
        if aviv < AVIV_OVERSOLD:
            positive.append(f"Market oversold (AVIV {aviv:.2f})")
        elif aviv > AVIV_OVERBOUGHT:
            negative.append(f"Market overbought (AVIV {aviv:.2f})")

    return signals


def choose_action(signals: SignalSummary, npv: float) -> tuple[Action, int]:
    """
    Pick the action from signal counts.

    Buy      - more positive than negative signals and NPV > 0
    Sell     - more negative signals, or NPV below -$1000
    BuyLess  - otherwise
    """
    diff = signals.difference
    n_pos, n_neg = len(signals.positive), len(signals.negative)

    if n_pos > n_neg and npv > 0:
        return Action.BUY, min(90, 60 + 10 * diff)
    if n_neg > n_pos or npv < STRONG_SELL_NPV:
        return Action.SELL, min(80, 50 + 10 * diff)
    return Action.BUY_LESS, 60


# =============================================================================
# RISK FACTOR
# =============================================================================

def calculate_risk_factor(basket: Basket, volatility_pct: float, aviv: float | None = None) -> int:
    """
    1 (lowest) to 5 (highest) risk.

    Base by basket: bitcoin 3, blue_chip 4, small_cap 5. For bitcoin, AVIV
    above 2.5 adds one and below 0.55 removes one. Volatility above 80%
    adds one and below 30% removes one.
    """
    risk = BASKET_BASE_RISK[basket.value]

    if basket == Basket.BITCOIN and aviv is not None:
        if aviv > AVIV_OVERBOUGHT:
            risk += 1
        elif aviv < AVIV_OVERSOLD:
            risk -= 1

    if volatility_pct > RISK_VOLATILITY_HIGH_PCT:
        risk += 1
    elif volatility_pct < RISK_VOLATILITY_LOW_PCT:
        risk -= 1

    return int(clamp(risk, 1, 5))


# =============================================================================
# COMPOSER
# =============================================================================

def compose_recommendation(
        metrics: FinancialMetrics,
        market: MarketConditions,
        monte_carlo: MonteCarloResult,
        basket: Basket,
        investment_amount: float,
        total_portfolio: float,
) -> Recommendation:
    """
    Combine metric signals with market conditions and allocation rules.

    Args:
        metrics: Financial metrics for the coin
        market: Bitcoin market snapshot
        monte_carlo: Projection supplying the probability of loss
        basket: Basket the investment is assessed against
        investment_amount: Amount to invest
        total_portfolio: Total portfolio value
    """
    signals = classify_signals(metrics, monte_carlo.probability_of_loss, market.aviv_ratio)
    action, confidence = choose_action(signals, metrics.npv)

    conditions = list(signals.positive)
    risks = list(signals.negative)

    bearish = market.bitcoin_state == BitcoinState.BEARISH
    if bearish and market.smart_money_activity:
        action = Action.SELL
        risks.append("Bearish bitcoin market with smart money repositioning")
    elif bearish and action == Action.BUY:
        action = Action.DO_NOT_BUY
        risks.append("Bearish bitcoin market - wait for better entry")

    overbought = market.aviv_ratio is not None and market.aviv_ratio > AVIV_OVERBOUGHT
    good_timing = not bearish and not overbought

    if abs(market.fed_rate_change) > FED_RATE_NOTABLE_CHANGE:
        direction = "rising" if market.fed_rate_change > 0 else "falling"
        conditions.append(
            f"Fed funds rate {direction} ({market.fed_rate_change:+.2f} pp over 90 days)"
        )
    if abs(market.fed_rate_change) > FED_RATE_RISK_CHANGE:
        risks.append("Significant Fed rate change may move risk assets")

    worth_investing = metrics.npv > 0 and metrics.irr > metrics.discount_rate

    allocation_pct = investment_amount / total_portfolio * 100 if total_portfolio > 0 else 100.0
    cap = BASKET_ALLOCATION_CAPS[basket.value]
    appropriate_amount = allocation_pct <= cap
    if not appropriate_amount:
        risks.append(
            f"Allocation {allocation_pct:.1f}% exceeds the {cap:.0f}% cap for {basket.value}"
        )

    should_diversify = basket != Basket.BITCOIN or allocation_pct > 80

    return Recommendation(
        recommendation=action,
        worth_investing=worth_investing,
        good_timing=good_timing,
        appropriate_amount=appropriate_amount,
        should_diversify=should_diversify,
        risk_factor=metrics.risk_factor,
        confidence=confidence,
        conditions=conditions,
        risks=risks,
    )
