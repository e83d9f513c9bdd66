# backend/tests/services/analysis/test_recommendation.py
"""
Tests for the rule-based recommendation composer.

Test Coverage:
- Signal classification thresholds
- Action choice (Buy, Sell, BuyLess) and confidence
- Bearish market overlay (DoNotBuy, forced Sell)
- Fed rate notes, basket allocation caps, diversification
- Risk factor
"""

import dataclasses

import pytest

from app.models import Basket
from app.services.analysis.monte_carlo import fallback_projection
from app.services.analysis.recommendation import (
    calculate_risk_factor,
    choose_action,
    classify_signals,
    compose_recommendation,
)
from app.services.analysis.types import (
    Action,
    AvivZone,
    BitcoinState,
    Confidence,
    FinancialMetrics,
    MarketConditions,
    SignalSummary,
)


def make_metrics(**overrides) -> FinancialMetrics:
    """Neutral metrics: no signal fires except the NPV one."""
    values = dict(
        npv=100.0,
        irr=0.10,
        cagr=0.10,
        roi=0.1,
        beta=1.0,
        beta_confidence=Confidence.MEDIUM,
        standard_deviation=0.6,
        sharpe_ratio=0.7,
        risk_factor=3,
        risk_adjusted_npv=50.0,
        data_quality=80.0,
        discount_rate=0.12,
    )
    values.update(overrides)
    return FinancialMetrics(**values)


STRONG = dict(npv=5000.0, irr=0.30, standard_deviation=0.30, sharpe_ratio=1.5, discount_rate=0.2)
WEAK = dict(npv=-2000.0, irr=0.01, standard_deviation=0.90, sharpe_ratio=0.2)


def make_market(**overrides) -> MarketConditions:
    values = dict(
        bitcoin_state=BitcoinState.NEUTRAL,
        state_confidence=50,
        aviv_ratio=None,
        aviv_zone=AvivZone.NEUTRAL,
        vaulted_supply=None,
        active_supply=None,
        smart_money_activity=False,
        fed_rate_change=0.0,
    )
    values.update(overrides)
    return MarketConditions(**values)


def projection(probability_of_loss: float = 0.3):
    return dataclasses.replace(fallback_projection(1000, 12), probability_of_loss=probability_of_loss)


def compose(metrics=None, market=None, p_loss=0.3, basket=Basket.BITCOIN, amount=1000.0, portfolio=10000.0):
    return compose_recommendation(
        metrics or make_metrics(),
        market or make_market(),
        projection(p_loss),
        basket,
        amount,
        portfolio,
    )


# =============================================================================
# SIGNALS
# =============================================================================

class TestClassifySignals:
    """Tests for threshold rules."""

    def test_strong_metrics(self):
        """Every rule fires positive."""
        signals = classify_signals(make_metrics(**STRONG), probability_of_loss=0.1, aviv=0.5)

        assert len(signals.positive) == 6
        assert signals.negative == []

    def test_weak_metrics(self):
        """Every rule fires negative."""
        signals = classify_signals(make_metrics(**WEAK), probability_of_loss=0.5, aviv=3.0)

        assert signals.positive == []
        assert len(signals.negative) == 6

    def test_neutral_band(self):
        """Values between thresholds add no signal."""
        signals = classify_signals(make_metrics(), probability_of_loss=0.3, aviv=1.5)

        assert len(signals.positive) == 1
        assert signals.negative == []

    def test_non_positive_npv_is_negative(self):
        """NPV of exactly zero counts against."""
        signals = classify_signals(make_metrics(npv=0.0), probability_of_loss=0.3)

        assert signals.positive == []
        assert len(signals.negative) == 1


class TestChooseAction:
    """Tests for signal-count voting."""

    def test_buy(self):
        """More positive signals and positive NPV."""
        signals = SignalSummary(positive=["a", "b", "c"], negative=["d"])

        assert choose_action(signals, npv=100) == (Action.BUY, 80)

    def test_buy_confidence_capped(self):
        """Buy confidence never exceeds 90."""
        signals = SignalSummary(positive=["a"] * 6)

        assert choose_action(signals, npv=100) == (Action.BUY, 90)

    def test_sell_on_negative_majority(self):
        """More negative signals."""
        signals = SignalSummary(positive=["a"], negative=["b", "c"])

        assert choose_action(signals, npv=100) == (Action.SELL, 60)

    def test_sell_confidence_capped(self):
        """Sell confidence never exceeds 80."""
        signals = SignalSummary(negative=["a"] * 6)

        assert choose_action(signals, npv=-100) == (Action.SELL, 80)

    def test_sell_on_large_negative_npv(self):
        """NPV below -$1000 sells even with a positive majority."""
        signals = SignalSummary(positive=["a", "b"], negative=["c"])

        assert choose_action(signals, npv=-1500) == (Action.SELL, 60)

    def test_buy_less_on_tie(self):
        """Equal counts give BuyLess at 60."""
        signals = SignalSummary(positive=["a"], negative=["b"])

        assert choose_action(signals, npv=100) == (Action.BUY_LESS, 60)

    def test_positive_majority_without_positive_npv(self):
        """A positive majority with small negative NPV is BuyLess."""
        signals = SignalSummary(positive=["a", "b"], negative=["c"])

        assert choose_action(signals, npv=-10) == (Action.BUY_LESS, 60)


# =============================================================================
# COMPOSER
# =============================================================================

class TestComposeRecommendation:
    """Tests for the full composer."""

    def test_strong_case_buys(self):
        """Strong metrics in a neutral market."""
        result = compose(make_metrics(**STRONG), p_loss=0.1)

        assert result.recommendation == Action.BUY
        assert result.confidence == 90
        assert result.worth_investing is True
        assert result.good_timing is True

    def test_weak_case_sells(self):
        """Weak metrics."""
        result = compose(make_metrics(**WEAK), p_loss=0.5)

        assert result.recommendation == Action.SELL
        assert result.confidence == 80
        assert result.worth_investing is False

    def test_bearish_market_blocks_buy(self):
        """A Buy becomes DoNotBuy in a bearish market."""
        market = make_market(bitcoin_state=BitcoinState.BEARISH)

        result = compose(make_metrics(**STRONG), market=market, p_loss=0.1)

        assert result.recommendation == Action.DO_NOT_BUY
        assert result.good_timing is False
        assert any("Bearish" in r for r in result.risks)

    def test_bearish_market_with_smart_money_sells(self):
        """Bearish state plus smart money activity forces Sell."""
        market = make_market(bitcoin_state=BitcoinState.BEARISH, smart_money_activity=True)

        result = compose(make_metrics(**STRONG), market=market, p_loss=0.1)

        assert result.recommendation == Action.SELL

    def test_overbought_market_is_bad_timing(self):
        """AVIV above 2.5 is poor timing."""
        market = make_market(aviv_ratio=3.0, aviv_zone=AvivZone.STRONG_SELL)

        assert compose(market=market).good_timing is False

    def test_rising_fed_rate_noted(self):
        """A 0.3 pp rise is a condition but not a risk."""
        result = compose(market=make_market(fed_rate_change=0.3))

        assert any("Fed funds rate rising" in c for c in result.conditions)
        assert not any("Fed" in r for r in result.risks)

    def test_large_fed_rate_change_is_a_risk(self):
        """A 0.6 pp cut is both a condition and a risk."""
        result = compose(market=make_market(fed_rate_change=-0.6))

        assert any("Fed funds rate falling" in c for c in result.conditions)
        assert any("Significant Fed rate change" in r for r in result.risks)

    @pytest.mark.parametrize("basket,amount,appropriate", [
        (Basket.BITCOIN, 8000.0, True),
        (Basket.BITCOIN, 8500.0, False),
        (Basket.BLUE_CHIP, 4000.0, True),
        (Basket.BLUE_CHIP, 4500.0, False),
        (Basket.SMALL_CAP, 1000.0, True),
        (Basket.SMALL_CAP, 2000.0, False),
    ])
    def test_basket_caps(self, basket, amount, appropriate):
        """80% / 40% / 10% caps of a 10,000 portfolio."""
        result = compose(basket=basket, amount=amount)

        assert result.appropriate_amount is appropriate

    def test_cap_breach_is_a_risk(self):
        """Exceeding the cap is reported."""
        result = compose(basket=Basket.SMALL_CAP, amount=2000.0)

        assert any("exceeds the 10% cap" in r for r in result.risks)

    def test_diversification(self):
        """Non-bitcoin baskets always suggest diversifying."""
        assert compose(basket=Basket.BITCOIN, amount=5000.0).should_diversify is False
        assert compose(basket=Basket.BLUE_CHIP, amount=1000.0).should_diversify is True

    def test_empty_portfolio_is_full_allocation(self):
        """A zero portfolio treats the investment as 100%."""
        result = compose(amount=1000.0, portfolio=0.0)

        assert result.appropriate_amount is False
        assert result.should_diversify is True

    def test_same_inputs_same_recommendation(self):
        """The composer is a pure function of its inputs."""
        metrics = make_metrics(**STRONG)
        market = make_market(fed_rate_change=0.6)

        first = compose(metrics, market=market, p_loss=0.1)
        second = compose(metrics, market=market, p_loss=0.1)

        assert first == second
        assert metrics == make_metrics(**STRONG)

    def test_risk_factor_copied_from_metrics(self):
        """The composer reports the metrics' risk factor."""
        assert compose(make_metrics(risk_factor=5)).risk_factor == 5


class TestRiskFactor:
    """Tests for the 1-5 risk factor."""

    @pytest.mark.parametrize("basket,volatility,aviv,expected", [
        (Basket.BITCOIN, 50.0, None, 3),
        (Basket.BITCOIN, 50.0, 3.0, 4),
        (Basket.BITCOIN, 50.0, 0.5, 2),
        (Basket.BITCOIN, 20.0, 0.4, 1),
        (Basket.BLUE_CHIP, 50.0, 3.0, 4),
        (Basket.BLUE_CHIP, 90.0, None, 5),
        (Basket.SMALL_CAP, 90.0, None, 5),
        (Basket.SMALL_CAP, 20.0, None, 4),
    ])
    def test_levels(self, basket, volatility, aviv, expected):
        """Basket base, AVIV (bitcoin only) and volatility adjustments, clamped to 1-5."""
        assert calculate_risk_factor(basket, volatility, aviv) == expected
