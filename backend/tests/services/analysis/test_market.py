# backend/tests/services/analysis/test_market.py
"""
Tests for the bitcoin market state assessment.

Test Coverage:
- AVIV zone boundaries
- Signal voting (bullish, bearish, neutral) and confidence
- Fallback when no indicator is available
- Smart money detection and drawdown normalization
"""

import pytest

from app.services.analysis.market import (
    assess_bitcoin_market_state,
    classify_aviv,
    detect_smart_money_activity,
    normalize_drawdown,
)
from app.services.analysis.types import AvivZone, BitcoinState


class TestClassifyAviv:
    """Tests for AVIV zone mapping."""

    @pytest.mark.parametrize("aviv,zone", [
        (0.0, AvivZone.STRONG_BUY),
        (0.49, AvivZone.STRONG_BUY),
        (0.5, AvivZone.DCA_BUY),
        (0.99, AvivZone.DCA_BUY),
        (1.0, AvivZone.ACCUMULATE),
        (1.5, AvivZone.NEUTRAL),
        (1.9, AvivZone.PREPARE_SELL),
        (2.49, AvivZone.PREPARE_SELL),
        (2.5, AvivZone.STRONG_SELL),
        (4.0, AvivZone.STRONG_SELL),
    ])
    def test_zone_boundaries(self, aviv, zone):
        """Lower bounds are inclusive."""
        assert classify_aviv(aviv) == zone


class TestAssessMarketState:
    """Tests for signal voting."""

    def test_all_bullish(self):
        """Four bullish signals cap confidence at 95."""
        result = assess_bitcoin_market_state(aviv=0.6, volatility_pct=25, mvrv_z=-1.5, drawdown=0.7)

        assert result.state == BitcoinState.BULLISH
        assert result.confidence == 95
        assert len(result.bullish_signals) == 4
        assert result.bearish_signals == []

    def test_three_bearish(self):
        """Three bearish signals give 70 + 3 x 8."""
        result = assess_bitcoin_market_state(aviv=3.0, volatility_pct=95, mvrv_z=7.0)

        assert result.state == BitcoinState.BEARISH
        assert result.confidence == 94
        assert len(result.bearish_signals) == 3

    def test_mixed_signals_are_neutral(self):
        """Two against one stays neutral with 50 + 10 x difference."""
        result = assess_bitcoin_market_state(aviv=0.6, volatility_pct=25, mvrv_z=7.0, drawdown=0.3)

        assert result.state == BitcoinState.NEUTRAL
        assert result.confidence == 60

    def test_indicators_in_neutral_range(self):
        """No signals at all gives neutral 50."""
        result = assess_bitcoin_market_state(aviv=1.5, volatility_pct=50, mvrv_z=2.0, drawdown=0.3)

        assert result.state == BitcoinState.NEUTRAL
        assert result.confidence == 50

    def test_no_indicators(self):
        """Nothing available falls back to neutral with confidence 25."""
        result = assess_bitcoin_market_state()

        assert result.state == BitcoinState.NEUTRAL
        assert result.confidence == 25

    def test_partial_indicators_can_decide(self):
        """Missing indicators simply do not vote."""
        result = assess_bitcoin_market_state(aviv=0.5, volatility_pct=20, drawdown=0.8)

        assert result.state == BitcoinState.BULLISH
        assert result.confidence == 94


class TestHelpers:
    """Tests for smart money and drawdown helpers."""

    def test_falling_liquid_supply_is_smart_money(self):
        """Liquid supply ending below its start."""
        assert detect_smart_money_activity([100.0, 98.0, 95.0]) is True

    def test_rising_liquid_supply(self):
        """Liquid supply growing is not smart money activity."""
        assert detect_smart_money_activity([95.0, 98.0, 100.0]) is False

    def test_short_supply_series(self):
        """Fewer than two readings cannot show a trend."""
        assert detect_smart_money_activity([100.0]) is False

    def test_normalize_drawdown(self):
        """Negative fractions become positive; None passes through."""
        assert normalize_drawdown(-0.42) == pytest.approx(0.42)
        assert normalize_drawdown(None) is None
