# backend/tests/services/analysis/test_primitives.py
"""
Tests for return and volatility primitives.

Test Coverage:
- Simple and log returns (capping, non-positive prices)
- Mean, median, variance, standard deviation with ddof
- Covariance (alignment requirement)
- Rolling annualized volatility
- Date alignment and clamping
"""

import math
from datetime import date

import pytest

from app.services.analysis.primitives import (
    align_series,
    clamp,
    covariance,
    log_returns,
    mean,
    median,
    rolling_annualized_volatility,
    simple_returns,
    standard_deviation,
    variance,
)


class TestReturns:
    """Tests for period-over-period returns."""

    def test_simple_returns(self):
        """Simple returns are (p_i - p_{i-1}) / p_{i-1}."""
        returns = simple_returns([100.0, 110.0, 99.0])

        assert returns == pytest.approx([0.1, -0.1])

    def test_simple_returns_single_price(self):
        """A single price has no returns."""
        assert simple_returns([100.0]) == []

    def test_simple_returns_capped(self):
        """A bad tick is clipped to +/-50% in both directions."""
        returns = simple_returns([100.0, 1000.0, 100.0])

        assert returns == pytest.approx([0.5, -0.5])
        assert all(abs(r) <= 0.5 for r in returns)

    def test_simple_returns_custom_cap(self):
        """The cap can be overridden."""
        assert simple_returns([100.0, 300.0], cap=1.0) == pytest.approx([1.0])

    def test_simple_returns_skip_zero_price(self):
        """A zero previous price yields no return for that step."""
        assert simple_returns([0.0, 100.0, 110.0]) == pytest.approx([0.1])

    def test_log_returns(self):
        """Log returns are ln(p_i / p_{i-1})."""
        returns = log_returns([100.0, 110.0])

        assert returns == pytest.approx([math.log(1.1)])

    def test_log_returns_are_capped(self):
        """Moves beyond +/-50% are clipped to the cap."""
        returns = log_returns([100.0, 300.0, 50.0])

        assert returns == pytest.approx([0.5, -0.5])

    def test_log_returns_custom_cap(self):
        """An infinite cap leaves returns untouched."""
        returns = log_returns([100.0, 300.0], cap=math.inf)

        assert returns == pytest.approx([math.log(3)])

    def test_log_returns_skip_non_positive_prices(self):
        """Pairs involving a zero price are skipped."""
        assert log_returns([100.0, 0.0, 50.0]) == []


class TestDescriptiveStatistics:
    """Tests for moments and the median."""

    def test_mean_empty(self):
        """Mean of nothing is 0.0."""
        assert mean([]) == 0.0

    def test_mean(self):
        """Arithmetic mean."""
        assert mean([1.0, 2.0, 3.0, 6.0]) == pytest.approx(3.0)

    def test_median_odd(self):
        """Middle value for odd lengths."""
        assert median([3.0, 1.0, 2.0]) == 2.0

    def test_median_even_averages_middle_values(self):
        """Average of the two middle values for even lengths."""
        assert median([4.0, 1.0, 3.0, 2.0]) == 2.5

    def test_median_empty(self):
        """Median of nothing is 0.0."""
        assert median([]) == 0.0

    def test_population_standard_deviation(self):
        """ddof=0 gives the population estimate."""
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]

        assert standard_deviation(values, ddof=0) == pytest.approx(2.0)

    def test_sample_standard_deviation(self):
        """ddof=1 (default) gives the sample estimate."""
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]

        assert standard_deviation(values) == pytest.approx(math.sqrt(32 / 7))

    def test_variance_too_few_points(self):
        """Fewer than two observations give 0.0."""
        assert variance([5.0]) == 0.0
        assert variance([]) == 0.0

    def test_covariance_of_series_with_itself_is_variance(self):
        """cov(x, x) == var(x)."""
        values = [0.01, -0.02, 0.03, 0.005, -0.01]

        assert covariance(values, values) == pytest.approx(variance(values))

    def test_covariance_negative_relation(self):
        """Opposite moves give negative covariance."""
        xs = [1.0, 2.0, 3.0]
        ys = [3.0, 2.0, 1.0]

        assert covariance(xs, ys) == pytest.approx(-1.0)

    def test_covariance_requires_equal_lengths(self):
        """Misaligned series are rejected."""
        with pytest.raises(ValueError, match="equal lengths"):
            covariance([1.0, 2.0, 3.0], [1.0, 2.0])

    def test_covariance_too_few_points(self):
        """Fewer than two pairs give 0.0."""
        assert covariance([1.0], [2.0]) == 0.0


class TestRollingVolatility:
    """Tests for rolling annualized volatility."""

    def test_short_series_returns_empty(self):
        """No full window, no values."""
        assert rolling_annualized_volatility([0.01] * 10, window=90) == []

    def test_one_value_per_full_window(self):
        """len(returns) - window + 1 values."""
        returns = [0.01, -0.01] * 50

        vols = rolling_annualized_volatility(returns, window=90)

        assert len(vols) == 11

    def test_constant_returns_have_zero_volatility(self):
        """No dispersion, no volatility."""
        vols = rolling_annualized_volatility([0.002] * 95, window=90)

        assert all(v == pytest.approx(0.0) for v in vols)

    def test_annualized_with_sqrt_365_25(self):
        """Window stdev is scaled by sqrt(365.25)."""
        returns = [0.01, -0.01] * 5

        vols = rolling_annualized_volatility(returns, window=10)

        assert vols == pytest.approx([standard_deviation(returns) * math.sqrt(365.25)])


class TestHelpers:
    """Tests for alignment and clamping."""

    def test_align_series_intersects_dates(self):
        """Only common dates are kept, in ascending order."""
        a = [(date(2024, 1, 3), 3.0), (date(2024, 1, 1), 1.0), (date(2024, 1, 2), 2.0)]
        b = [(date(2024, 1, 2), 20.0), (date(2024, 1, 3), 30.0), (date(2024, 1, 4), 40.0)]

        dates, a_values, b_values = align_series(a, b)

        assert dates == [date(2024, 1, 2), date(2024, 1, 3)]
        assert a_values == [2.0, 3.0]
        assert b_values == [20.0, 30.0]

    def test_align_series_disjoint(self):
        """Disjoint series align to nothing."""
        dates, a_values, b_values = align_series(
            [(date(2024, 1, 1), 1.0)], [(date(2024, 1, 2), 2.0)]
        )

        assert dates == [] and a_values == [] and b_values == []

    @pytest.mark.parametrize("value,expected", [(-1.0, 0.0), (0.5, 0.5), (2.0, 1.0)])
    def test_clamp(self, value, expected):
        """Values are limited to [low, high]."""
        assert clamp(value, 0.0, 1.0) == expected
