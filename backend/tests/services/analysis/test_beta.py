# backend/tests/services/analysis/test_beta.py
"""
Tests for beta estimation.

Test Coverage:
- Basic beta: defaults, alignment requirement, clamping, confidence
- Sector-based provisional estimates
- Comprehensive beta: adaptive lookback, liquidity multiplier, data quality
- Benchmark blending
"""

from datetime import date, timedelta

import pytest

from app.services.analysis.beta import (
    beta_confidence,
    blend_benchmark,
    calculate_beta,
    calculate_comprehensive_beta,
    liquidity_multiplier,
    sector_beta_estimate,
    select_lookback,
)
from app.services.analysis.types import Benchmark, Confidence
from app.services.exceptions import InsufficientDataError
from tests.conftest import make_price_series


def benchmark_returns(n: int = 50) -> list[float]:
    """Deterministic returns cycling through -2%..+2%."""
    return [0.01 * ((i * 7) % 5 - 2) for i in range(n)]


def dated(points) -> list[tuple[date, float]]:
    return [(p.date, p.price) for p in points]


# =============================================================================
# BASIC BETA
# =============================================================================

class TestCalculateBeta:
    """Tests for cov / var beta on aligned returns."""

    def test_missing_benchmark_uses_default(self):
        """No benchmark series gives the default beta of 1.0."""
        result = calculate_beta([0.01, 0.02], None)

        assert result.beta == 1.0
        assert result.is_default is True
        assert result.confidence == Confidence.LOW

    def test_too_few_pairs_uses_default(self):
        """Fewer than 10 pairs gives the default."""
        returns = benchmark_returns(9)

        result = calculate_beta(returns, returns)

        assert result.is_default is True
        assert result.data_points == 9

    def test_zero_benchmark_variance_uses_default(self):
        """A flat benchmark has no defined beta."""
        result = calculate_beta(benchmark_returns(20), [0.0] * 20)

        assert result.is_default is True
        assert "variance" in result.warnings[0]

    def test_requires_aligned_series(self):
        """Different lengths are a programming error."""
        with pytest.raises(ValueError, match="aligned"):
            calculate_beta(benchmark_returns(20), benchmark_returns(19))

    def test_series_against_itself(self):
        """Beta of a series against itself is 1."""
        returns = benchmark_returns()

        result = calculate_beta(returns, returns)

        assert result.beta == pytest.approx(1.0)
        assert result.is_default is False
        assert result.confidence == Confidence.MEDIUM

    def test_scaled_series(self):
        """Twice the benchmark move gives beta 2."""
        bench = benchmark_returns()
        asset = [2 * r for r in bench]

        assert calculate_beta(asset, bench).beta == pytest.approx(2.0)

    def test_clamped_to_maximum(self):
        """Raw beta of 20 is clamped to 5 with low confidence."""
        bench = benchmark_returns()
        asset = [20 * r for r in bench]

        result = calculate_beta(asset, bench)

        assert result.beta == 5.0
        assert result.confidence == Confidence.LOW

    def test_clamped_to_minimum(self):
        """Negative raw beta is clamped to 0.1."""
        bench = benchmark_returns()
        asset = [-r for r in bench]

        assert calculate_beta(asset, bench).beta == 0.1


class TestBetaConfidence:
    """Tests for the basic beta confidence classes."""

    @pytest.mark.parametrize("points,beta,cov,expected", [
        (20, 1.0, 0.01, Confidence.LOW),
        (100, 1.0, 0.01, Confidence.MEDIUM),
        (1000, 1.0, 0.01, Confidence.HIGH),
        (1000, 11.0, 0.01, Confidence.LOW),
        (1000, 1.0, 1e-9, Confidence.LOW),
    ])
    def test_classes(self, points, beta, cov, expected):
        """Point count, implausible beta and tiny covariance."""
        assert beta_confidence(points, beta, cov) == expected


# =============================================================================
# COMPREHENSIVE BETA
# =============================================================================

class TestSectorEstimate:
    """Tests for the provisional sector table."""

    @pytest.mark.parametrize("asset,expected", [
        ("BTC", 0.4),
        ("ETH", 1.1),
        ("SOL", 1.5),
        ("ADA", 1.3),
        ("LINK", 1.4),
        ("UNKNOWN", 1.5),
    ])
    def test_table_values(self, asset, expected):
        """Known symbols use the table, others the default."""
        result = sector_beta_estimate(asset, Benchmark.BTC)

        assert result.raw_beta == expected
        assert result.provisional_estimate is True
        assert result.confidence == Confidence.LOW

    def test_short_history_falls_back_to_sector(self):
        """Fewer than 180 aligned points use the sector estimate."""
        prices = dated(make_price_series(100))

        result = calculate_comprehensive_beta(prices, prices, "SOL", Benchmark.BTC)

        assert result.provisional_estimate is True
        assert result.beta == 1.5
        assert result.aligned_points == 100
        assert result.lookback_days == 0


class TestComprehensiveBeta:
    """Tests for the adaptive-lookback estimator."""

    def test_series_against_itself(self):
        """Self-beta is 1 with no volume data."""
        prices = dated(make_price_series(400, volatility=0.03))

        result = calculate_comprehensive_beta(prices, prices, "BTC", Benchmark.SP500)

        assert result.raw_beta == pytest.approx(1.0)
        assert result.beta == pytest.approx(1.0)
        assert result.liquidity_adjustment == 1.0
        assert result.volume_completeness_warning is True
        assert result.lookback_days == 180
        assert result.aligned_points == 400
        assert result.confidence == Confidence.HIGH
        assert result.provisional_estimate is False

    def test_squared_prices_double_beta(self):
        """Log returns of p^2 are twice those of p."""
        bench = make_price_series(400, volatility=0.02)
        asset = [(p.date, p.price ** 2) for p in bench]

        result = calculate_comprehensive_beta(asset, dated(bench), "ETH", Benchmark.BTC)

        assert result.raw_beta == pytest.approx(2.0)

    def test_only_common_dates_are_used(self):
        """Benchmark dates outside the asset series are ignored."""
        bench = make_price_series(500, volatility=0.03)
        asset = bench[100:]

        result = calculate_comprehensive_beta(dated(asset), dated(bench), "ETH", Benchmark.BTC)

        assert result.aligned_points == 400

    def test_illiquid_multiplier(self):
        """Median volume under $10M multiplies beta by 1.2."""
        prices = dated(make_price_series(400, volatility=0.03))

        result = calculate_comprehensive_beta(
            prices, prices, "SOL", Benchmark.BTC, volumes=[5_000_000.0] * 400
        )

        assert result.liquidity_adjustment == 1.2
        assert result.beta == pytest.approx(1.2)
        assert result.liquidity_warning is False
        assert result.volume_completeness_warning is False

    def test_deep_liquidity_multiplier(self):
        """Median volume over $1B multiplies beta by 0.9."""
        prices = dated(make_price_series(400, volatility=0.03))

        result = calculate_comprehensive_beta(
            prices, prices, "BTC", Benchmark.SP500, volumes=[2_000_000_000.0] * 400
        )

        assert result.liquidity_adjustment == 0.9
        assert result.beta == pytest.approx(0.9)

    def test_low_liquidity_warning(self):
        """Median volume under $1M raises the liquidity warning."""
        prices = dated(make_price_series(400, volatility=0.03))

        result = calculate_comprehensive_beta(
            prices, prices, "XYZ", Benchmark.BTC, volumes=[500_000.0] * 400
        )

        assert result.liquidity_warning is True
        assert any("Low liquidity" in w for w in result.warnings)

    def test_flat_benchmark_raises(self):
        """Benchmark variance below 1e-6 is insufficient."""
        asset = make_price_series(400, volatility=0.03)
        bench = [(p.date, 100.0) for p in asset]

        with pytest.raises(InsufficientDataError, match="Benchmark variance"):
            calculate_comprehensive_beta(dated(asset), bench, "ETH", Benchmark.BTC)

    def test_stale_series_lowers_data_quality(self):
        """Data ending well before the requested end loses the recency score."""
        points = make_price_series(400, volatility=0.03)
        prices = dated(points)

        fresh = calculate_comprehensive_beta(prices, prices, "BTC", Benchmark.SP500)
        stale = calculate_comprehensive_beta(
            prices, prices, "BTC", Benchmark.SP500,
            series_end=points[-1].date + timedelta(days=10),
        )

        assert fresh.data_quality - stale.data_quality == pytest.approx(0.125, abs=1e-3)

    def test_data_source_is_copied(self):
        """Provenance tag flows through."""
        prices = dated(make_price_series(400))

        result = calculate_comprehensive_beta(
            prices, prices, "BTC", Benchmark.SP500, data_source="database"
        )

        assert result.data_source == "database"


class TestLookbackAndLiquidity:
    """Tests for the lookback and liquidity helpers."""

    @pytest.mark.parametrize("volatility,expected", [
        (0.06, 90),
        (0.03, 180),
        (0.01, 360),
    ])
    def test_select_lookback(self, volatility, expected):
        """High volatility shortens the window, low volatility lengthens it."""
        assert select_lookback(volatility) == expected

    @pytest.mark.parametrize("volume,expected", [
        (None, 1.0),
        (5_000_000.0, 1.2),
        (50_000_000.0, 1.0),
        (2_000_000_000.0, 0.9),
    ])
    def test_liquidity_multiplier(self, volume, expected):
        """$10M and $1B volume thresholds."""
        assert liquidity_multiplier(volume) == expected


class TestBlendBenchmark:
    """Tests for the equity/treasury blend."""

    def test_weighted_on_common_dates(self):
        """60/40 blend of the two level series, common dates only."""
        d1, d2, d3 = date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)
        equity = [(d1, 100.0), (d2, 200.0)]
        treasury = [(d1, 4.0), (d2, 5.0), (d3, 6.0)]

        blended = blend_benchmark(equity, treasury)

        assert [d for d, _ in blended] == [d1, d2]
        assert [v for _, v in blended] == pytest.approx([61.6, 122.0])
