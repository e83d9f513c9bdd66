# tests/services/test_fetcher.py
"""
Tests for SeriesFetcher's live-first policy.

Test Coverage:
- Live prices returned and written back
- Stored fallback on provider errors and empty answers
- InsufficientDataError when neither source has data
- Metric and macro series errors
"""

import pytest

from app.services.circuit_breaker import CircuitBreakerOpen
from app.services.exceptions import InsufficientDataError, ProviderUnavailableError
from app.services.market_data.fetcher import SOURCE_DATABASE
from app.services.market_data.glassnode import AVIV_METRIC
from app.services.market_data.repository import StoredSeriesRepository
from tests.conftest import AS_OF, create_coin, make_flat_series, make_price_series

START = make_price_series(60)[0].date


class TestFetchPrices:
    """Tests for price fetching."""

    def test_live_prices(self, db, fetcher, glassnode):
        """Live data is tagged with the provider name."""
        glassnode.add_prices("bitcoin", make_price_series(60))

        result = fetcher.fetch_prices(db, "bitcoin", START, AS_OF)

        assert result.data_source == "glassnode"
        assert len(result.points) == 60
        assert result.warnings == []

    def test_live_prices_written_back(self, db, fetcher, glassnode):
        """A successful live pull is stored for later fallback."""
        create_coin(db)
        glassnode.add_prices("bitcoin", make_price_series(60))

        fetcher.fetch_prices(db, "bitcoin", START, AS_OF)

        assert len(StoredSeriesRepository(db).get_price_history("bitcoin", START, AS_OF)) == 60

    def test_symbol_override(self, db, fetcher, glassnode):
        """The provider is asked for the given symbol, storage uses the coin id."""
        glassnode.add_prices("ETH", make_price_series(60))

        result = fetcher.fetch_prices(db, "ethereum", START, AS_OF, symbol="ETH")

        assert glassnode.price_calls[0][0] == "ETH"
        assert len(result.points) == 60

    @pytest.mark.parametrize("error", [
        ProviderUnavailableError("glassnode", "HTTP 503"),
        CircuitBreakerOpen("glassnode", 30.0),
    ])
    def test_fallback_on_provider_error(self, db, fetcher, glassnode, error):
        """Provider failures fall back to stored history with a warning."""
        create_coin(db)
        StoredSeriesRepository(db).save_price_history("bitcoin", make_price_series(60), "glassnode")
        glassnode.fail_with("BTC", error)

        result = fetcher.fetch_prices(db, "bitcoin", START, AS_OF)

        assert result.data_source == SOURCE_DATABASE
        assert len(result.points) == 60
        assert "Live data unavailable" in result.warnings[0]

    def test_fallback_on_empty_answer(self, db, fetcher):
        """An empty live answer also falls back."""
        create_coin(db)
        StoredSeriesRepository(db).save_price_history("bitcoin", make_price_series(60), "glassnode")

        result = fetcher.fetch_prices(db, "bitcoin", START, AS_OF)

        assert result.data_source == SOURCE_DATABASE
        assert "no prices" in result.warnings[0]

    def test_no_data_anywhere(self, db, fetcher, glassnode):
        """Neither source yields data."""
        glassnode.fail_with("BTC", ProviderUnavailableError("glassnode", "down"))

        with pytest.raises(InsufficientDataError) as exc_info:
            fetcher.fetch_prices(db, "bitcoin", START, AS_OF)

        assert exc_info.value.asset == "bitcoin"

    def test_volume_properties(self, db, fetcher, glassnode):
        """has_volume reflects the points."""
        glassnode.add_prices("bitcoin", make_price_series(10, volume=5e8))

        result = fetcher.fetch_prices(db, "bitcoin", AS_OF.replace(day=21), AS_OF, include_volume=True)

        assert result.has_volume is True


class TestFetchMetric:
    """Tests for on-chain metric fetching."""

    def test_live_metric(self, fetcher, glassnode):
        """Metric points are returned with their source."""
        glassnode.add_metric(AVIV_METRIC, make_flat_series(7, 1.2))

        result = fetcher.fetch_metric("BTC", AVIV_METRIC, START, AS_OF)

        assert result.data_source == "glassnode"
        assert result.points[-1].value == 1.2

    def test_empty_metric(self, fetcher):
        """No points is insufficient data."""
        with pytest.raises(InsufficientDataError, match="returned no data"):
            fetcher.fetch_metric("BTC", AVIV_METRIC, START, AS_OF)

    def test_metric_error(self, fetcher, glassnode):
        """Provider errors are wrapped."""
        glassnode.fail_with(AVIV_METRIC, ProviderUnavailableError("glassnode", "down"))

        with pytest.raises(InsufficientDataError, match="unavailable"):
            fetcher.fetch_metric("BTC", AVIV_METRIC, START, AS_OF)


class TestFetchMacro:
    """Tests for FRED series fetching."""

    def test_live_series(self, fetcher, fred):
        """Macro points are tagged with the FRED source."""
        fred.add_series("SP500", make_flat_series(30, 5000.0))

        result = fetcher.fetch_macro("SP500", START, AS_OF)

        assert result.data_source == "fred"
        assert len(result.points) == 30

    def test_unknown_series(self, fetcher):
        """SeriesNotFoundError becomes InsufficientDataError."""
        with pytest.raises(InsufficientDataError):
            fetcher.fetch_macro("NOPE", START, AS_OF)

    def test_empty_series(self, fetcher, fred):
        """An empty window is insufficient data."""
        fred.add_series("SP500", [])

        with pytest.raises(InsufficientDataError, match="returned no data"):
            fetcher.fetch_macro("SP500", START, AS_OF)

    def test_rates_delegate_to_fred(self, fetcher, fred):
        """Risk-free rate and Fed change come straight from FRED."""
        fred.risk_free_rate = 0.043
        fred.fed_rate_change = -0.25

        assert fetcher.get_risk_free_rate(AS_OF) == 0.043
        assert fetcher.get_fed_rate_change(AS_OF) == -0.25
