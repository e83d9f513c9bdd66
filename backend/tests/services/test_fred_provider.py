# tests/services/test_fred_provider.py
"""
Tests for FredProvider against a mocked HTTP transport.

Test Coverage:
- Observation parsing ("." placeholders dropped)
- Risk-free rate conversion and default fallback
- Fed funds rate change
- Configuration and payload errors
"""

from datetime import date

import httpx
import pytest

from app.services.circuit_breaker import CircuitBreaker
from app.services.constants import FED_FUNDS_SERIES, TREASURY_10Y_SERIES
from app.services.exceptions import MarketDataError, ProviderNotConfiguredError
from app.services.market_data.fred import FredProvider


def make_provider(handler, api_key="fred-key", default_risk_free_rate=0.045) -> FredProvider:
    provider = FredProvider(
        api_key=api_key,
        default_risk_free_rate=default_risk_free_rate,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        circuit_breaker=CircuitBreaker(name="fred", failure_threshold=10),
    )
    provider.RETRY_MIN_WAIT = 0
    provider.RETRY_MAX_WAIT = 0
    return provider


def observations(*pairs):
    return {"observations": [{"date": d, "value": v} for d, v in pairs]}


def respond(payload, status=200, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=payload)
    return handler


class TestGetSeries:
    """Tests for raw series access."""

    def test_request_shape(self):
        """series_id, bounds and JSON format are sent."""
        seen = []
        provider = make_provider(respond(observations(), seen=seen))

        provider.get_series("SP500", date(2024, 1, 1), date(2024, 3, 31))

        params = seen[0].url.params
        assert seen[0].url.path == "/fred/series/observations"
        assert params["series_id"] == "SP500"
        assert params["file_type"] == "json"
        assert params["observation_start"] == "2024-01-01"
        assert params["observation_end"] == "2024-03-31"
        assert params["api_key"] == "fred-key"

    def test_missing_values_dropped(self):
        """FRED's "." placeholder is not an observation."""
        payload = observations(("2024-01-01", "4750.5"), ("2024-01-02", "."), ("2024-01-03", "4790.0"))
        provider = make_provider(respond(payload))

        points = provider.get_series("SP500", date(2024, 1, 1), date(2024, 1, 3))

        assert [(p.date, p.value) for p in points] == [
            (date(2024, 1, 1), 4750.5),
            (date(2024, 1, 3), 4790.0),
        ]

    def test_unexpected_payload(self):
        """A body without an observations list is a MarketDataError."""
        provider = make_provider(respond({"error_message": "Bad Request"}))

        with pytest.raises(MarketDataError, match="Unexpected FRED payload"):
            provider.get_series("SP500", date(2024, 1, 1), date(2024, 1, 3))

    def test_not_configured(self):
        """Without an API key get_series raises before any request."""
        seen = []
        provider = make_provider(respond(observations(), seen=seen), api_key=None)

        with pytest.raises(ProviderNotConfiguredError):
            provider.get_series("SP500", date(2024, 1, 1), date(2024, 1, 3))
        assert seen == []


class TestRiskFreeRate:
    """Tests for the 10-year Treasury yield."""

    def test_percent_converted_to_decimal(self):
        """The latest DGS10 value, divided by 100."""
        seen = []
        payload = observations(("2024-06-27", "4.29"), ("2024-06-28", "4.36"))
        provider = make_provider(respond(payload, seen=seen))

        rate = provider.get_risk_free_rate(as_of=date(2024, 6, 30))

        assert rate == pytest.approx(0.0436)
        assert seen[0].url.params["series_id"] == TREASURY_10Y_SERIES

    def test_default_when_unavailable(self):
        """Provider errors fall back to the configured default."""
        provider = make_provider(respond({}, status=500), default_risk_free_rate=0.05)
        provider.MAX_RETRY_ATTEMPTS = 1

        assert provider.get_risk_free_rate(as_of=date(2024, 6, 30)) == 0.05

    def test_default_when_not_configured(self):
        """A missing key is not fatal for the risk-free rate."""
        provider = make_provider(respond(observations()), api_key=None)

        assert provider.get_risk_free_rate() == 0.045

    def test_default_when_empty(self):
        """No recent observations falls back to the default."""
        provider = make_provider(respond(observations(("2024-06-28", "."))))

        assert provider.get_risk_free_rate(as_of=date(2024, 6, 30)) == 0.045


class TestFedRateChange:
    """Tests for the federal funds rate trend."""

    def test_change_over_window(self):
        """Last minus first observation, in percentage points."""
        seen = []
        payload = observations(("2024-01-01", "5.33"), ("2024-03-01", "5.33"), ("2024-06-01", "5.08"))
        provider = make_provider(respond(payload, seen=seen))

        change = provider.get_fed_rate_change(as_of=date(2024, 6, 30))

        assert change == pytest.approx(-0.25)
        assert seen[0].url.params["series_id"] == FED_FUNDS_SERIES

    def test_single_observation_is_no_change(self):
        """Fewer than two points gives 0."""
        provider = make_provider(respond(observations(("2024-06-01", "5.33"))))

        assert provider.get_fed_rate_change(as_of=date(2024, 6, 30)) == 0.0

    def test_unavailable_is_no_change(self):
        """Provider errors give 0."""
        provider = make_provider(respond({}, status=404))

        assert provider.get_fed_rate_change(as_of=date(2024, 6, 30)) == 0.0
