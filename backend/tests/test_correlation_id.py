# tests/test_correlation_id.py
"""
Tests for request context: correlation IDs, analysis context and the
logging filter/formatter that put both on every record.
"""

import json
import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import clear_service_caches
from app.main import app
from app.middleware.rate_limit import limiter
from app.utils.context import (
    bind_analysis_context,
    clear_analysis_context,
    clear_correlation_id,
    get_analysis_context,
    get_correlation_id,
    set_correlation_id,
)
from app.utils.logging import (
    NO_CORRELATION_ID,
    JsonFormatter,
    RequestContextFilter,
    get_log_level,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_correlation_id()
    clear_analysis_context()
    yield
    clear_correlation_id()
    clear_analysis_context()


def make_record(message: str = "NPV calculated") -> logging.LogRecord:
    return logging.LogRecord(
        name="app.services.analysis.service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestCorrelationIdContext:
    """Tests for correlation ID context functions."""

    def test_get_returns_none_when_not_set(self):
        """Should return None when correlation ID is not set."""
        assert get_correlation_id() is None

    def test_set_and_get_correlation_id(self):
        """Should set and retrieve correlation ID."""
        set_correlation_id("test-correlation-123")
        assert get_correlation_id() == "test-correlation-123"

    def test_clear_correlation_id(self):
        """Should clear correlation ID."""
        set_correlation_id("test-correlation-456")
        clear_correlation_id()
        assert get_correlation_id() is None


class TestAnalysisContext:
    """Tests for the bound analysis context."""

    def test_bind_merges_values(self):
        """Successive binds accumulate."""
        bind_analysis_context(asset="BTC")
        bind_analysis_context(start_date="2024-01-01")

        assert get_analysis_context() == {"asset": "BTC", "start_date": "2024-01-01"}

    def test_none_values_ignored(self):
        """Optional fields can be passed straight through."""
        bind_analysis_context(asset="ETH", start_date=None)

        assert get_analysis_context() == {"asset": "ETH"}

    def test_returns_copy(self):
        """Mutating the returned dict does not change the context."""
        bind_analysis_context(asset="BTC")
        get_analysis_context()["asset"] = "SOL"

        assert get_analysis_context() == {"asset": "BTC"}

    def test_clear(self):
        """Cleared context is empty."""
        bind_analysis_context(asset="BTC")
        clear_analysis_context()

        assert get_analysis_context() == {}


class TestLoggingContext:
    """Tests for the context filter and JSON formatter."""

    def test_filter_adds_placeholder_outside_requests(self):
        """Records outside a request get the placeholder ID."""
        record = make_record()

        assert RequestContextFilter().filter(record) is True
        assert record.correlation_id == NO_CORRELATION_ID
        assert record.analysis == {}

    def test_filter_adds_request_context(self):
        """Correlation ID and analysis context are attached."""
        set_correlation_id("abc-123")
        bind_analysis_context(asset="BTC")
        record = make_record()

        RequestContextFilter().filter(record)

        assert record.correlation_id == "abc-123"
        assert record.analysis == {"asset": "BTC"}

    def test_json_formatter(self):
        """JSON output carries level, logger, correlation ID and analysis."""
        set_correlation_id("abc-123")
        bind_analysis_context(asset="BTC")
        record = make_record()
        RequestContextFilter().filter(record)

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "app.services.analysis.service"
        assert entry["correlation_id"] == "abc-123"
        assert entry["message"] == "NPV calculated"
        assert entry["analysis"] == {"asset": "BTC"}

    def test_get_log_level(self):
        """Level names are case-insensitive; unknown names raise."""
        assert get_log_level("warn") == logging.WARNING
        with pytest.raises(ValueError, match="Invalid log level"):
            get_log_level("LOUD")


class TestCorrelationIdMiddleware:
    """Tests for correlation ID middleware."""

    @pytest.fixture
    def client(self, db: Session):
        """Create test client with database override."""
        def override_get_db():
            try:
                yield db
            finally:
                pass

        app.dependency_overrides[get_db] = override_get_db
        limiter.reset()

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
        clear_service_caches()

    def test_generates_correlation_id_when_not_provided(self, client):
        """Should generate a UUID when no ID is provided."""
        response = client.get("/health/live")

        assert response.status_code == 200
        correlation_id = response.headers["X-Correlation-ID"]
        assert len(correlation_id) == 36
        assert correlation_id.count("-") == 4

    def test_uses_provided_correlation_id(self, client):
        """Should use correlation ID from request header."""
        response = client.get("/health/live", headers={"X-Correlation-ID": "my-trace-123"})

        assert response.headers["X-Correlation-ID"] == "my-trace-123"

    def test_uses_request_id_header_as_fallback(self, client):
        """Should use X-Request-ID header if X-Correlation-ID not provided."""
        response = client.get("/health/live", headers={"X-Request-ID": "my-request-id-456"})

        assert response.headers["X-Correlation-ID"] == "my-request-id-456"

    def test_prefers_correlation_id_over_request_id(self, client):
        """Should prefer X-Correlation-ID over X-Request-ID."""
        response = client.get(
            "/health/live",
            headers={"X-Correlation-ID": "correlation-123", "X-Request-ID": "request-456"},
        )

        assert response.headers["X-Correlation-ID"] == "correlation-123"

    def test_different_requests_get_different_ids(self, client):
        """Different requests should get different correlation IDs."""
        id1 = client.get("/health/live").headers["X-Correlation-ID"]
        id2 = client.get("/health/live").headers["X-Correlation-ID"]

        assert id1 != id2

    def test_health_reports_providers(self, client):
        """/health lists the database and both provider breakers."""
        response = client.get("/health")

        assert response.status_code == 200
        checks = response.json()["checks"]
        assert checks["database"]["status"] == "healthy"
        assert checks["glassnode"]["circuit_breaker"]["name"] == "glassnode"
        assert checks["fred"]["critical"] is False
