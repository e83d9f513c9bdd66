# backend/app/utils/context.py
"""
Request-scoped context for log correlation.

Two values travel with each request:
- correlation_id: set by CorrelationIdMiddleware from the request headers
- analysis context: key/value pairs describing the analysis in progress
  (asset, date range), bound by the analysis router

Both are held in contextvars so they follow the request through
async/await calls and thread-pool offloading.

Usage:
    from app.utils.context import bind_analysis_context, get_correlation_id

    bind_analysis_context(asset="BTC")
    get_correlation_id()  # "abc-123"
"""

from contextvars import ContextVar
from typing import Any

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_analysis_context_var: ContextVar[dict[str, Any] | None] = ContextVar("analysis_context", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """Return the current request's correlation ID, or None outside a request."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


# =============================================================================
# ANALYSIS CONTEXT
# =============================================================================

def get_analysis_context() -> dict[str, Any]:
    """
    Return a copy of the analysis context for the current request.

    Returns:
        Dictionary such as {"asset": "BTC", "start_date": "2022-01-01"};
        empty when nothing has been bound.
    """
    return dict(_analysis_context_var.get() or {})


def bind_analysis_context(**values: Any) -> None:
    """
    Merge values into the analysis context.

    None values are ignored so callers can pass optional fields directly.
    """
    current = get_analysis_context()
    current.update({k: v for k, v in values.items() if v is not None})
    _analysis_context_var.set(current)


def clear_analysis_context() -> None:
    _analysis_context_var.set(None)
