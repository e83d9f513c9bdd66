# backend/app/utils/__init__.py
"""
Cross-cutting utilities for the Crypto Investment Analyzer.

- logging: Root logger setup with correlation ID and analysis context
- context: contextvars holding request-scoped values

Usage:
    from app.utils import setup_logging
    from app.utils import bind_analysis_context, get_correlation_id
"""

from app.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    get_analysis_context,
    bind_analysis_context,
    clear_analysis_context,
)
from app.utils.logging import setup_logging, get_log_level

__all__ = [
    # Logging
    "setup_logging",
    "get_log_level",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "get_analysis_context",
    "bind_analysis_context",
    "clear_analysis_context",
]
