# backend/app/middleware/__init__.py
"""
ASGI middleware for the Crypto Investment Analyzer.

- correlation: X-Correlation-ID propagation for request tracing
- rate_limit: slowapi limiter protecting upstream provider quotas
"""

from app.middleware.correlation import CorrelationIdMiddleware
from app.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_ANALYSIS,
    RATE_LIMIT_FULL_ANALYSIS,
    RATE_LIMIT_HEALTH,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_ANALYSIS",
    "RATE_LIMIT_FULL_ANALYSIS",
    "RATE_LIMIT_HEALTH",
]
