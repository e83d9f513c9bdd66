# backend/app/middleware/rate_limit.py
"""
Rate limiting for the analysis API, using slowapi.

Analysis endpoints fan out to Glassnode and FRED, whose quotas are small,
so calculation routes carry a tighter limit than health checks.

Key by: client IP (forwarded headers are honoured only from trusted proxies)
Storage: in-memory

Usage:
    from app.middleware.rate_limit import limiter, RATE_LIMIT_ANALYSIS

    @router.post("/cagr")
    @limiter.limit(RATE_LIMIT_ANALYSIS)
    def calculate_cagr(request: Request, ...):
        ...
"""

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.config import settings
from app.services.constants import (
    API_ERROR_CODE,
    RATE_LIMIT_ANALYSIS,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_FULL_ANALYSIS,
    RATE_LIMIT_HEALTH,
    RATE_LIMIT_RETRY_AFTER_SECONDS,
)

logger = logging.getLogger(__name__)


def _is_trusted_proxy(request: Request) -> bool:
    """True when forwarded headers on this request may be believed."""
    if settings.trust_proxy_headers:
        return True
    return get_remote_address(request) in settings.trusted_proxy_ips


def _get_client_ip(request: Request) -> str:
    """
    Extract the client IP used as the rate limit key.

    X-Forwarded-For / X-Real-IP are only read when the immediate peer is a
    trusted proxy, otherwise a client could pick its own bucket.
    """
    if _is_trusted_proxy(request):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_client_ip,
    default_limits=[RATE_LIMIT_DEFAULT],
)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """
    Return a 429 in the standard error envelope with a Retry-After header.
    """
    limit_info = str(exc.detail) if exc.detail else "Rate limit exceeded"
    logger.warning(f"Rate limit exceeded for {_get_client_ip(request)}: {limit_info}")

    return JSONResponse(
        status_code=429,
        content={
            "error": API_ERROR_CODE,
            "message": f"Too many requests. {limit_info}",
            "details": {"retry_after": RATE_LIMIT_RETRY_AFTER_SECONDS},
        },
        headers={"Retry-After": str(RATE_LIMIT_RETRY_AFTER_SECONDS)},
    )


__all__ = [
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_ANALYSIS",
    "RATE_LIMIT_FULL_ANALYSIS",
    "RATE_LIMIT_HEALTH",
]
