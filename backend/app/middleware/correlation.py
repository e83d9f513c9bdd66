# backend/app/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

For each request the middleware:
1. Reads X-Correlation-ID, then X-Request-ID, else generates a UUID4
2. Stores it in the request context so every log line carries it
3. Echoes it back in the X-Correlation-ID response header
4. Clears the correlation ID and any bound analysis context afterwards

Usage:
    app.add_middleware(CorrelationIdMiddleware)
"""

import logging
import uuid
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.utils.context import (
    clear_analysis_context,
    clear_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to every request and response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = self._get_correlation_id(request)
        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()
            clear_analysis_context()

    @staticmethod
    def _get_correlation_id(request: Request) -> str:
        """Header value in order of precedence, or a fresh UUID4."""
        for header in (CORRELATION_ID_HEADER, REQUEST_ID_HEADER):
            value = request.headers.get(header)
            if value:
                return value
        return str(uuid.uuid4())
