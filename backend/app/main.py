# backend/app/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.routers import analysis_router
from app.schemas.errors import ErrorDetail, ValidationErrorDetail
from app.services.constants import API_ERROR_CODE, VALIDATION_ERROR_CODE
from app.services.exceptions import (
    ServiceError,
    AnalysisError,
    NotFoundError,
    ValidationError,
    MarketDataError,
    RateLimitError,
    CircuitBreakerOpen,
)
from app.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()

# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Crypto investment analysis API: CAGR, beta, NPV, Monte Carlo and recommendations",
    version="0.1.0",
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================
# Must be added before other middleware
# Origins are configured via CORS_ORIGINS environment variable

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

from slowapi.errors import RateLimitExceeded
from app.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_HEALTH,
)

# Attach limiter to app state (required by slowapi)
app.state.limiter = limiter

# Add rate limiting middleware
app.add_middleware(SlowAPIMiddleware)

# Add correlation ID tracking for request tracing
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# These handlers convert service-layer exceptions into the
# {error, message, details} envelope. Starlette picks the handler of the
# most specific class in the exception's MRO, so subclasses registered
# here take precedence over ServiceError.
# =============================================================================

# Rate limit exceeded handler (from slowapi)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError) -> JSONResponse:
    """Handle insufficient data and dead asset errors (422)."""
    logger.warning(f"Analysis failed ({exc.code}): {exc}")
    return JSONResponse(
        status_code=422,
        content=ErrorDetail(
            error=exc.code,
            message=str(exc),
            details=exc.to_details(),
        ).model_dump(),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle unknown coin errors (404)."""
    logger.warning(f"Not found: {exc.resource_type} {exc.resource_id}")
    return JSONResponse(
        status_code=404,
        content=ErrorDetail(
            error=exc.code,
            message=str(exc),
            details={"resource_type": exc.resource_type, "resource_id": exc.resource_id},
        ).model_dump(),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content=ErrorDetail(
            error=exc.code,
            message=str(exc),
            details={"field": exc.field} if exc.field else None,
        ).model_dump(),
    )


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Handle upstream rate limit exceeded (429)."""
    logger.warning(f"Upstream rate limit exceeded: {exc}")
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
    return JSONResponse(
        status_code=429,
        content=ErrorDetail(
            error=exc.code,
            message=str(exc),
            details={"provider": exc.provider, "retry_after": exc.retry_after},
        ).model_dump(),
        headers=headers,
    )


@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError) -> JSONResponse:
    """Handle upstream provider failures (502)."""
    logger.error(f"Market data error: {exc}")
    return JSONResponse(
        status_code=502,
        content=ErrorDetail(
            error=exc.code,
            message=str(exc),
            details={"provider": exc.provider} if exc.provider else None,
        ).model_dump(),
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1  # Round up
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error=API_ERROR_CODE,
            message=f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
            details={
                "breaker_name": exc.breaker_name,
                "retry_after": retry_after,
            },
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle any other service error (500)."""
    logger.error(f"Service error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error=exc.code,
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle all HTTPExceptions with consistent error format.

    Converts FastAPI's default {"detail": "..."} format to our standard
    ErrorDetail format for API consistency.
    """
    error_types = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        422: VALIDATION_ERROR_CODE,
        429: "RATE_LIMITED",
        500: "INTERNAL_SERVER_ERROR",
        503: "SERVICE_UNAVAILABLE",
    }
    error_type = error_types.get(exc.status_code, "HTTP_ERROR")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_type,
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors with consistent format.

    Converts the default 422 validation error to our ValidationErrorDetail format.
    """
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error=VALIDATION_ERROR_CODE,
            message="Request validation failed",
            details=errors,
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(analysis_router)  # /analysis/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    """
    API root - returns basic application info.
    """
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Comprehensive health check endpoint.

    Returns HTTP 503 if the database is unhealthy. Returns HTTP 200 with
    degraded status if an upstream provider's circuit breaker is open;
    analyses still run on stored history in that case.

    **Response Status Codes:**
    - 200: All systems healthy, or providers degraded
    - 503: Database unhealthy - do not route traffic here
    """
    from app.dependencies import get_fred_provider, get_glassnode_provider

    checks = {}
    critical_healthy = True
    overall_status = "healthy"

    # Check 1: Database (CRITICAL)
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {
            "status": "healthy",
            "critical": True,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {
            "status": "unhealthy",
            "critical": True,
            "error": str(e),
        }
        critical_healthy = False
        overall_status = "unhealthy"

    # Check 2: Upstream providers (circuit breaker state) - NON-CRITICAL
    for name, get_provider in (("glassnode", get_glassnode_provider), ("fred", get_fred_provider)):
        try:
            provider = get_provider()
            breaker = provider.circuit_breaker
            snapshot = breaker.snapshot()

            checks[name] = {
                "status": "unhealthy" if breaker.is_open else "healthy",
                "critical": False,
                "configured": provider.is_configured,
                "circuit_breaker": snapshot,
            }
            if breaker.is_open and overall_status == "healthy":
                overall_status = "degraded"
        except Exception as e:
            logger.warning(f"{name} health check failed: {e}")
            checks[name] = {
                "status": "unknown",
                "critical": False,
                "error": str(e),
            }

    response_data = {
        "status": overall_status,
        "checks": checks,
    }

    if not critical_healthy:
        return JSONResponse(
            status_code=503,
            content=response_data,
        )

    return response_data


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """
    Kubernetes liveness probe endpoint.

    Returns HTTP 200 if the application is running.

    **Note:** This does NOT check dependencies - use /health/ready for that.
    """
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """
    Kubernetes readiness probe endpoint.

    Returns HTTP 200 if the application is ready to serve traffic.
    Returns HTTP 503 if the database is unavailable.
    """
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "error": "Database unavailable",
            },
        )
