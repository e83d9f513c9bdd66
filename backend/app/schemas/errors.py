# backend/app/schemas/errors.py
"""
Pydantic schemas for error responses.

Every error leaves the API as {error, message, details}. `error` is one of
the wire codes INSUFFICIENT_DATA, DEAD_ASSET, API_ERROR, VALIDATION_ERROR,
NOT_FOUND or CALCULATION_FAILED. Used by the global exception handlers in
main.py.
"""

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """
    Standard error response format.

    For calculation failures `details` carries the asset and the requested
    period: {"asset": "BTC", "start_date": "2021-01-01", "end_date": "..."}.
    """

    error: str = Field(
        ...,
        description="Error code (e.g., 'INSUFFICIENT_DATA')"
    )
    message: str = Field(
        ...,
        description="Human-readable error message"
    )
    details: dict | None = Field(
        default=None,
        description="Additional error context (optional)"
    )


class ValidationErrorDetail(BaseModel):
    """
    Validation error response format.

    Used for Pydantic request validation errors (422 responses).
    """

    error: str = Field(default="VALIDATION_ERROR")
    message: str = Field(default="Request validation failed")
    details: list[dict] = Field(
        ...,
        description="List of validation errors"
    )
