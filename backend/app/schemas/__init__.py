# backend/app/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

This package contains all Pydantic schemas organized by domain:
- analysis: CAGR, beta, NPV, Monte Carlo, market conditions, full analysis
- errors: Error response formats

Usage:
    from app.schemas import CagrRequest, CagrResponse
    from app.schemas import AnalysisRequest, AnalysisResponse
    from app.schemas import ErrorDetail
"""

from app.schemas.analysis import (
    # Requests
    PeriodRequest,
    CagrRequest,
    BetaRequest,
    NpvRequest,
    MonteCarloRequest,
    AnalysisRequest,
    # Single-formula responses
    LiquidityResponse,
    CagrStepsResponse,
    CagrResponse,
    BetaResponse,
    DiscountRateResponse,
    YearlyCashFlowResponse,
    NpvResponse,
    MonteCarloResponse,
    MarketConditionsResponse,
    # Full analysis
    FinancialMetricsResponse,
    MetricsResponse,
    RecommendationResponse,
    CoinSummaryResponse,
    BenchmarkComparisonResponse,
    InvestmentInputsResponse,
    AnalysisResponse,
    AnalysisHistoryItem,
    AnalysisHistoryResponse,
)
from app.schemas.errors import ErrorDetail, ValidationErrorDetail

__all__ = [
    # Requests
    "PeriodRequest",
    "CagrRequest",
    "BetaRequest",
    "NpvRequest",
    "MonteCarloRequest",
    "AnalysisRequest",

    # Single-formula responses
    "LiquidityResponse",
    "CagrStepsResponse",
    "CagrResponse",
    "BetaResponse",
    "DiscountRateResponse",
    "YearlyCashFlowResponse",
    "NpvResponse",
    "MonteCarloResponse",
    "MarketConditionsResponse",

    # Full analysis
    "FinancialMetricsResponse",
    "MetricsResponse",
    "RecommendationResponse",
    "CoinSummaryResponse",
    "BenchmarkComparisonResponse",
    "InvestmentInputsResponse",
    "AnalysisResponse",
    "AnalysisHistoryItem",
    "AnalysisHistoryResponse",

    # Errors
    "ErrorDetail",
    "ValidationErrorDetail",
]
