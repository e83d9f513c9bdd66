# backend/app/services/analysis/__init__.py
"""
Investment analysis package.

Pure calculation modules plus the orchestrating AnalysisService:
- primitives.py: returns, moments, rolling volatility
- cagr.py: basic and volatility-adjusted CAGR, liquidity, confidence
- beta.py: basic and comprehensive beta, benchmark blend
- valuation.py: CAPM discount rate, NPV / IRR, Sharpe, ROI
- monte_carlo.py: terminal value projection
- market.py: bitcoin market state and AVIV zones
- recommendation.py: rule-based recommendation
- service.py: fetch, calculate, persist
"""

from app.services.analysis.service import AnalysisService, ResolvedAsset, validate_inputs
from app.services.analysis.types import (
    Action,
    AnalysisResult,
    AvivZone,
    Benchmark,
    BetaResult,
    BitcoinState,
    CagrResult,
    ComprehensiveBetaResult,
    Confidence,
    FallbackMetrics,
    FinancialMetrics,
    InvestmentInputs,
    LiquidityStatus,
    MarketConditions,
    MonteCarloResult,
    NpvAnalysis,
    RealMetrics,
    Recommendation,
)

__all__ = [
    "AnalysisService",
    "ResolvedAsset",
    "validate_inputs",
    # Enums
    "Action",
    "AvivZone",
    "Benchmark",
    "BitcoinState",
    "Confidence",
    "LiquidityStatus",
    # Results
    "AnalysisResult",
    "BetaResult",
    "CagrResult",
    "ComprehensiveBetaResult",
    "FallbackMetrics",
    "FinancialMetrics",
    "InvestmentInputs",
    "MarketConditions",
    "MonteCarloResult",
    "NpvAnalysis",
    "RealMetrics",
    "Recommendation",
]
