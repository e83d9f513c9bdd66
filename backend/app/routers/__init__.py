# backend/app/routers/__init__.py
"""
API routers for the Crypto Investment Analyzer.

- analysis: CAGR, beta, NPV, Monte Carlo, market conditions, full analysis
"""

from app.routers.analysis import router as analysis_router

__all__ = [
    "analysis_router",
]
