# backend/app/routers/analysis.py
"""
Investment analysis endpoints.

Single-formula calculations:
- POST /analysis/cagr - Basic and volatility-adjusted CAGR
- POST /analysis/beta - Comprehensive beta against the selected benchmark
- POST /analysis/npv - CAPM discount rate, NPV and IRR
- POST /analysis/monte-carlo - Terminal value distribution

Market and full analysis:
- GET /analysis/market-conditions - Bitcoin market snapshot
- POST /analysis - Full pipeline, persisted
- GET /analysis/history/{coin_id} - Persisted analyses, newest first

Domain errors are not caught here; the global handlers in main.py map them
to the {error, message, details} envelope.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_analysis_service
from app.middleware.rate_limit import (
    limiter,
    RATE_LIMIT_ANALYSIS,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_FULL_ANALYSIS,
)
from app.schemas.analysis import (
    AnalysisHistoryItem,
    AnalysisHistoryResponse,
    AnalysisRequest,
    AnalysisResponse,
    BenchmarkComparisonResponse,
    BetaRequest,
    BetaResponse,
    CagrRequest,
    CagrResponse,
    CoinSummaryResponse,
    DiscountRateResponse,
    FinancialMetricsResponse,
    InvestmentInputsResponse,
    LiquidityResponse,
    MarketConditionsResponse,
    MetricsResponse,
    MonteCarloRequest,
    MonteCarloResponse,
    NpvRequest,
    NpvResponse,
    RecommendationResponse,
    YearlyCashFlowResponse,
)
from app.services.analysis import AnalysisService
from app.services.analysis.types import AnalysisResult, InvestmentInputs, NpvAnalysis
from app.services.constants import DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT
from app.utils.context import bind_analysis_context

logger = logging.getLogger(__name__)

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/analysis",
    tags=["Analysis"],
)


# =============================================================================
# MAPPER FUNCTIONS (Internal Types -> Pydantic Schemas)
# =============================================================================

def _map_npv(analysis: NpvAnalysis) -> NpvResponse:
    """Flatten NpvAnalysis into the response schema."""
    valuation = analysis.valuation
    return NpvResponse(
        asset=analysis.asset,
        investment=valuation.investment,
        years=valuation.years,
        cagr=valuation.cagr,
        discount_rate=valuation.discount_rate,
        terminal_value=valuation.terminal_value,
        npv=valuation.npv,
        irr=valuation.irr,
        beta=analysis.beta,
        beta_source=analysis.beta_source,
        benchmark=analysis.benchmark,
        liquidity=LiquidityResponse.model_validate(analysis.liquidity),
        discount=DiscountRateResponse.model_validate(analysis.discount),
        breakdown=[YearlyCashFlowResponse.model_validate(row) for row in valuation.breakdown],
        confidence_score=analysis.confidence_score,
        data_source=analysis.data_source,
        warnings=analysis.warnings,
    )


def _map_metrics(result: AnalysisResult) -> MetricsResponse:
    """Map RealMetrics / FallbackMetrics to the tagged schema."""
    tagged = result.metrics
    return MetricsResponse(
        kind=tagged.kind,
        confidence=tagged.confidence,
        metrics=FinancialMetricsResponse.model_validate(tagged.metrics),
        sources=getattr(tagged, "sources", None),
        reason=getattr(tagged, "reason", None),
    )


def _map_analysis(result: AnalysisResult) -> AnalysisResponse:
    """Map the AnalysisResult aggregate to the response schema."""
    return AnalysisResponse(
        id=result.id,
        created_at=result.created_at,
        coin=CoinSummaryResponse.model_validate(result.coin),
        inputs=InvestmentInputsResponse.model_validate(result.inputs),
        metrics=_map_metrics(result),
        market_conditions=MarketConditionsResponse.model_validate(result.market_conditions),
        recommendation=RecommendationResponse.model_validate(result.recommendation),
        benchmark_comparison=BenchmarkComparisonResponse.model_validate(result.benchmark_comparison),
        monte_carlo=MonteCarloResponse.model_validate(result.monte_carlo),
        cagr=CagrResponse.model_validate(result.cagr) if result.cagr else None,
        beta=BetaResponse.model_validate(result.beta) if result.beta else None,
        data_source=result.data_source,
        is_fallback=result.is_fallback,
        warnings=result.warnings,
    )


# =============================================================================
# SINGLE-FORMULA ENDPOINTS
# =============================================================================

@router.post(
    "/cagr",
    response_model=CagrResponse,
    summary="Calculate CAGR",
    response_description="Basic and volatility-adjusted CAGR with data quality"
)
@limiter.limit(RATE_LIMIT_ANALYSIS)
def calculate_cagr(
        request: Request,  # Required for rate limiting
        body: CagrRequest,
        db: Session = Depends(get_db),
        service: AnalysisService = Depends(get_analysis_service),
) -> CagrResponse:
    """
    Compound annual growth rate of an asset over a period.

    Prices come from Glassnode, falling back to stored history. CAGR values
    are percentages.

    Raises **422** with INSUFFICIENT_DATA when fewer than 90 days, more
    than 3 consecutive missing days, or less than 95% completeness.
    """
    bind_analysis_context(asset=body.asset, start_date=body.start_date, end_date=body.end_date)
    result = service.get_cagr(db, body.asset, body.start_date, body.end_date)
    return CagrResponse.model_validate(result)


@router.post(
    "/beta",
    response_model=BetaResponse,
    summary="Calculate beta",
    response_description="Beta against S&P 500 (for BTC) or BTC (for altcoins)"
)
@limiter.limit(RATE_LIMIT_ANALYSIS)
def calculate_beta(
        request: Request,  # Required for rate limiting
        body: BetaRequest,
        db: Session = Depends(get_db),
        service: AnalysisService = Depends(get_analysis_service),
) -> BetaResponse:
    """
    Beta of an asset's daily log returns against its benchmark.

    With fewer than 180 aligned points a sector-based provisional estimate
    is returned (`provisional_estimate: true`).
    """
    bind_analysis_context(asset=body.asset, start_date=body.start_date, end_date=body.end_date)
    result = service.get_beta(
        db, body.asset, body.start_date, body.end_date, comprehensive=body.comprehensive
    )
    return BetaResponse.model_validate(result)


@router.post(
    "/npv",
    response_model=NpvResponse,
    summary="Calculate NPV and IRR",
    response_description="Valuation with discount rate breakdown"
)
@limiter.limit(RATE_LIMIT_ANALYSIS)
def calculate_npv(
        request: Request,  # Required for rate limiting
        body: NpvRequest,
        db: Session = Depends(get_db),
        service: AnalysisService = Depends(get_analysis_service),
) -> NpvResponse:
    """
    Net present value of holding an asset for `years`.

    Growth is the volatility-adjusted 3-year CAGR; the discount rate is
    rf + beta x (mr - rf) + liquidity premium.
    """
    bind_analysis_context(asset=body.asset)
    result = service.get_npv(
        db, body.asset, body.amount, body.years, advanced_beta=body.advanced_beta
    )
    return _map_npv(result)


@router.post(
    "/monte-carlo",
    response_model=MonteCarloResponse,
    summary="Run Monte Carlo projection",
    response_description="Distribution of simulated terminal values"
)
@limiter.limit(RATE_LIMIT_ANALYSIS)
def run_monte_carlo(
        request: Request,  # Required for rate limiting
        body: MonteCarloRequest,
        db: Session = Depends(get_db),
        service: AnalysisService = Depends(get_analysis_service),
) -> MonteCarloResponse:
    """
    Simulate monthly compounding paths from historical daily returns.

    With fewer than 30 prices a fixed-multiple projection is returned
    (`is_fallback: true`).
    """
    bind_analysis_context(asset=body.asset, start_date=body.start_date, end_date=body.end_date)
    result = service.run_monte_carlo(
        db,
        body.asset,
        body.investment,
        body.horizon_months,
        start=body.start_date,
        end=body.end_date,
    )
    return MonteCarloResponse.model_validate(result)


# =============================================================================
# MARKET CONDITIONS
# =============================================================================

@router.get(
    "/market-conditions",
    response_model=MarketConditionsResponse,
    summary="Get bitcoin market conditions",
    response_description="AVIV zone, market state and supply dynamics"
)
@limiter.limit(RATE_LIMIT_ANALYSIS)
def get_market_conditions(
        request: Request,  # Required for rate limiting
        db: Session = Depends(get_db),
        service: AnalysisService = Depends(get_analysis_service),
) -> MarketConditionsResponse:
    """
    Current bitcoin market snapshot.

    The AVIV reading is cached for 15 minutes.
    """
    return MarketConditionsResponse.model_validate(service.get_market_conditions(db))


# =============================================================================
# FULL ANALYSIS
# =============================================================================

@router.post(
    "",
    response_model=AnalysisResponse,
    summary="Run full investment analysis",
    response_description="Metrics, market conditions and recommendation"
)
@limiter.limit(RATE_LIMIT_FULL_ANALYSIS)
def analyze(
        request: Request,  # Required for rate limiting
        body: AnalysisRequest,
        db: Session = Depends(get_db),
        service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisResponse:
    """
    Run the full analysis pipeline for a coin and persist the result.

    When no usable price history exists the coin's static attributes are
    used (`metrics.kind: "fallback"`, confidence low).

    Raises **404** if the coin is not in the coins table.
    """
    bind_analysis_context(asset=body.coin_id)
    inputs = InvestmentInputs(
        coin_id=body.coin_id,
        investment_amount=body.investment_amount,
        total_portfolio=body.total_portfolio,
        investment_horizon_years=body.investment_horizon_years,
        basket=body.basket,
        expected_price=body.expected_price,
        staking_yield=body.staking_yield,
    )
    result = service.analyze(db, inputs)
    return _map_analysis(result)


@router.get(
    "/history/{coin_id}",
    response_model=AnalysisHistoryResponse,
    summary="List persisted analyses",
    response_description="Most recent analyses for the coin"
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_analysis_history(
        request: Request,  # Required for rate limiting
        coin_id: str,
        limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
        db: Session = Depends(get_db),
        service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisHistoryResponse:
    """Most recent persisted analyses for a coin, newest first."""
    rows = service.get_history(db, coin_id, limit=limit)
    return AnalysisHistoryResponse(
        coin_id=coin_id.strip().lower(),
        count=len(rows),
        items=[AnalysisHistoryItem.model_validate(row) for row in rows],
    )
