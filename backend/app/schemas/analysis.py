# backend/app/schemas/analysis.py
"""
Pydantic schemas for the Analysis API.

These schemas define the request/response formats for:
- Single-formula calculations (CAGR, beta, NPV, Monte Carlo)
- Bitcoin market conditions
- Full investment analysis and its persisted history

Design decisions:
- CAGR results keep the percentage convention of the calculation
  (basic_cagr = 58.74 means 58.74%); every other rate is a decimal
- Request shape and ranges are validated here, so service-level
  ValidationError only fires for programmatic callers
- Responses are built from the service dataclasses via from_attributes
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models import Basket, MetricsKind
from app.services.analysis.types import (
    Action,
    AvivZone,
    Benchmark,
    BitcoinState,
    Confidence,
    LiquidityStatus,
)
from app.services.constants import MAX_HORIZON_MONTHS, MAX_HORIZON_YEARS


# =============================================================================
# REQUESTS
# =============================================================================

class PeriodRequest(BaseModel):
    """Asset and date range shared by the CAGR and beta endpoints."""

    asset: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Coin id or symbol (e.g., 'bitcoin' or 'BTC')",
        examples=["BTC"],
    )
    start_date: date = Field(..., description="First day of the period (inclusive)")
    end_date: date = Field(..., description="Last day of the period (inclusive)")

    @field_validator("asset")
    @classmethod
    def normalize_asset(cls, v: str) -> str:
        """Trim whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("asset must not be blank")
        return v

    @model_validator(mode="after")
    def validate_period(self) -> "PeriodRequest":
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self


class CagrRequest(PeriodRequest):
    """Request body for POST /analysis/cagr."""


class BetaRequest(PeriodRequest):
    """Request body for POST /analysis/beta."""

    comprehensive: bool = Field(
        True,
        description="Adaptive window and liquidity adjustment; False for the basic estimator"
    )


class NpvRequest(BaseModel):
    """Request body for POST /analysis/npv."""

    asset: str = Field(..., min_length=1, max_length=50, examples=["BTC"])
    amount: float = Field(..., gt=0, description="Amount invested today in USD")
    years: float = Field(
        ...,
        gt=0,
        le=MAX_HORIZON_YEARS,
        description="Holding period in years (fractional allowed)"
    )
    advanced_beta: float | None = Field(
        None,
        gt=0,
        description="Externally computed beta; replaces the basic estimate"
    )

    @field_validator("asset")
    @classmethod
    def normalize_asset(cls, v: str) -> str:
        return v.strip()


class MonteCarloRequest(BaseModel):
    """
    Request body for POST /analysis/monte-carlo.

    Without dates the last three years of history are used.
    """

    asset: str = Field(..., min_length=1, max_length=50, examples=["BTC"])
    investment: float = Field(..., gt=0, description="Initial investment in USD")
    horizon_months: int = Field(
        ...,
        ge=1,
        le=MAX_HORIZON_MONTHS,
        description="Number of monthly compounding steps"
    )
    start_date: date | None = Field(None, description="Start of the return history")
    end_date: date | None = Field(None, description="End of the return history")

    @field_validator("asset")
    @classmethod
    def normalize_asset(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def validate_period(self) -> "MonteCarloRequest":
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self


class AnalysisRequest(BaseModel):
    """Request body for POST /analysis (full pipeline)."""

    coin_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Coin id from the coins table",
        examples=["bitcoin"],
    )
    investment_amount: float = Field(..., gt=0, description="Amount to invest in USD")
    total_portfolio: float = Field(..., gt=0, description="Total portfolio value in USD")
    investment_horizon_years: float = Field(
        ...,
        gt=0,
        le=MAX_HORIZON_YEARS,
        description="Holding period in years"
    )
    basket: Basket | None = Field(
        None,
        description="Allocation basket; defaults to the coin's own basket"
    )
    expected_price: float | None = Field(
        None,
        gt=0,
        description="Optional price target used for ROI"
    )
    staking_yield: float | None = Field(
        None,
        ge=0,
        le=1,
        description="Optional annual staking yield as a decimal (0.04 = 4%)"
    )

    @field_validator("coin_id")
    @classmethod
    def normalize_coin_id(cls, v: str) -> str:
        """Trim whitespace and lowercase."""
        return v.strip().lower()


# =============================================================================
# CAGR
# =============================================================================

class LiquidityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: LiquidityStatus
    premium: float = Field(..., description="Liquidity premium added to the discount rate")
    median_volume: float | None = Field(None, description="Median of the last 30 daily volumes (USD)")


class CagrStepsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    growth_ratio: float = Field(..., description="end_price / start_price")
    exponent: float = Field(..., description="1 / years")
    base: float = Field(..., description="growth_ratio ** exponent")


class CagrResponse(BaseModel):
    """
    CAGR calculation result.

    basic_cagr and adjusted_cagr are percentages.
    """

    model_config = ConfigDict(from_attributes=True)

    asset: str
    start_date: date
    end_date: date
    basic_cagr: float = Field(..., description="Compound annual growth rate in percent")
    adjusted_cagr: float = Field(..., description="Volatility-adjusted CAGR in percent")
    start_price: float
    end_price: float
    days_held: int
    years: float
    volatility_90d: float = Field(..., description="Median rolling 90-day annualized volatility")
    adjustment_factor: float
    liquidity: LiquidityResponse
    data_points: int
    data_source: str = Field(..., description="glassnode or database")
    confidence: Confidence
    data_quality_score: float = Field(..., description="0-100")
    steps: CagrStepsResponse | None = None
    is_dead_asset: bool = False
    has_sufficient_data: bool = True
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# BETA
# =============================================================================

class BetaResponse(BaseModel):
    """Comprehensive beta result."""

    model_config = ConfigDict(from_attributes=True)

    asset: str
    benchmark: Benchmark
    beta: float = Field(..., description="Liquidity-adjusted beta, clamped to [0.1, 5]")
    raw_beta: float
    liquidity_adjustment: float
    confidence: Confidence
    methodology: str
    aligned_points: int
    lookback_days: int
    volatility_30d: float
    benchmark_variance: float
    data_quality: float = Field(..., description="0-1")
    provisional_estimate: bool = False
    liquidity_warning: bool = False
    volume_completeness_warning: bool = False
    data_source: str = ""
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# NPV
# =============================================================================

class DiscountRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    risk_free_rate: float
    beta: float
    market_return: float
    market_risk_premium: float
    beta_adjustment: float
    liquidity_premium: float
    discount_rate: float


class YearlyCashFlowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    year: int
    cash_flow: float
    future_value: float
    discount_factor: float
    present_value: float


class NpvResponse(BaseModel):
    """
    NPV / IRR of holding an asset.

    cagr, discount_rate and irr are decimals.
    """

    asset: str
    investment: float
    years: float
    cagr: float = Field(..., description="Volatility-adjusted CAGR used for growth (decimal)")
    discount_rate: float
    terminal_value: float
    npv: float
    irr: float
    beta: float
    beta_source: Literal["basic", "advanced"]
    benchmark: Benchmark
    liquidity: LiquidityResponse
    discount: DiscountRateResponse
    breakdown: list[YearlyCashFlowResponse]
    confidence_score: int = Field(..., description="40-95")
    data_source: str
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# MONTE CARLO
# =============================================================================

class MonteCarloResponse(BaseModel):
    """Distribution of simulated terminal values."""

    model_config = ConfigDict(from_attributes=True)

    investment: float
    horizon_months: int
    simulations: int
    expected_value: float
    median: float
    lower_bound: float = Field(..., description="5th percentile")
    upper_bound: float = Field(..., description="95th percentile")
    probability_of_loss: float
    value_at_risk: float
    mean_return: float = 0.0
    std_return: float = 0.0
    is_fallback: bool = Field(False, description="Fixed multiples; history was too short")


# =============================================================================
# MARKET CONDITIONS
# =============================================================================

class MarketConditionsResponse(BaseModel):
    """Bitcoin market snapshot."""

    model_config = ConfigDict(from_attributes=True)

    bitcoin_state: BitcoinState
    state_confidence: int
    aviv_ratio: float | None
    aviv_zone: AvivZone
    vaulted_supply: float | None
    active_supply: float | None
    smart_money_activity: bool
    fed_rate_change: float = Field(..., description="FEDFUNDS change over 90 days (percentage points)")
    mvrv_z_score: float | None = None
    price_drawdown: float | None = None
    realized_volatility: float | None = None
    data_source: str
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# FULL ANALYSIS
# =============================================================================

class FinancialMetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    npv: float
    irr: float
    cagr: float
    roi: float
    beta: float
    beta_confidence: Confidence
    standard_deviation: float
    sharpe_ratio: float
    risk_factor: int = Field(..., ge=1, le=5)
    risk_adjusted_npv: float
    data_quality: float
    discount_rate: float


class MetricsResponse(BaseModel):
    """Metrics tagged with how they were produced."""

    kind: MetricsKind
    confidence: Confidence
    metrics: FinancialMetricsResponse
    sources: dict[str, str] | None = Field(None, description="Series used (real metrics only)")
    reason: str | None = Field(None, description="Why static attributes were used (fallback only)")


class RecommendationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recommendation: Action
    worth_investing: bool
    good_timing: bool
    appropriate_amount: bool
    should_diversify: bool
    risk_factor: int
    confidence: int
    conditions: list[str]
    risks: list[str]


class CoinSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    symbol: str
    name: str
    basket: Basket
    price: float | None = None
    market_cap: float | None = None


class BenchmarkComparisonResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    benchmark: Benchmark
    market_return: float
    asset_cagr: float
    excess_return: float


class InvestmentInputsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    coin_id: str
    investment_amount: float
    total_portfolio: float
    investment_horizon_years: float
    basket: Basket | None = None
    expected_price: float | None = None
    staking_yield: float | None = None


class AnalysisResponse(BaseModel):
    """Full analysis result as persisted."""

    id: int
    created_at: datetime
    coin: CoinSummaryResponse
    inputs: InvestmentInputsResponse
    metrics: MetricsResponse
    market_conditions: MarketConditionsResponse
    recommendation: RecommendationResponse
    benchmark_comparison: BenchmarkComparisonResponse
    monte_carlo: MonteCarloResponse
    cagr: CagrResponse | None = None
    beta: BetaResponse | None = None
    data_source: str
    is_fallback: bool
    warnings: list[str] = Field(default_factory=list)


class AnalysisHistoryItem(BaseModel):
    """One persisted analyses row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    coin_id: str
    created_at: datetime
    metrics_kind: MetricsKind
    data_source: str
    inputs: dict[str, Any]
    metrics: dict[str, Any]
    market_conditions: dict[str, Any]
    recommendation: dict[str, Any]


class AnalysisHistoryResponse(BaseModel):
    coin_id: str
    count: int
    items: list[AnalysisHistoryItem]
