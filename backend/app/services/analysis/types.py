# backend/app/services/analysis/types.py
"""
Data types for the Analysis Service.

This module defines the records passed between the calculation stages. All
of them are created once per analysis and never mutated afterwards.

Architecture:
    - CagrResult: Basic and volatility-adjusted growth with data quality
    - LiquidityAssessment: Volume-based liquidity class and premium
    - BetaResult / ComprehensiveBetaResult: Systematic risk estimates
    - DiscountRateBreakdown / NpvResult: CAPM discount rate and valuation
    - MonteCarloResult: Simulated terminal value distribution
    - MarketConditions / MarketStateAssessment: Bitcoin market snapshot
    - Recommendation: Final rule-based verdict
    - RealMetrics | FallbackMetrics: Metrics tagged with their provenance
    - AnalysisResult: Combined result persisted to the analyses table
"""

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal

from app.models import Basket


class Confidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LiquidityStatus(str, enum.Enum):
    """Liquidity class derived from median recent volume."""
    LIQUID = "liquid"
    MODERATE = "moderate"
    ILLIQUID = "illiquid"


class BitcoinState(str, enum.Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class AvivZone(str, enum.Enum):
    """Bitcoin AVIV ratio buckets, cheapest to most expensive."""
    STRONG_BUY = "strong_buy"
    DCA_BUY = "dca_buy"
    ACCUMULATE = "accumulate"
    NEUTRAL = "neutral"
    PREPARE_SELL = "prepare_sell"
    STRONG_SELL = "strong_sell"


class Action(str, enum.Enum):
    BUY = "Buy"
    BUY_LESS = "BuyLess"
    DO_NOT_BUY = "DoNotBuy"
    SELL = "Sell"


class Benchmark(str, enum.Enum):
    """
    Benchmark a beta was measured against.

    Attributes:
        SP500: S&P 500 index level (FRED)
        SP500_TREASURY_BLEND: 60/40 blend of S&P 500 and 10Y yield levels
        BTC: Bitcoin price (Glassnode)
        ETH: Ethereum price, used when BTC history is too short
    """
    SP500 = "SP500"
    SP500_TREASURY_BLEND = "SP500_DGS10_BLEND"
    BTC = "BTC"
    ETH = "ETH"

    @property
    def is_equity(self) -> bool:
        return self in (Benchmark.SP500, Benchmark.SP500_TREASURY_BLEND)


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class InvestmentInputs:
    """
    User-supplied parameters for a full analysis.

    Validated for positivity and range only (see service.validate_inputs).
    Stored inside the analyses row, never on its own.

    Attributes:
        coin_id: Coin slug ("bitcoin")
        investment_amount: Amount to invest in USD
        total_portfolio: Total portfolio value in USD
        investment_horizon_years: Holding period in years (fractional allowed)
        basket: Allocation basket; None means use the coin's basket
        expected_price: Optional user price target for ROI
        staking_yield: Optional annual staking yield (decimal), added to CAGR
    """
    coin_id: str
    investment_amount: float
    total_portfolio: float
    investment_horizon_years: float
    basket: Basket | None = None
    expected_price: float | None = None
    staking_yield: float | None = None


# =============================================================================
# CAGR / LIQUIDITY
# =============================================================================

@dataclass
class LiquidityAssessment:
    status: LiquidityStatus
    premium: float
    median_volume: float | None = None


@dataclass
class CagrCalculationSteps:
    """Intermediate values of (end/start)^(1/years) - 1, for display."""
    growth_ratio: float
    exponent: float
    base: float


@dataclass
class CagrResult:
    """
    Result of a CAGR calculation.

    basic_cagr and adjusted_cagr are percentages (58.74 = 58.74%).

    Attributes:
        basic_cagr: (end/start)^(1/years) - 1, in percent
        adjusted_cagr: basic_cagr x volatility adjustment factor, in percent
        volatility_90d: Median 90-day annualized volatility (decimal)
        adjustment_factor: clamp(1 / (1 + volatility_90d), 0.1, 2.0)
        data_quality_score: 0-100
    """
    asset: str
    start_date: date
    end_date: date
    basic_cagr: float
    adjusted_cagr: float
    start_price: float
    end_price: float
    days_held: int
    years: float
    volatility_90d: float
    adjustment_factor: float
    liquidity: LiquidityAssessment
    data_points: int
    data_source: str
    confidence: Confidence
    data_quality_score: float
    steps: CagrCalculationSteps | None = None
    is_dead_asset: bool = False
    has_sufficient_data: bool = True
    warnings: list[str] = field(default_factory=list)

    @property
    def adjusted_cagr_decimal(self) -> float:
        return self.adjusted_cagr / 100


# =============================================================================
# BETA
# =============================================================================

@dataclass
class BetaResult:
    """Basic beta: sample cov / sample var, clamped to [0.1, 5.0]."""
    beta: float
    confidence: Confidence
    data_points: int
    covariance: float
    benchmark_variance: float
    is_default: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class ComprehensiveBetaResult:
    """
    Beta with adaptive lookback and liquidity adjustment.

    Attributes:
        raw_beta: cov/var over the chosen window (or the sector table value)
        beta: Liquidity-adjusted and clamped value used downstream
        lookback_days: Window actually used
        volatility_30d: Daily stdev of the last 30 asset returns
        provisional_estimate: True when the sector table was used
    """
    asset: str
    benchmark: Benchmark
    beta: float
    raw_beta: float
    liquidity_adjustment: float
    confidence: Confidence
    methodology: str
    aligned_points: int
    lookback_days: int
    volatility_30d: float
    benchmark_variance: float
    data_quality: float
    provisional_estimate: bool = False
    liquidity_warning: bool = False
    volume_completeness_warning: bool = False
    data_source: str = ""
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# VALUATION
# =============================================================================

@dataclass
class DiscountRateBreakdown:
    """rf + beta x (mr - rf) + premium, component by component."""
    risk_free_rate: float
    beta: float
    market_return: float
    market_risk_premium: float
    beta_adjustment: float
    liquidity_premium: float
    discount_rate: float


@dataclass
class YearlyCashFlow:
    year: int
    cash_flow: float
    future_value: float
    discount_factor: float
    present_value: float


@dataclass
class NpvResult:
    """
    Single-terminal-cash-flow valuation.

    cagr, discount_rate and irr are decimals.
    """
    investment: float
    years: float
    cagr: float
    discount_rate: float
    terminal_value: float
    npv: float
    irr: float
    breakdown: list[YearlyCashFlow] = field(default_factory=list)


@dataclass
class NpvAnalysis:
    """NPV together with everything that went into the discount rate."""
    asset: str
    valuation: NpvResult
    discount: DiscountRateBreakdown
    cagr: CagrResult
    beta: float
    beta_source: str
    benchmark: Benchmark
    liquidity: LiquidityAssessment
    confidence_score: int
    data_source: str
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# MONTE CARLO
# =============================================================================

@dataclass
class MonteCarloResult:
    """
    Terminal value distribution of simulated monthly compounding paths.

    Attributes:
        lower_bound: 5th percentile terminal value
        upper_bound: 95th percentile terminal value
        value_at_risk: max(0, investment - lower_bound)
        is_fallback: Fixed multiples used because history was too short
    """
    investment: float
    horizon_months: int
    simulations: int
    expected_value: float
    median: float
    lower_bound: float
    upper_bound: float
    probability_of_loss: float
    value_at_risk: float
    mean_return: float = 0.0
    std_return: float = 0.0
    is_fallback: bool = False


# =============================================================================
# MARKET CONDITIONS
# =============================================================================

@dataclass
class MarketStateAssessment:
    state: BitcoinState
    confidence: int
    bullish_signals: list[str] = field(default_factory=list)
    bearish_signals: list[str] = field(default_factory=list)


@dataclass
class MarketConditions:
    """
    Bitcoin market snapshot, recomputed per analysis.

    Attributes:
        aviv_ratio: Latest AVIV reading (None if unavailable)
        vaulted_supply: Illiquid BTC supply
        active_supply: Liquid BTC supply
        smart_money_activity: Liquid supply fell over the window
        fed_rate_change: FEDFUNDS change over 90 days, percentage points
    """
    bitcoin_state: BitcoinState
    state_confidence: int
    aviv_ratio: float | None
    aviv_zone: AvivZone
    vaulted_supply: float | None
    active_supply: float | None
    smart_money_activity: bool
    fed_rate_change: float
    mvrv_z_score: float | None = None
    price_drawdown: float | None = None
    realized_volatility: float | None = None
    data_source: str = "glassnode"
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# METRICS & RECOMMENDATION
# =============================================================================

@dataclass
class FinancialMetrics:
    """
    Flat metrics record for one (coin, inputs) pair.

    cagr, irr, roi, standard_deviation are decimals; data_quality is 0-100.
    """
    npv: float
    irr: float
    cagr: float
    roi: float
    beta: float
    beta_confidence: Confidence
    standard_deviation: float
    sharpe_ratio: float
    risk_factor: int
    risk_adjusted_npv: float
    data_quality: float
    discount_rate: float

    @property
    def volatility_pct(self) -> float:
        return self.standard_deviation * 100


@dataclass
class RealMetrics:
    """Metrics computed from fetched series, with the sources actually used."""
    metrics: FinancialMetrics
    sources: dict[str, str]
    confidence: Confidence
    kind: Literal["real"] = "real"


@dataclass
class FallbackMetrics:
    """Metrics computed from the coin's static attributes."""
    metrics: FinancialMetrics
    reason: str
    confidence: Confidence = Confidence.LOW
    kind: Literal["fallback"] = "fallback"


@dataclass
class SignalSummary:
    positive: list[str] = field(default_factory=list)
    negative: list[str] = field(default_factory=list)

    @property
    def difference(self) -> int:
        return abs(len(self.positive) - len(self.negative))


@dataclass
class Recommendation:
    """
    Final verdict.

    Attributes:
        recommendation: Buy | BuyLess | DoNotBuy | Sell
        confidence: 0-100
        conditions: Human-readable supporting observations
        risks: Human-readable risk warnings
    """
    recommendation: Action
    worth_investing: bool
    good_timing: bool
    appropriate_amount: bool
    should_diversify: bool
    risk_factor: int
    confidence: int
    conditions: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)


@dataclass
class CoinSummary:
    id: str
    symbol: str
    name: str
    basket: Basket
    price: float | None = None
    market_cap: float | None = None


@dataclass
class BenchmarkComparison:
    benchmark: Benchmark
    market_return: float
    asset_cagr: float
    excess_return: float


@dataclass
class AnalysisResult:
    """
    Aggregate of one full analysis, persisted append-only.

    Attributes:
        id: analyses row id (set after persistence)
        metrics: RealMetrics or FallbackMetrics
        cagr: CAGR detail (None on the fallback path)
        beta: Beta detail (None on the fallback path)
    """
    coin: CoinSummary
    inputs: InvestmentInputs
    metrics: RealMetrics | FallbackMetrics
    market_conditions: MarketConditions
    recommendation: Recommendation
    benchmark_comparison: BenchmarkComparison
    monte_carlo: MonteCarloResult
    data_source: str
    cagr: CagrResult | None = None
    beta: ComprehensiveBetaResult | None = None
    id: int | None = None
    created_at: datetime | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def is_fallback(self) -> bool:
        return self.metrics.kind == "fallback"


# =============================================================================
# SERIALIZATION
# =============================================================================

def to_jsonable(value: Any) -> Any:
    """
    Convert dataclasses, enums and dates into JSON-compatible structures.

    Used for the JSON columns of the analyses table.
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value
