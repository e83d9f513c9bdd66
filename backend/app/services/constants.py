# backend/app/services/constants.py
"""
Centralized constants for the Crypto Investment Analyzer services.

Single source of truth for the thresholds used by the calculation modules.
Values that operators may want to tune per deployment (risk-free default,
market returns, simulation count, TTLs) live in app.config.Settings instead.

Usage:
    from app.services.constants import (
        DAYS_PER_YEAR,
        BETA_MIN,
        BETA_MAX,
    )
"""


# =============================================================================
# CALENDAR
# =============================================================================

# Crypto trades every day; a year is 365.25 calendar days for CAGR and
# volatility annualization
DAYS_PER_YEAR: float = 365.25

# Plain 365-day year used by the full-analysis volatility figure
CALENDAR_DAYS_PER_YEAR: int = 365

MONTHS_PER_YEAR: int = 12


# =============================================================================
# ERROR CODES (wire values of the JSON error envelope)
# =============================================================================

INSUFFICIENT_DATA_CODE: str = "INSUFFICIENT_DATA"
DEAD_ASSET_CODE: str = "DEAD_ASSET"
API_ERROR_CODE: str = "API_ERROR"
VALIDATION_ERROR_CODE: str = "VALIDATION_ERROR"
NOT_FOUND_CODE: str = "NOT_FOUND"
CALCULATION_FAILED_CODE: str = "CALCULATION_FAILED"


# =============================================================================
# RETURNS & VOLATILITY
# =============================================================================

# Per-period log returns are clipped to +/-50% to suppress data-error spikes
RETURN_CAP: float = 0.5

# Rolling window for the volatility-adjusted CAGR (days)
VOLATILITY_WINDOW_DAYS: int = 90

# Bounds of the volatility adjustment factor 1 / (1 + median_vol)
VOLATILITY_FACTOR_MIN: float = 0.1
VOLATILITY_FACTOR_MAX: float = 2.0


# =============================================================================
# CAGR DATA SUFFICIENCY
# =============================================================================

MIN_CAGR_DAYS: int = 90
MAX_CONSECUTIVE_MISSING_DAYS: int = 3
MIN_DATA_COMPLETENESS: float = 0.95

# Final price below this fraction of the all-time high marks a dead asset
DEAD_ASSET_ATH_RATIO: float = 0.01
DEAD_ASSET_CAGR_PCT: float = -100.0

SHORT_PERIOD_WARNING: str = (
    "Time period is less than 1 year - interpret as short-term growth rate"
)


# =============================================================================
# CONFIDENCE SCORING (CAGR)
# =============================================================================

# (threshold, points), checked in order
CONFIDENCE_POINTS_BY_COUNT: tuple[tuple[int, int], ...] = ((1000, 3), (500, 2), (250, 1))
CONFIDENCE_POINTS_BY_DAYS: tuple[tuple[int, int], ...] = ((1095, 3), (730, 2), (365, 1))
CONFIDENCE_POINTS_BY_SOURCE: dict[str, int] = {"glassnode": 2, "database": 1}
CONFIDENCE_COMPLETENESS_BONUS_THRESHOLD: float = 0.99
CONFIDENCE_HIGH_SCORE: int = 6
CONFIDENCE_MEDIUM_SCORE: int = 3


# =============================================================================
# LIQUIDITY
# =============================================================================

LIQUIDITY_LOOKBACK_DAYS: int = 30
LIQUID_VOLUME_USD: float = 10_000_000
MODERATE_VOLUME_USD: float = 1_000_000

LIQUIDITY_PREMIUMS: dict[str, float] = {
    "liquid": 0.02,
    "moderate": 0.05,
    "illiquid": 0.15,
}

# Classification used when no volume series is available at all
KNOWN_LIQUID_SYMBOLS: frozenset[str] = frozenset({"btc", "eth", "usdt", "usdc", "bnb"})


# =============================================================================
# BETA
# =============================================================================

BETA_MIN: float = 0.1
BETA_MAX: float = 5.0
DEFAULT_BETA: float = 1.0
MIN_BETA_RETURNS: int = 10

# Confidence classification of the basic estimate
BETA_LOW_CONFIDENCE_POINTS: int = 30
BETA_MEDIUM_CONFIDENCE_POINTS: int = 900
BETA_IMPLAUSIBLE_ABS: float = 10.0
BETA_MIN_ABS_COVARIANCE: float = 1e-8

# Comprehensive estimate
MIN_ALIGNED_POINTS: int = 180
HIGH_CONFIDENCE_POINTS: int = 300
SHORT_VOLATILITY_WINDOW: int = 30
MAX_SHORT_VOLATILITY: float = 2.0
HIGH_VOLATILITY_THRESHOLD: float = 0.05
LOW_VOLATILITY_THRESHOLD: float = 0.015
LOOKBACK_HIGH_VOLATILITY: int = 90
LOOKBACK_DEFAULT: int = 180
LOOKBACK_LOW_VOLATILITY: int = 360
MIN_BENCHMARK_VARIANCE: float = 1e-6
HIGH_CONFIDENCE_VARIANCE: float = 1e-5
HIGH_CONFIDENCE_MAX_VOL: float = 0.1
MEDIUM_CONFIDENCE_MAX_VOL: float = 0.2
ILLIQUID_BETA_MULTIPLIER: float = 1.2
DEEP_LIQUIDITY_BETA_MULTIPLIER: float = 0.9
DEEP_LIQUIDITY_VOLUME_USD: float = 1_000_000_000
LIQUIDITY_WARNING_VOLUME_USD: float = 1_000_000
MIN_VOLUME_COMPLETENESS: float = 0.8
RECENCY_TOLERANCE_DAYS: int = 3

# Provisional estimates when history is too short
SECTOR_BETAS: dict[str, float] = {
    "btc": 0.4,
    "eth": 1.1,
    "usdt": 0.0,
    "usdc": 0.0,
    "bnb": 1.0,
    "ada": 1.3,
    "sol": 1.5,
    "dot": 1.2,
    "link": 1.4,
}
DEFAULT_SECTOR_BETA: float = 1.5

# Benchmark blend when the S&P 500 series is short: 60% equity, 40% treasury
EQUITY_BLEND_WEIGHT: float = 0.6


# =============================================================================
# BENCHMARKS / MACRO SERIES
# =============================================================================

SP500_SERIES: str = "SP500"
TREASURY_10Y_SERIES: str = "DGS10"
FED_FUNDS_SERIES: str = "FEDFUNDS"
BTC_BENCHMARK: str = "BTC"
ETH_BENCHMARK: str = "ETH"

FED_RATE_LOOKBACK_DAYS: int = 90


# =============================================================================
# NPV CONFIDENCE
# =============================================================================

NPV_CONFIDENCE_BASE: int = 40
NPV_CONFIDENCE_CAP: int = 95


# =============================================================================
# FULL-ANALYSIS METRICS
# =============================================================================

SHARPE_RISK_FREE_RATE: float = 0.02
RISK_ADJUSTED_NPV_FACTOR: float = 0.1
MAX_HORIZON_YEARS: int = 50

# History window used when the caller gives no period (matches cagr_36m)
DEFAULT_LOOKBACK_DAYS: int = 1095

# On-chain indicator window for the market conditions snapshot
MARKET_CONDITIONS_LOOKBACK_DAYS: int = 90

# Static defaults for coins without stored cagr_36m / volatility (decimals)
FALLBACK_CAGR: float = 0.15
FALLBACK_VOLATILITY: float = 0.5


# =============================================================================
# MONTE CARLO
# =============================================================================

MIN_MONTE_CARLO_PRICES: int = 30
MONTE_CARLO_LOWER_PERCENTILE: float = 0.05
MONTE_CARLO_UPPER_PERCENTILE: float = 0.95

# Fallback projection multipliers (of the investment)
FALLBACK_EXPECTED_MULTIPLE: float = 1.2
FALLBACK_LOWER_MULTIPLE: float = 0.8
FALLBACK_UPPER_MULTIPLE: float = 1.8
FALLBACK_PROBABILITY_OF_LOSS: float = 0.25
FALLBACK_VAR_MULTIPLE: float = 0.2


# =============================================================================
# RECOMMENDATION THRESHOLDS
# =============================================================================

IRR_POSITIVE_THRESHOLD: float = 0.15
IRR_NEGATIVE_THRESHOLD: float = 0.05
VOLATILITY_HIGH_PCT: float = 80.0
VOLATILITY_LOW_PCT: float = 40.0
SHARPE_POSITIVE_THRESHOLD: float = 1.0
SHARPE_NEGATIVE_THRESHOLD: float = 0.5
LOSS_PROBABILITY_HIGH: float = 0.4
LOSS_PROBABILITY_LOW: float = 0.2
AVIV_OVERSOLD: float = 0.55
AVIV_OVERBOUGHT: float = 2.5
STRONG_SELL_NPV: float = -1000.0

FED_RATE_NOTABLE_CHANGE: float = 0.25
FED_RATE_RISK_CHANGE: float = 0.5

# Maximum share of the portfolio per basket before the amount is "too much"
BASKET_ALLOCATION_CAPS: dict[str, float] = {
    "bitcoin": 80.0,
    "blue_chip": 40.0,
    "small_cap": 10.0,
}
BASKET_BASE_RISK: dict[str, int] = {
    "bitcoin": 3,
    "blue_chip": 4,
    "small_cap": 5,
}
RISK_VOLATILITY_HIGH_PCT: float = 80.0
RISK_VOLATILITY_LOW_PCT: float = 30.0


# =============================================================================
# BITCOIN MARKET STATE
# =============================================================================

STATE_AVIV_BULLISH: float = 0.7
STATE_AVIV_BEARISH: float = 2.5
STATE_VOLATILITY_BEARISH: float = 90.0
STATE_VOLATILITY_BULLISH: float = 30.0
STATE_MVRV_BULLISH: float = -1.0
STATE_MVRV_BEARISH: float = 6.0
STATE_DRAWDOWN_BULLISH: float = 0.5
STATE_DRAWDOWN_BEARISH: float = 0.1
STATE_MIN_SIGNALS: int = 3
STATE_FALLBACK_CONFIDENCE: int = 25

# Upper bounds (exclusive) of each AVIV zone; anything above is STRONG_SELL
AVIV_ZONES: tuple[tuple[float, str], ...] = (
    (0.5, "strong_buy"),
    (1.0, "dca_buy"),
    (1.5, "accumulate"),
    (1.9, "neutral"),
    (2.5, "prepare_sell"),
)
FALLBACK_AVIV: float = 1.5
BITCOIN_AVIV_CACHE_KEY: str = "bitcoin-aviv"


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 3
CIRCUIT_BREAKER_FAILURE_WINDOW: float = 300.0


# =============================================================================
# CACHE
# =============================================================================

# Upper bound on in-memory cache entries (LRU eviction beyond this)
CACHE_MAX_ENTRIES: int = 1000


# =============================================================================
# RATE LIMITING (slowapi "X/period" syntax)
# =============================================================================

RATE_LIMIT_DEFAULT: str = "100/minute"
RATE_LIMIT_HEALTH: str = "300/minute"

# Single-formula endpoints hit Glassnode/FRED on every call
RATE_LIMIT_ANALYSIS: str = "30/minute"

# Full pipeline fans out to five or more upstream series
RATE_LIMIT_FULL_ANALYSIS: str = "10/minute"

RATE_LIMIT_RETRY_AFTER_SECONDS: int = 60


# =============================================================================
# API LIMITS
# =============================================================================

MAX_HORIZON_MONTHS: int = 600
DEFAULT_HISTORY_LIMIT: int = 20
MAX_HISTORY_LIMIT: int = 200
