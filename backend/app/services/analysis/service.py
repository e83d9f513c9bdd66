# backend/app/services/analysis/service.py
"""
Analysis Service orchestrator.

This is the main entry point for the calculation pipeline. It:
1. Resolves the requested asset to a coin id and provider symbol
2. Fetches series through SeriesFetcher (live first, stored fallback)
3. Delegates to the pure calculation modules
4. Caches upstream readings through an injected TtlCache
5. Persists full analyses append-only to the analyses table

Architecture:
    AnalysisService
        ├── uses → SeriesFetcher (Glassnode, FRED, stored history)
        ├── uses → cagr / beta / valuation / monte_carlo (pure)
        ├── uses → market / recommendation (pure)
        └── uses → TtlCache (AVIV reading, price series)

Fallback policy:
    Single-formula methods surface InsufficientDataError to the caller.
    analyze() degrades to FallbackMetrics built from the coin's static
    attributes when no usable price history exists.

Usage:
    from app.services.analysis import AnalysisService

    service = AnalysisService(fetcher)

    cagr = service.get_cagr(db, "BTC", date(2021, 1, 1), date(2024, 1, 1))
    result = service.analyze(db, InvestmentInputs(coin_id="bitcoin", ...))
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import numpy as np
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.models import Analysis, Basket, Coin, MetricsKind
from app.services.analysis.beta import (
    blend_benchmark,
    calculate_beta,
    calculate_comprehensive_beta,
    sector_beta_estimate,
)
from app.services.analysis.cagr import calculate_cagr, classify_liquidity
from app.services.analysis.market import (
    assess_bitcoin_market_state,
    classify_aviv,
    detect_smart_money_activity,
    normalize_drawdown,
)
from app.services.analysis.monte_carlo import run_monte_carlo
from app.services.analysis.primitives import align_series, log_returns, simple_returns
from app.services.analysis.recommendation import calculate_risk_factor, compose_recommendation
from app.services.analysis.types import (
    AnalysisResult,
    Benchmark,
    BenchmarkComparison,
    CagrResult,
    CoinSummary,
    ComprehensiveBetaResult,
    Confidence,
    FallbackMetrics,
    FinancialMetrics,
    InvestmentInputs,
    MarketConditions,
    MonteCarloResult,
    NpvAnalysis,
    RealMetrics,
    to_jsonable,
)
from app.services.analysis.valuation import (
    annualized_volatility,
    calculate_discount_rate,
    calculate_npv,
    calculate_roi,
    market_return_for,
    npv_confidence_score,
    risk_adjusted_npv,
    sharpe_ratio,
)
from app.services.cache import DatabaseTtlCache, TtlCache, get_fresh
from app.services.constants import (
    BITCOIN_AVIV_CACHE_KEY,
    BTC_BENCHMARK,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_LOOKBACK_DAYS,
    ETH_BENCHMARK,
    FALLBACK_AVIV,
    FALLBACK_CAGR,
    FALLBACK_VOLATILITY,
    MARKET_CONDITIONS_LOOKBACK_DAYS,
    MAX_HORIZON_YEARS,
    MONTHS_PER_YEAR,
    MIN_ALIGNED_POINTS,
    SP500_SERIES,
    TREASURY_10Y_SERIES,
)
from app.services.exceptions import CoinNotFoundError, InsufficientDataError, ValidationError
from app.services.market_data.base import PricePoint
from app.services.market_data.fetcher import FetchedPrices, SeriesFetcher
from app.services.market_data.glassnode import (
    AVIV_METRIC,
    COIN_SYMBOLS,
    DRAWDOWN_METRIC,
    ILLIQUID_SUPPLY_METRIC,
    LIQUID_SUPPLY_METRIC,
    MVRV_Z_METRIC,
    REALIZED_VOLATILITY_METRIC,
    to_glassnode_symbol,
)
from app.services.market_data.repository import StoredSeriesRepository

logger = logging.getLogger(__name__)

_SYMBOL_TO_COIN = {symbol: coin_id for coin_id, symbol in COIN_SYMBOLS.items()}


@dataclass(frozen=True)
class ResolvedAsset:
    """Storage key, provider symbol and coin row (if any) for a request."""
    coin_id: str
    symbol: str
    coin: Coin | None = None


@dataclass
class BenchmarkSeries:
    benchmark: Benchmark
    points: list[tuple[date, float]]
    data_source: str


class AnalysisService:
    """
    Orchestrates fetching, calculation and persistence of analyses.

    Holds no per-analysis state: every method builds its own local data and
    the database session is passed per call.
    """

    def __init__(
            self,
            fetcher: SeriesFetcher,
            cache: TtlCache | None = None,
            config: Settings | None = None,
            rng_seed: int | None = None,
    ) -> None:
        """
        Args:
            fetcher: Live-first series fetcher
            cache: TtlCache for upstream readings; None uses the cache_entries
                   table through the request's session
            config: Settings override (defaults to app.config.settings)
            rng_seed: Seed for Monte Carlo; None draws fresh entropy per run
        """
        self._fetcher = fetcher
        self._cache = cache
        self._settings = config or default_settings
        self._rng_seed = rng_seed
        logger.info("AnalysisService initialized")

    # =========================================================================
    # ASSET RESOLUTION
    # =========================================================================

    def resolve_asset(self, db: Session, asset: str) -> ResolvedAsset:
        """
        Map a coin id or symbol to storage key and provider symbol.

        Unknown assets are still resolvable: live providers may know them
        even when the coins table does not.
        """
        key = asset.strip()
        coin = db.execute(
            select(Coin).where(
                or_(
                    Coin.id == key.lower(),
                    func.upper(Coin.symbol) == key.upper(),
                )
            ).limit(1)
        ).scalar_one_or_none()

        if coin is not None:
            return ResolvedAsset(
                coin_id=coin.id,
                symbol=(coin.glassnode_asset or coin.symbol).upper(),
                coin=coin,
            )

        symbol = to_glassnode_symbol(key)
        return ResolvedAsset(coin_id=_SYMBOL_TO_COIN.get(symbol, key.lower()), symbol=symbol)

    def _require_coin(self, db: Session, coin_id: str) -> ResolvedAsset:
        resolved = self.resolve_asset(db, coin_id)
        if resolved.coin is None:
            raise CoinNotFoundError(coin_id)
        return resolved

    # =========================================================================
    # CACHE
    # =========================================================================

    def _cache_for(self, db: Session) -> TtlCache:
        return self._cache if self._cache is not None else DatabaseTtlCache(db)

    def _fetch_prices(
            self,
            db: Session,
            resolved: ResolvedAsset,
            start: date,
            end: date,
    ) -> FetchedPrices:
        """Price series with volume, served from cache when fresh."""
        cache = self._cache_for(db)
        key = f"prices:{resolved.coin_id}:{start.isoformat()}:{end.isoformat()}"

        cached = get_fresh(cache, key, timedelta(seconds=self._settings.cache_ttl_seconds))
        if cached is not None:
            return _decode_prices(cached)

        fetched = self._fetcher.fetch_prices(
            db, resolved.coin_id, start, end, include_volume=True, symbol=resolved.symbol
        )
        # Only live series are cached; stored history is already local
        if fetched.data_source != "database":
            cache.put(key, _encode_prices(fetched))
        return fetched

    # =========================================================================
    # CAGR
    # =========================================================================

    def get_cagr(self, db: Session, asset: str, start: date, end: date) -> CagrResult:
        """
        CAGR of an asset over [start, end].

        Raises:
            ValidationError: start is not before end
            InsufficientDataError: No data, or data fails the sufficiency checks
        """
        _validate_period(start, end)
        resolved = self.resolve_asset(db, asset)

        logger.info(f"Calculating CAGR for {resolved.symbol} ({start} to {end})")

        fetched = self._fetch_prices(db, resolved, start, end)
        result = calculate_cagr(
            fetched.points,
            asset=resolved.symbol,
            data_source=fetched.data_source,
            symbol=resolved.symbol,
        )
        result.warnings = fetched.warnings + result.warnings
        return result

    # =========================================================================
    # BETA
    # =========================================================================

    def _select_benchmark(
            self,
            db: Session,
            resolved: ResolvedAsset,
            asset_dates: set[date],
            start: date,
            end: date,
    ) -> BenchmarkSeries:
        """
        Pick the benchmark series for an asset.

        BTC is measured against the S&P 500, blended 60/40 with the 10Y
        yield level when too few S&P points align. Every other asset is
        measured against BTC, or ETH when BTC history is too short.
        """
        if resolved.symbol == BTC_BENCHMARK:
            try:
                sp500 = self._fetcher.fetch_macro(SP500_SERIES, start, end)
            except InsufficientDataError as e:
                logger.warning(f"S&P 500 benchmark unavailable: {e}")
                return BenchmarkSeries(Benchmark.SP500, [], "unavailable")

            points = [(p.date, p.value) for p in sp500.points]
            if len(asset_dates & {d for d, _ in points}) >= MIN_ALIGNED_POINTS:
                return BenchmarkSeries(Benchmark.SP500, points, sp500.data_source)

            try:
                treasury = self._fetcher.fetch_macro(TREASURY_10Y_SERIES, start, end)
            except InsufficientDataError as e:
                logger.warning(f"Treasury series unavailable for benchmark blend: {e}")
                return BenchmarkSeries(Benchmark.SP500, points, sp500.data_source)

            blended = blend_benchmark(points, [(p.date, p.value) for p in treasury.points])
            return BenchmarkSeries(Benchmark.SP500_TREASURY_BLEND, blended, sp500.data_source)

        candidates = ((Benchmark.BTC, BTC_BENCHMARK), (Benchmark.ETH, ETH_BENCHMARK))
        best: BenchmarkSeries | None = None
        for benchmark, symbol in candidates:
            if symbol == resolved.symbol:
                continue
            try:
                fetched = self._fetch_prices(
                    db, ResolvedAsset(_SYMBOL_TO_COIN[symbol], symbol), start, end
                )
            except InsufficientDataError as e:
                logger.warning(f"{symbol} benchmark unavailable: {e}")
                continue

            series = BenchmarkSeries(
                benchmark, [(p.date, p.price) for p in fetched.points], fetched.data_source
            )
            if len(asset_dates & {p.date for p in fetched.points}) >= MIN_ALIGNED_POINTS:
                return series
            best = best or series

        return best or BenchmarkSeries(Benchmark.BTC, [], "unavailable")

    def get_beta(
            self,
            db: Session,
            asset: str,
            start: date,
            end: date,
            comprehensive: bool = True,
    ) -> ComprehensiveBetaResult:
        """
        Comprehensive beta of an asset over [start, end].

        With comprehensive=False the adaptive window and liquidity
        adjustment are skipped and the basic estimator is reported.

        Raises:
            ValidationError: start is not before end
            InsufficientDataError: No asset data, or beta data-quality failure
        """
        _validate_period(start, end)
        resolved = self.resolve_asset(db, asset)

        logger.info(f"Calculating beta for {resolved.symbol} ({start} to {end})")

        fetched = self._fetch_prices(db, resolved, start, end)
        asset_points = [(p.date, p.price) for p in fetched.points]
        bench = self._select_benchmark(db, resolved, {d for d, _ in asset_points}, start, end)

        if not comprehensive:
            return self._basic_beta_result(resolved, fetched, bench)

        result = calculate_comprehensive_beta(
            asset_points,
            bench.points,
            asset=resolved.symbol,
            benchmark=bench.benchmark,
            volumes=[p.volume for p in fetched.points],
            series_end=end,
            data_source=fetched.data_source,
        )
        result.warnings = fetched.warnings + result.warnings
        return result

    def _basic_beta_result(
            self,
            resolved: ResolvedAsset,
            fetched: FetchedPrices,
            bench: BenchmarkSeries,
    ) -> ComprehensiveBetaResult:
        asset_returns, bench_returns = _paired_returns(
            [(p.date, p.price) for p in fetched.points], bench.points
        )
        basic = calculate_beta(asset_returns, bench_returns)
        return ComprehensiveBetaResult(
            asset=resolved.symbol,
            benchmark=bench.benchmark,
            beta=basic.beta,
            raw_beta=basic.beta,
            liquidity_adjustment=1.0,
            confidence=basic.confidence,
            methodology="Sample covariance / variance",
            aligned_points=basic.data_points + 1 if basic.data_points else 0,
            lookback_days=basic.data_points,
            volatility_30d=0.0,
            benchmark_variance=basic.benchmark_variance,
            data_quality=0.0,
            data_source=fetched.data_source,
            warnings=fetched.warnings + basic.warnings,
        )

    # =========================================================================
    # NPV
    # =========================================================================

    def get_npv(
            self,
            db: Session,
            asset: str,
            amount: float,
            years: float,
            advanced_beta: float | None = None,
            as_of: date | None = None,
    ) -> NpvAnalysis:
        """
        NPV / IRR of holding an asset, discounted at its CAPM rate.

        Uses the last three years of history for growth and beta.

        Raises:
            ValidationError: amount <= 0 or years outside (0, 50]
            InsufficientDataError: No usable price history
        """
        if amount <= 0:
            raise ValidationError("Investment amount must be positive", field="amount")
        if years <= 0 or years > MAX_HORIZON_YEARS:
            raise ValidationError(
                f"Investment horizon must be in (0, {MAX_HORIZON_YEARS}] years", field="years"
            )

        end = as_of or date.today()
        start = end - timedelta(days=DEFAULT_LOOKBACK_DAYS)
        resolved = self.resolve_asset(db, asset)

        logger.info(f"Calculating NPV for {resolved.symbol}: amount={amount}, years={years}")

        fetched = self._fetch_prices(db, resolved, start, end)
        cagr = calculate_cagr(
            fetched.points,
            asset=resolved.symbol,
            data_source=fetched.data_source,
            symbol=resolved.symbol,
        )

        risk_free = self._fetcher.get_risk_free_rate(end)
        asset_points = [(p.date, p.price) for p in fetched.points]
        bench = self._select_benchmark(db, resolved, {d for d, _ in asset_points}, start, end)

        if advanced_beta is not None:
            beta, beta_source = advanced_beta, "advanced"
        else:
            asset_returns, bench_returns = _paired_returns(asset_points, bench.points)
            beta, beta_source = calculate_beta(asset_returns, bench_returns).beta, "basic"

        market_return = self._market_return(bench.benchmark)
        discount = calculate_discount_rate(risk_free, beta, market_return, cagr.liquidity.premium)
        valuation = calculate_npv(amount, cagr.adjusted_cagr_decimal, years, discount.discount_rate)

        return NpvAnalysis(
            asset=resolved.symbol,
            valuation=valuation,
            discount=discount,
            cagr=cagr,
            beta=beta,
            beta_source=beta_source,
            benchmark=bench.benchmark,
            liquidity=cagr.liquidity,
            confidence_score=npv_confidence_score(len(fetched.points), fetched.has_volume, beta),
            data_source=fetched.data_source,
            warnings=fetched.warnings + cagr.warnings,
        )

    def _market_return(self, benchmark: Benchmark) -> float:
        return market_return_for(
            benchmark,
            equity_return=self._settings.equity_market_return,
            crypto_return=self._settings.crypto_market_return,
        )

    # =========================================================================
    # MARKET CONDITIONS
    # =========================================================================

    def _latest_metric(
            self,
            metric: str,
            start: date,
            end: date,
            warnings: list[str],
    ) -> list[float]:
        try:
            series = self._fetcher.fetch_metric(BTC_BENCHMARK, metric, start, end)
        except InsufficientDataError as e:
            warnings.append(f"{metric} unavailable")
            logger.warning(f"Market conditions: {e}")
            return []
        return [p.value for p in series.points]

    def get_market_conditions(self, db: Session, as_of: date | None = None) -> MarketConditions:
        """
        Bitcoin market snapshot from on-chain indicators and the Fed rate.

        The AVIV reading is cached under "bitcoin-aviv". When every live
        indicator is unavailable the latest stored snapshot is used.
        """
        end = as_of or date.today()
        start = end - timedelta(days=MARKET_CONDITIONS_LOOKBACK_DAYS)
        cache = self._cache_for(db)
        repository = StoredSeriesRepository(db)
        warnings: list[str] = []

        aviv = get_fresh(
            cache, BITCOIN_AVIV_CACHE_KEY, timedelta(seconds=self._settings.aviv_cache_ttl_seconds)
        )
        aviv_is_live = False
        if aviv is None:
            aviv_values = self._latest_metric(AVIV_METRIC, start, end, warnings)
            if aviv_values:
                aviv = aviv_values[-1]
                aviv_is_live = True
                cache.put(BITCOIN_AVIV_CACHE_KEY, aviv)

        liquid = self._latest_metric(LIQUID_SUPPLY_METRIC, start, end, warnings)
        illiquid = self._latest_metric(ILLIQUID_SUPPLY_METRIC, start, end, warnings)
        mvrv = self._latest_metric(MVRV_Z_METRIC, start, end, warnings)
        drawdown = self._latest_metric(DRAWDOWN_METRIC, start, end, warnings)
        realized_vol = self._latest_metric(REALIZED_VOLATILITY_METRIC, start, end, warnings)

        snapshot: dict[str, Any] = {
            "aviv_ratio": aviv,
            "active_supply": liquid[-1] if liquid else None,
            "vaulted_supply": illiquid[-1] if illiquid else None,
            "mvrv_z_score": mvrv[-1] if mvrv else None,
            "price_drawdown": normalize_drawdown(drawdown[-1]) if drawdown else None,
            "realized_volatility": realized_vol[-1] if realized_vol else None,
            "smart_money_activity": detect_smart_money_activity(liquid),
        }

        # A cached AVIV alone does not count as a live reading
        has_live_reading = aviv_is_live or any((liquid, illiquid, mvrv, drawdown, realized_vol))

        data_source = "glassnode"
        if not has_live_reading:
            stored = repository.get_latest_onchain_snapshot("bitcoin")
            if stored:
                logger.info("Using stored on-chain snapshot for market conditions")
                snapshot.update({k: stored.get(k) for k in snapshot if k != "aviv_ratio"})
                if aviv is None:
                    snapshot["aviv_ratio"] = stored.get("aviv_ratio")
                snapshot["smart_money_activity"] = bool(stored.get("smart_money_activity"))
                data_source = "database"
            elif aviv is not None:
                data_source = "cache"
                warnings.append("Only the cached AVIV reading is available")
            else:
                data_source = "fallback"
                warnings.append("No on-chain data available; market state is neutral")
        else:
            repository.save_onchain_snapshot("bitcoin", snapshot, "glassnode")

        volatility_pct = (
            snapshot["realized_volatility"] * 100
            if snapshot["realized_volatility"] is not None else None
        )
        assessment = assess_bitcoin_market_state(
            aviv=snapshot["aviv_ratio"],
            volatility_pct=volatility_pct,
            mvrv_z=snapshot["mvrv_z_score"],
            drawdown=snapshot["price_drawdown"],
        )
        aviv_ratio = snapshot["aviv_ratio"]

        return MarketConditions(
            bitcoin_state=assessment.state,
            state_confidence=assessment.confidence,
            aviv_ratio=aviv_ratio,
            aviv_zone=classify_aviv(aviv_ratio if aviv_ratio is not None else FALLBACK_AVIV),
            vaulted_supply=snapshot["vaulted_supply"],
            active_supply=snapshot["active_supply"],
            smart_money_activity=snapshot["smart_money_activity"],
            fed_rate_change=self._fetcher.get_fed_rate_change(end),
            mvrv_z_score=snapshot["mvrv_z_score"],
            price_drawdown=snapshot["price_drawdown"],
            realized_volatility=snapshot["realized_volatility"],
            data_source=data_source,
            warnings=warnings,
        )

    # =========================================================================
    # MONTE CARLO
    # =========================================================================

    def run_monte_carlo(
            self,
            db: Session,
            asset: str,
            investment: float,
            horizon_months: int,
            start: date | None = None,
            end: date | None = None,
    ) -> MonteCarloResult:
        """
        Project the investment from the asset's historical daily returns.

        Missing history yields the fixed-multiple fallback projection.
        """
        end = end or date.today()
        start = start or end - timedelta(days=DEFAULT_LOOKBACK_DAYS)
        _validate_period(start, end)
        resolved = self.resolve_asset(db, asset)

        try:
            prices = [p.price for p in self._fetch_prices(db, resolved, start, end).points]
        except InsufficientDataError as e:
            logger.warning(f"Monte Carlo for {resolved.symbol} without history: {e}")
            prices = []

        return self._simulate(prices, investment, horizon_months)

    def _simulate(self, prices: list[float], investment: float, horizon_months: int) -> MonteCarloResult:
        return run_monte_carlo(
            simple_returns(prices),
            investment,
            horizon_months,
            simulations=self._settings.monte_carlo_simulations,
            rng=np.random.default_rng(self._rng_seed),
        )

    # =========================================================================
    # FULL ANALYSIS
    # =========================================================================

    def analyze(self, db: Session, inputs: InvestmentInputs, as_of: date | None = None) -> AnalysisResult:
        """
        Run the full pipeline and persist the result.

        Raises:
            ValidationError: Inputs out of range
            CoinNotFoundError: coin_id not in the coins table
        """
        validate_inputs(inputs)
        resolved = self._require_coin(db, inputs.coin_id)
        coin = resolved.coin
        basket = inputs.basket or coin.basket
        end = as_of or date.today()
        start = end - timedelta(days=DEFAULT_LOOKBACK_DAYS)

        logger.info(
            f"Analyzing {coin.id}: amount={inputs.investment_amount}, "
            f"years={inputs.investment_horizon_years}, basket={basket.value}"
        )

        market = self.get_market_conditions(db, as_of=end)
        risk_free = self._fetcher.get_risk_free_rate(end)

        prices: list[PricePoint] = []
        cagr_result: CagrResult | None = None
        beta_result: ComprehensiveBetaResult | None = None
        warnings: list[str] = []

        try:
            fetched = self._fetch_prices(db, resolved, start, end)
            prices = fetched.points
            warnings.extend(fetched.warnings)
            cagr_result = calculate_cagr(
                prices, asset=resolved.symbol, data_source=fetched.data_source, symbol=resolved.symbol
            )
            beta_result = self._analysis_beta(db, resolved, fetched, start, end)
        except InsufficientDataError as e:
            logger.warning(f"Falling back to static metrics for {coin.id}: {e}")
            tagged, benchmark = self._fallback_metrics(
                coin, inputs, basket, market, risk_free, reason=str(e)
            )
            data_source = "static"
        else:
            tagged, benchmark = self._real_metrics(
                inputs, basket, market, risk_free, prices, cagr_result, beta_result, coin
            )
            data_source = fetched.data_source

        monte_carlo = self._simulate(
            [p.price for p in prices],
            inputs.investment_amount,
            max(1, round(inputs.investment_horizon_years * MONTHS_PER_YEAR)),
        )
        recommendation = compose_recommendation(
            tagged.metrics,
            market,
            monte_carlo,
            basket,
            inputs.investment_amount,
            inputs.total_portfolio,
        )

        market_return = self._market_return(benchmark)
        result = AnalysisResult(
            coin=CoinSummary(
                id=coin.id,
                symbol=coin.symbol,
                name=coin.name,
                basket=basket,
                price=float(coin.price) if coin.price is not None else None,
                market_cap=float(coin.market_cap) if coin.market_cap is not None else None,
            ),
            inputs=inputs,
            metrics=tagged,
            market_conditions=market,
            recommendation=recommendation,
            benchmark_comparison=BenchmarkComparison(
                benchmark=benchmark,
                market_return=market_return,
                asset_cagr=tagged.metrics.cagr,
                excess_return=tagged.metrics.cagr - market_return,
            ),
            monte_carlo=monte_carlo,
            data_source=data_source,
            cagr=cagr_result,
            beta=beta_result,
            warnings=warnings + market.warnings,
        )

        self._persist(db, result)
        logger.info(
            f"Analysis {result.id} for {coin.id}: {recommendation.recommendation.value} "
            f"(kind={tagged.kind}, confidence={recommendation.confidence})"
        )
        return result

    def _analysis_beta(
            self,
            db: Session,
            resolved: ResolvedAsset,
            fetched: FetchedPrices,
            start: date,
            end: date,
    ) -> ComprehensiveBetaResult:
        asset_points = [(p.date, p.price) for p in fetched.points]
        bench = self._select_benchmark(db, resolved, {d for d, _ in asset_points}, start, end)
        try:
            return calculate_comprehensive_beta(
                asset_points,
                bench.points,
                asset=resolved.symbol,
                benchmark=bench.benchmark,
                volumes=[p.volume for p in fetched.points],
                series_end=end,
                data_source=fetched.data_source,
            )
        except InsufficientDataError as e:
            logger.warning(f"Comprehensive beta failed for {resolved.symbol}, using sector estimate: {e}")
            return sector_beta_estimate(resolved.symbol, bench.benchmark, len(asset_points), fetched.data_source)

    def _build_metrics(
            self,
            inputs: InvestmentInputs,
            basket: Basket,
            market: MarketConditions,
            risk_free: float,
            cagr: float,
            volatility: float,
            beta: float,
            beta_confidence: Confidence,
            benchmark: Benchmark,
            liquidity_premium: float,
            data_quality: float,
            current_price: float | None,
    ) -> FinancialMetrics:
        amount = inputs.investment_amount
        years = inputs.investment_horizon_years
        growth = cagr + (inputs.staking_yield or 0.0)

        discount = calculate_discount_rate(risk_free, beta, self._market_return(benchmark), liquidity_premium)
        valuation = calculate_npv(amount, growth, years, discount.discount_rate)

        if inputs.expected_price is not None and current_price:
            expected_value = amount * inputs.expected_price / current_price
        else:
            expected_value = valuation.terminal_value

        return FinancialMetrics(
            npv=valuation.npv,
            irr=valuation.irr,
            cagr=growth,
            roi=calculate_roi(expected_value, amount),
            beta=beta,
            beta_confidence=beta_confidence,
            standard_deviation=volatility,
            sharpe_ratio=sharpe_ratio(growth, volatility),
            risk_factor=calculate_risk_factor(basket, volatility * 100, market.aviv_ratio),
            risk_adjusted_npv=risk_adjusted_npv(valuation.npv, volatility, amount),
            data_quality=data_quality,
            discount_rate=discount.discount_rate,
        )

    def _real_metrics(
            self,
            inputs: InvestmentInputs,
            basket: Basket,
            market: MarketConditions,
            risk_free: float,
            prices: list[PricePoint],
            cagr: CagrResult,
            beta: ComprehensiveBetaResult,
            coin: Coin,
    ) -> tuple[RealMetrics, Benchmark]:
        metrics = self._build_metrics(
            inputs,
            basket,
            market,
            risk_free,
            cagr=cagr.adjusted_cagr_decimal,
            volatility=annualized_volatility([p.price for p in prices]),
            beta=beta.beta,
            beta_confidence=beta.confidence,
            benchmark=beta.benchmark,
            liquidity_premium=cagr.liquidity.premium,
            data_quality=cagr.data_quality_score,
            current_price=prices[-1].price if prices else _to_float(coin.price),
        )
        tagged = RealMetrics(
            metrics=metrics,
            sources={
                "prices": cagr.data_source,
                "benchmark": beta.benchmark.value,
                "on_chain": market.data_source,
            },
            confidence=cagr.confidence,
        )
        return tagged, beta.benchmark

    def _fallback_metrics(
            self,
            coin: Coin,
            inputs: InvestmentInputs,
            basket: Basket,
            market: MarketConditions,
            risk_free: float,
            reason: str,
    ) -> tuple[FallbackMetrics, Benchmark]:
        symbol = coin.symbol.upper()
        benchmark = Benchmark.SP500 if symbol == BTC_BENCHMARK else Benchmark.BTC
        beta = (
            _to_float(coin.beta)
            if coin.beta is not None
            else sector_beta_estimate(symbol, benchmark).beta
        )

        metrics = self._build_metrics(
            inputs,
            basket,
            market,
            risk_free,
            cagr=_to_float(coin.cagr_36m) if coin.cagr_36m is not None else FALLBACK_CAGR,
            volatility=_to_float(coin.volatility) if coin.volatility is not None else FALLBACK_VOLATILITY,
            beta=beta,
            beta_confidence=Confidence.LOW,
            benchmark=benchmark,
            liquidity_premium=classify_liquidity([], symbol).premium,
            data_quality=0.0,
            current_price=_to_float(coin.price),
        )
        return FallbackMetrics(metrics=metrics, reason=reason), benchmark

    def _persist(self, db: Session, result: AnalysisResult) -> None:
        """Insert the analyses row; rows are never updated afterwards."""
        row = Analysis(
            coin_id=result.coin.id,
            inputs=to_jsonable(result.inputs),
            metrics={
                **to_jsonable(result.metrics),
                "monte_carlo": to_jsonable(result.monte_carlo),
                "benchmark_comparison": to_jsonable(result.benchmark_comparison),
            },
            market_conditions=to_jsonable(result.market_conditions),
            recommendation=to_jsonable(result.recommendation),
            metrics_kind=MetricsKind(result.metrics.kind),
            data_source=result.data_source,
        )
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
        except Exception as e:
            logger.error(f"Error persisting analysis for {result.coin.id}: {e}")
            db.rollback()
            raise

        result.id = row.id
        result.created_at = row.created_at

    # =========================================================================
    # HISTORY
    # =========================================================================

    def get_history(self, db: Session, coin_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Analysis]:
        """
        Most recent persisted analyses for a coin, newest first.

        Raises:
            CoinNotFoundError: Unknown coin
        """
        resolved = self._require_coin(db, coin_id)
        return list(db.execute(
            select(Analysis)
            .where(Analysis.coin_id == resolved.coin_id)
            .order_by(Analysis.created_at.desc(), Analysis.id.desc())
            .limit(limit)
        ).scalars().all())


# =============================================================================
# HELPERS
# =============================================================================

def validate_inputs(inputs: InvestmentInputs) -> None:
    """
    Positivity and range checks for programmatic callers.

    Raises:
        ValidationError: On the first failing field
    """
    if inputs.investment_amount <= 0:
        raise ValidationError("Investment amount must be positive", field="investment_amount")
    if inputs.total_portfolio <= 0:
        raise ValidationError("Total portfolio must be positive", field="total_portfolio")
    if not 0 < inputs.investment_horizon_years <= MAX_HORIZON_YEARS:
        raise ValidationError(
            f"Investment horizon must be in (0, {MAX_HORIZON_YEARS}] years",
            field="investment_horizon_years",
        )
    if inputs.expected_price is not None and inputs.expected_price <= 0:
        raise ValidationError("Expected price must be positive", field="expected_price")
    if inputs.staking_yield is not None and not 0 <= inputs.staking_yield <= 1:
        raise ValidationError("Staking yield must be between 0 and 1", field="staking_yield")


def _validate_period(start: date, end: date) -> None:
    if start >= end:
        raise ValidationError("start_date must be before end_date", field="start_date")


def _paired_returns(
        asset_points: list[tuple[date, float]],
        bench_points: list[tuple[date, float]],
) -> tuple[list[float], list[float]]:
    """Log returns of both series over their common dates."""
    _, asset_values, bench_values = align_series(
        [(d, v) for d, v in asset_points if v > 0],
        [(d, v) for d, v in bench_points if v > 0],
    )
    return log_returns(asset_values), log_returns(bench_values)


def _to_float(value: Any) -> float | None:
    return float(value) if value is not None else None


def _encode_prices(fetched: FetchedPrices) -> dict[str, Any]:
    return {
        "data_source": fetched.data_source,
        "points": [
            [p.date.isoformat(), p.price, p.volume, p.market_cap] for p in fetched.points
        ],
    }


def _decode_prices(payload: dict[str, Any]) -> FetchedPrices:
    return FetchedPrices(
        points=[
            PricePoint(date=date.fromisoformat(d), price=price, volume=volume, market_cap=cap)
            for d, price, volume, cap in payload["points"]
        ],
        data_source=payload["data_source"],
    )
