# backend/app/services/analysis/monte_carlo.py
"""
Monte Carlo projection of an investment's terminal value.

Each path compounds monthly:

    value_{m+1} = value_m x (1 + mean + std x U(-1, 1))

where mean and std are the population moments of the historical period
returns. The shock is uniform on [-1, 1], not Gaussian; it keeps the
expected monthly growth at exactly 1 + mean, so the expected terminal value
is investment x (1 + mean)^months.

With fewer than 30 prices a fixed-multiple projection is returned instead.
"""

import logging
import math
from typing import Sequence

import numpy as np

from app.services.analysis.primitives import mean, standard_deviation
from app.services.analysis.types import MonteCarloResult
from app.services.constants import (
    FALLBACK_EXPECTED_MULTIPLE,
    FALLBACK_LOWER_MULTIPLE,
    FALLBACK_PROBABILITY_OF_LOSS,
    FALLBACK_UPPER_MULTIPLE,
    FALLBACK_VAR_MULTIPLE,
    MIN_MONTE_CARLO_PRICES,
    MONTE_CARLO_LOWER_PERCENTILE,
    MONTE_CARLO_UPPER_PERCENTILE,
)
from app.services.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SIMULATIONS = 10_000


def fallback_projection(investment: float, horizon_months: int) -> MonteCarloResult:
    """Fixed-multiple projection used when history is too short to simulate."""
    return MonteCarloResult(
        investment=investment,
        horizon_months=horizon_months,
        simulations=0,
        expected_value=investment * FALLBACK_EXPECTED_MULTIPLE,
        median=investment * FALLBACK_EXPECTED_MULTIPLE,
        lower_bound=investment * FALLBACK_LOWER_MULTIPLE,
        upper_bound=investment * FALLBACK_UPPER_MULTIPLE,
        probability_of_loss=FALLBACK_PROBABILITY_OF_LOSS,
        value_at_risk=investment * FALLBACK_VAR_MULTIPLE,
        is_fallback=True,
    )


def run_monte_carlo(
        returns: Sequence[float],
        investment: float,
        horizon_months: int,
        simulations: int = DEFAULT_SIMULATIONS,
        rng: np.random.Generator | None = None,
) -> MonteCarloResult:
    """
    Simulate terminal values of `investment` after `horizon_months`.

    Args:
        returns: Historical period returns (len = prices - 1)
        investment: Initial value (> 0)
        horizon_months: Number of monthly steps (>= 1)
        simulations: Number of paths (>= 1)
        rng: numpy Generator; pass a seeded one for reproducible output

    Raises:
        ValidationError: On out-of-range inputs
    """
    if investment <= 0:
        raise ValidationError("Investment must be positive", field="investment")
    if horizon_months < 1:
        raise ValidationError("Horizon must be at least one month", field="horizon_months")
    if simulations < 1:
        raise ValidationError("At least one simulation is required", field="simulations")

    if len(returns) + 1 < MIN_MONTE_CARLO_PRICES:
        logger.info(
            f"Monte Carlo fallback: {len(returns) + 1} prices (minimum {MIN_MONTE_CARLO_PRICES})"
        )
        return fallback_projection(investment, horizon_months)

    mu = mean(returns)
    sigma = standard_deviation(returns, ddof=0)
    generator = rng if rng is not None else np.random.default_rng()

    shocks = generator.uniform(-1.0, 1.0, size=(simulations, horizon_months))
    terminal = investment * np.prod(1.0 + mu + sigma * shocks, axis=1)
    terminal.sort()

    lower = float(terminal[min(math.floor(simulations * MONTE_CARLO_LOWER_PERCENTILE), simulations - 1)])
    upper = float(terminal[min(math.floor(simulations * MONTE_CARLO_UPPER_PERCENTILE), simulations - 1)])

    result = MonteCarloResult(
        investment=investment,
        horizon_months=horizon_months,
        simulations=simulations,
        expected_value=float(terminal.mean()),
        median=float(np.median(terminal)),
        lower_bound=lower,
        upper_bound=upper,
        probability_of_loss=float(np.count_nonzero(terminal < investment)) / simulations,
        value_at_risk=max(0.0, investment - lower),
        mean_return=mu,
        std_return=sigma,
    )

    logger.debug(
        f"Monte Carlo: {simulations} paths x {horizon_months} months, "
        f"EV={result.expected_value:.2f}, P(loss)={result.probability_of_loss:.3f}"
    )
    return result
