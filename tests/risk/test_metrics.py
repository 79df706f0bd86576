from __future__ import annotations

import math
import random

import numpy as np
import pytest

from risk.errors import EmptyPortfolio
from risk.metrics import (
    DEFAULT_CONFIDENCE_LEVELS,
    ParametricTable,
    RiskMetricsCalculator,
    downside_deviation,
    drawdown_duration,
    empirical_cvar,
    empirical_var,
    max_drawdown,
    parametric_cvar,
    parametric_var,
    portfolio_volatility,
    simple_returns,
)
from risk.models import CorrelationMatrix, PortfolioPosition


def _sample_returns(seed: int, count: int = 500) -> list[float]:
    rng = random.Random(seed)
    return [rng.gauss(0.0005, 0.03) for _ in range(count)]


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_var_and_cvar_are_monotone_in_confidence(seed: int) -> None:
    returns = _sample_returns(seed)
    var = [empirical_var(returns, level) for level in DEFAULT_CONFIDENCE_LEVELS]
    cvar = [empirical_cvar(returns, level) for level in DEFAULT_CONFIDENCE_LEVELS]

    assert var == sorted(var)
    assert cvar == sorted(cvar)
    for level_var, level_cvar in zip(var, cvar):
        assert level_cvar >= level_var


def test_empirical_var_uses_floor_index_into_sorted_returns() -> None:
    returns = [0.01 * i for i in range(-10, 10)]  # -0.10 .. 0.09
    # floor(0.05 * 20) = 1 -> second smallest return
    assert empirical_var(returns, 0.95) == pytest.approx(0.09)
    assert empirical_cvar(returns, 0.95) == pytest.approx(0.095)


def test_var_of_flat_returns_is_zero() -> None:
    assert empirical_var([0.0] * 10, 0.99) == 0.0
    assert empirical_cvar([0.0] * 10, 0.99) == 0.0
    assert empirical_var([], 0.95) == 0.0


def test_parametric_tables_fall_back_to_95() -> None:
    table = ParametricTable()
    assert parametric_var(0.2, 1_000.0, 0.95) == pytest.approx(1.645 * 0.2 * 1_000.0)
    assert parametric_cvar(0.2, 1_000.0, 0.99) == pytest.approx(2.665 * 0.2 * 1_000.0)
    assert table.z(0.975) == 1.645
    assert table.cvar_multiplier(0.5) == 2.063
    custom = ParametricTable(z_scores={0.95: 1.65}, cvar_multipliers={0.95: 2.06})
    assert parametric_var(1.0, 1.0, 0.99, custom) == 1.65


def test_max_drawdown_uses_running_peak() -> None:
    assert max_drawdown([100, 110, 60, 80]) == pytest.approx(-0.4545, abs=1e-4)
    assert max_drawdown([100, 101, 102]) == 0.0
    assert drawdown_duration([100, 110, 60, 80, 120]) == (1, 2)
    assert drawdown_duration([100, 110, 60, 80]) == (1, None)


def test_portfolio_volatility_with_and_without_correlation() -> None:
    weights = [0.5, 0.5]
    vols = [0.4, 0.2]
    assert portfolio_volatility(weights, vols) == pytest.approx(0.3)
    uncorrelated = portfolio_volatility(weights, vols, np.eye(2))
    assert uncorrelated == pytest.approx(math.sqrt(0.25 * 0.16 + 0.25 * 0.04))
    perfectly = portfolio_volatility(weights, vols, np.ones((2, 2)))
    assert perfectly == pytest.approx(0.3)
    # Mismatched matrix dimension falls back to the weighted average.
    assert portfolio_volatility(weights, vols, np.eye(3)) == pytest.approx(0.3)


def test_sharpe_and_sortino_annualize_daily_returns() -> None:
    calculator = RiskMetricsCalculator(risk_free_rate=0.0)
    returns = [0.01, -0.01, 0.02, -0.02]
    assert calculator.sharpe_ratio(returns) == 0.0
    positive = [0.01, 0.02, -0.005, 0.015]
    sharpe = calculator.sharpe_ratio(positive)
    expected = np.mean(positive) / np.std(positive) * math.sqrt(252)
    assert sharpe == pytest.approx(expected)
    # A single losing day has no dispersion, so there is no downside deviation.
    assert calculator.sortino_ratio(positive) == 0.0
    mixed = [0.01, 0.02, -0.005, -0.015, 0.03]
    assert calculator.sortino_ratio(mixed) == pytest.approx(
        np.mean(mixed) / 0.005 * math.sqrt(252)
    )


def test_downside_deviation_ignores_gains_and_centres_on_losses() -> None:
    assert downside_deviation([-0.01, -0.03, 0.05, 0.0]) == pytest.approx(0.01)
    assert downside_deviation([0.01, 0.02]) == 0.0
    assert downside_deviation([-0.02]) == 0.0


def test_from_returns_builds_complete_metrics() -> None:
    calculator = RiskMetricsCalculator()
    returns = simple_returns([100, 110, 60, 80])
    benchmark = [0.05, -0.3, 0.2]
    metrics = calculator.from_returns(returns, benchmark=benchmark, beta=1.2)

    assert metrics.max_drawdown == pytest.approx(-0.4545, abs=1e-4)
    assert metrics.max_drawdown_duration == 1
    assert metrics.recovery_time_days is None
    assert metrics.beta == 1.2
    assert metrics.tracking_error > 0.0
    assert set(metrics.var) == set(DEFAULT_CONFIDENCE_LEVELS)
    assert metrics.calmar_ratio != 0.0


def test_component_risk_contributions_sum_to_100() -> None:
    positions = [
        PortfolioPosition(symbol="BTC", value_usd=60_000.0, volatility=0.6),
        PortfolioPosition(symbol="ETH", value_usd=30_000.0, volatility=0.8),
        PortfolioPosition(symbol="USDC", value_usd=10_000.0, volatility=0.01),
    ]
    matrix = CorrelationMatrix(
        assets=("BTC", "ETH", "USDC"),
        matrix=((1.0, 0.8, 0.0), (0.8, 1.0, 0.1), (0.0, 0.1, 1.0)),
    )
    calculator = RiskMetricsCalculator()

    correlated = calculator.component_risk(positions, matrix)
    assert sum(correlated.risk_contributions.values()) == pytest.approx(100.0)
    assert correlated.diversification_ratio >= 1.0
    assert correlated.concentration_index == pytest.approx(0.36 + 0.09 + 0.01)

    fallback = calculator.component_risk(positions)
    assert sum(fallback.risk_contributions.values()) == pytest.approx(100.0)
    assert fallback.diversification_ratio == pytest.approx(1.0)


def test_component_risk_rejects_empty_portfolio() -> None:
    with pytest.raises(EmptyPortfolio):
        RiskMetricsCalculator().component_risk([])


def test_downside_tail_and_volatility_metrics() -> None:
    calculator = RiskMetricsCalculator()
    returns = _sample_returns(3, 300)

    downside = calculator.downside_risk(returns, benchmark=_sample_returns(4, 300))
    assert downside.downside_deviation > 0.0
    assert downside.semi_variance == pytest.approx(downside.downside_deviation ** 2)
    assert downside.ulcer_index >= downside.pain_index >= 0.0

    tail = calculator.tail_risk(returns)
    assert tail.expected_shortfall_99 >= tail.expected_shortfall_95 > 0.0
    assert tail.hill_estimator > 0.0
    assert tail.peaks_over_threshold > 0.0

    vol = calculator.volatility_metrics(returns)
    assert vol.realized_volatility == pytest.approx(np.std(returns) * math.sqrt(252))
    assert vol.ewma_volatility > 0.0
    assert vol.volatility_of_volatility > 0.0


def test_metrics_on_empty_series_are_zero() -> None:
    calculator = RiskMetricsCalculator()
    assert calculator.tail_risk([]).expected_shortfall_95 == 0.0
    assert calculator.volatility_metrics([]).realized_volatility == 0.0
    assert calculator.sharpe_ratio([]) == 0.0
