"""Deterministic stress-test harness applying scenario shocks to collateral positions."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from .metrics import (
    DEFAULT_CONFIDENCE_LEVELS,
    DEFAULT_PARAMETRIC_TABLE,
    ParametricTable,
    parametric_cvar,
    parametric_var,
)
from .models import (
    PositionSnapshot,
    Recommendation,
    RiskMetrics,
    Scenario,
    ScenarioTemplate,
    SimulationResult,
)
from .recommendations import RecommendationEngine
from .scenarios import SCENARIO_CATALOG, resolve_scenario, scenario_identifier

logger = logging.getLogger("aegis.risk.stress")


def apply_scenario(
    positions: Sequence[PositionSnapshot],
    template: ScenarioTemplate,
) -> List[PositionSnapshot]:
    """Reprice every position whose asset has a shock; others pass through untouched."""
    shocked: List[PositionSnapshot] = []
    for position in positions:
        shock = template.price_shocks.get(position.asset)
        if shock is None:
            shocked.append(position)
            continue
        shocked.append(position.reprice(position.current_price * (1.0 + shock)))
    return shocked


def classify_liquidations(
    positions: Sequence[PositionSnapshot],
) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Split assets into (liquidated, surviving); a position at its threshold survives."""
    liquidated: List[str] = []
    surviving: List[str] = []
    for position in positions:
        (liquidated if position.is_liquidated else surviving).append(position.asset)
    return tuple(liquidated), tuple(surviving)


def portfolio_value(positions: Sequence[PositionSnapshot]) -> float:
    return sum(position.net_value for position in positions)


@dataclass(frozen=True, slots=True)
class StressSettings:
    risk_free_rate: float = 0.02
    baseline_volatility: float = 0.5
    parametric_table: ParametricTable = DEFAULT_PARAMETRIC_TABLE


class StressTestHarness:
    """Applies a scenario template to a position list and scores the outcome."""

    def __init__(
        self,
        *,
        settings: StressSettings | None = None,
        catalog: Mapping | None = None,
        recommender: RecommendationEngine | None = None,
    ) -> None:
        self._settings = settings or StressSettings()
        self._catalog = catalog if catalog is not None else SCENARIO_CATALOG
        self._recommender = recommender

    def run(self, positions: Sequence[PositionSnapshot], scenario: Scenario) -> SimulationResult:
        started = time.perf_counter()
        template = resolve_scenario(scenario, self._catalog)
        shocked = apply_scenario(positions, template)
        liquidated, surviving = classify_liquidations(shocked)
        initial = portfolio_value(positions)
        final = portfolio_value(shocked)
        period_return = (final - initial) / initial if initial != 0.0 else 0.0

        metrics = self._risk_metrics(positions, template, period_return)
        var_95 = metrics.var.get(0.95, 0.0)
        cvar_95 = metrics.cvar.get(0.95, 0.0)
        recommendations: Tuple[Recommendation, ...] = ()
        if self._recommender is not None:
            recommendations = tuple(
                self._recommender.for_stress_result(shocked, liquidated, metrics)
            )
        logger.debug(
            "stress scenario applied",
            extra={
                "scenario": template.name,
                "positions": len(positions),
                "liquidated": len(liquidated),
                "portfolio_return": period_return,
            },
        )
        return SimulationResult(
            scenario=scenario_identifier(scenario),
            scenario_name=template.name,
            initial_value=initial,
            final_value=final,
            max_drawdown=min(period_return, 0.0),
            var_95=var_95,
            cvar_95=cvar_95,
            liquidated_positions=liquidated,
            surviving_positions=surviving,
            risk_metrics=metrics,
            recommendations=recommendations,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    def _risk_metrics(
        self,
        positions: Sequence[PositionSnapshot],
        template: ScenarioTemplate,
        period_return: float,
    ) -> RiskMetrics:
        settings = self._settings
        volatility = settings.baseline_volatility * template.volatility_multiplier
        sharpe = (period_return - settings.risk_free_rate) / volatility if volatility > 0.0 else 0.0
        drawdown = min(period_return, 0.0)
        duration = max(template.duration_days, 1)
        calmar = period_return * 365.0 / duration / abs(drawdown) if drawdown < 0.0 else 0.0

        shocks = list(template.price_shocks.values())
        mean_shock = sum(shocks) / len(shocks) if shocks else 0.0
        beta = period_return / mean_shock if mean_shock != 0.0 else 0.0

        # Loss fractions (unit value) over the scenario horizon, capped at a total loss.
        horizon_sigma = volatility * math.sqrt(duration / 252.0)
        table = settings.parametric_table
        var: Dict[float, float] = {}
        cvar: Dict[float, float] = {}
        for level in DEFAULT_CONFIDENCE_LEVELS:
            var[level] = min(parametric_var(horizon_sigma, 1.0, level, table), 1.0)
            cvar[level] = min(parametric_cvar(horizon_sigma, 1.0, level, table), 1.0)

        assets = sorted({position.asset for position in positions})
        size = len(assets)
        fill = 1.0 if template.correlation_breakdown else 0.0
        matrix = tuple(
            tuple(1.0 if i == j else fill for j in range(size)) for i in range(size)
        )
        return RiskMetrics(
            sharpe_ratio=sharpe,
            sortino_ratio=sharpe if period_return < 0.0 else 0.0,
            calmar_ratio=calmar,
            max_drawdown=drawdown,
            max_drawdown_duration=template.duration_days if drawdown < 0.0 else 0,
            recovery_time_days=template.recovery_days,
            volatility=volatility,
            beta=beta,
            var=var,
            cvar=cvar,
            correlation_matrix=matrix,
        )


__all__ = [
    "StressSettings",
    "StressTestHarness",
    "apply_scenario",
    "classify_liquidations",
    "portfolio_value",
]
