"""Quantitative risk core: scenarios, stress tests, Monte Carlo and portfolio analytics."""

from .errors import (
    CalculationError,
    EmptyPortfolio,
    InvalidConfiguration,
    PortfolioNotFound,
    RiskEngineError,
    SimulationTimeout,
)
from .models import CustomScenario, MonteCarloConfig, PositionSnapshot, ScenarioKind
from .scenarios import SCENARIO_CATALOG, resolve_scenario
from .stress import StressTestHarness, apply_scenario, classify_liquidations

__all__ = [
    "CalculationError",
    "CustomScenario",
    "EmptyPortfolio",
    "InvalidConfiguration",
    "MonteCarloConfig",
    "PortfolioNotFound",
    "PositionSnapshot",
    "RiskEngineError",
    "SCENARIO_CATALOG",
    "ScenarioKind",
    "SimulationTimeout",
    "StressTestHarness",
    "apply_scenario",
    "classify_liquidations",
    "resolve_scenario",
]
