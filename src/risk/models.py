"""Value types shared by the stress-testing and analytics components."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidConfiguration

Matrix = Tuple[Tuple[float, ...], ...]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class PositionSnapshot:
    """Collateral/debt position as observed by the caller; never mutated by the engine."""

    asset: str
    quantity: float
    entry_price: float
    current_price: float
    collateral_value: float
    debt_value: float
    liquidation_threshold: float
    asset_class: str = "crypto"

    def __post_init__(self) -> None:
        if not self.asset:
            raise ValueError("asset must be non-empty")
        if self.quantity < 0.0:
            raise ValueError("quantity must be non-negative")
        if self.current_price < 0.0 or self.entry_price < 0.0:
            raise ValueError("prices must be non-negative")
        if self.debt_value < 0.0:
            raise ValueError("debt_value must be non-negative")

    @property
    def health_factor(self) -> float:
        # Debt-free positions cannot be liquidated.
        if self.debt_value <= 0.0:
            return math.inf
        return self.collateral_value / self.debt_value

    @property
    def net_value(self) -> float:
        return self.collateral_value - self.debt_value

    @property
    def is_liquidated(self) -> bool:
        return self.health_factor < self.liquidation_threshold

    def reprice(self, price: float) -> "PositionSnapshot":
        """Return a copy valued at ``price`` with collateral recomputed."""
        return replace(self, current_price=price, collateral_value=self.quantity * price)


class ScenarioKind(str, Enum):
    HISTORICAL_MARKET_CRASH = "HistoricalMarketCrash"
    CRYPTO_WINTER = "CryptoWinter"
    DEFI_CONTAGION = "DeFiContagion"
    REGULATORY_SHOCK = "RegulatoryShock"
    BLACK_SWAN = "BlackSwan"


@dataclass(frozen=True, slots=True)
class ScenarioTemplate:
    """Named shock template; instances in the catalog are never mutated."""

    name: str
    description: str
    price_shocks: Mapping[str, float]
    volume_shocks: Mapping[str, float]
    volatility_multiplier: float
    correlation_breakdown: bool
    liquidity_crisis: bool
    duration_days: int
    recovery_days: int | None = None


@dataclass(frozen=True, slots=True)
class CustomScenario:
    """User supplied scenario carrying the same shape as a built-in template."""

    name: str
    price_shocks: Mapping[str, float] = field(default_factory=dict)
    volume_shocks: Mapping[str, float] = field(default_factory=dict)
    volatility_multiplier: float = 1.0
    correlation_breakdown: bool = False
    liquidity_crisis: bool = False
    duration_days: int = 1
    description: str = ""
    recovery_days: int | None = 180

    def as_template(self) -> ScenarioTemplate:
        return ScenarioTemplate(
            name=self.name,
            description=self.description,
            price_shocks=dict(self.price_shocks),
            volume_shocks=dict(self.volume_shocks),
            volatility_multiplier=self.volatility_multiplier,
            correlation_breakdown=self.correlation_breakdown,
            liquidity_crisis=self.liquidity_crisis,
            duration_days=self.duration_days,
            recovery_days=self.recovery_days,
        )


Scenario = ScenarioKind | CustomScenario


@dataclass(frozen=True, slots=True)
class CorrelationMatrix:
    """Pairwise correlations for an ordered asset universe."""

    assets: Tuple[str, ...]
    matrix: Matrix
    timestamp: datetime = field(default_factory=_utcnow)
    time_window_days: int = 90
    confidence_level: float = 0.95

    def __post_init__(self) -> None:
        assets = tuple(self.assets)
        rows = tuple(tuple(float(value) for value in row) for row in self.matrix)
        object.__setattr__(self, "assets", assets)
        object.__setattr__(self, "matrix", rows)
        size = len(assets)
        if len(set(assets)) != size:
            raise InvalidConfiguration("correlation matrix assets must be unique")
        if len(rows) != size or any(len(row) != size for row in rows):
            raise InvalidConfiguration(
                f"correlation matrix must be {size}x{size} to match its asset list"
            )
        for i in range(size):
            if abs(rows[i][i] - 1.0) > 1e-9:
                raise InvalidConfiguration("correlation matrix diagonal must be 1.0")
            for j in range(i + 1, size):
                value = rows[i][j]
                if not -1.0 <= value <= 1.0:
                    raise InvalidConfiguration(f"correlation {value} outside [-1, 1]")
                if abs(value - rows[j][i]) > 1e-9:
                    raise InvalidConfiguration("correlation matrix must be symmetric")

    @classmethod
    def identity(cls, assets: Sequence[str]) -> "CorrelationMatrix":
        size = len(assets)
        return cls(
            assets=tuple(assets),
            matrix=tuple(
                tuple(1.0 if i == j else 0.0 for j in range(size)) for i in range(size)
            ),
        )

    @classmethod
    def from_returns(
        cls,
        returns: Mapping[str, Sequence[float]],
        *,
        time_window_days: int = 90,
        confidence_level: float = 0.95,
    ) -> "CorrelationMatrix":
        """Estimate a Pearson correlation matrix from aligned per-asset return series."""

        if len(returns) < 2:
            raise InvalidConfiguration("at least two return series are required")
        frame = pd.DataFrame({symbol: list(series) for symbol, series in returns.items()})
        corr = frame.corr().fillna(0.0)
        values = corr.to_numpy(copy=True)
        np.fill_diagonal(values, 1.0)
        values = np.clip((values + values.T) / 2.0, -1.0, 1.0)
        return cls(
            assets=tuple(str(column) for column in corr.columns),
            matrix=tuple(tuple(float(v) for v in row) for row in values),
            time_window_days=time_window_days,
            confidence_level=confidence_level,
        )

    def index_of(self, asset: str) -> int | None:
        try:
            return self.assets.index(asset)
        except ValueError:
            return None

    def correlation(self, left: str, right: str) -> float | None:
        if left == right:
            return 1.0
        i, j = self.index_of(left), self.index_of(right)
        if i is None or j is None:
            return None
        return self.matrix[i][j]

    def covers(self, assets: Sequence[str]) -> bool:
        return all(asset in self.assets for asset in assets)

    def as_array(self, assets: Sequence[str]) -> np.ndarray:
        """Sub-matrix ordered by ``assets``; every asset must be covered."""
        idx = [self.assets.index(asset) for asset in assets]
        return np.asarray(self.matrix, dtype=float)[np.ix_(idx, idx)]


@dataclass(frozen=True, slots=True)
class MonteCarloConfig:
    iterations: int = 10_000
    time_horizon_days: int = 30
    confidence_level: float = 0.95
    price_volatility: float = 0.5
    correlation_matrix: CorrelationMatrix | None = None
    drift_rates: Mapping[str, float] = field(default_factory=dict)
    seed: int | None = None

    def validate(self) -> None:
        if self.iterations <= 0:
            raise InvalidConfiguration(f"iterations must be positive, got {self.iterations}")
        if not math.isfinite(self.price_volatility) or self.price_volatility < 0.0:
            raise InvalidConfiguration(
                f"price_volatility must be a non-negative number, got {self.price_volatility}"
            )
        if not 0.0 < self.confidence_level < 1.0:
            raise InvalidConfiguration(
                f"confidence_level must be in (0, 1), got {self.confidence_level}"
            )
        if self.time_horizon_days < 0:
            raise InvalidConfiguration("time_horizon_days must be non-negative")


@dataclass(frozen=True, slots=True)
class RiskMetrics:
    """Risk-adjusted performance summary owned by a single result."""

    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_duration: int = 0
    recovery_time_days: int | None = None
    volatility: float = 0.0
    beta: float = 0.0
    tracking_error: float = 0.0
    information_ratio: float = 0.0
    var: Mapping[float, float] = field(default_factory=dict)
    cvar: Mapping[float, float] = field(default_factory=dict)
    correlation_matrix: Matrix = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "sharpe_ratio": self.sharpe_ratio,
            "sortino_ratio": self.sortino_ratio,
            "calmar_ratio": self.calmar_ratio,
            "max_drawdown": self.max_drawdown,
            "max_drawdown_duration": self.max_drawdown_duration,
            "recovery_time_days": self.recovery_time_days,
            "volatility": self.volatility,
            "beta": self.beta,
            "tracking_error": self.tracking_error,
            "information_ratio": self.information_ratio,
            "var": {str(level): value for level, value in self.var.items()},
            "cvar": {str(level): value for level, value in self.cvar.items()},
            "correlation_matrix": [list(row) for row in self.correlation_matrix],
        }


class RecommendationType(str, Enum):
    REDUCE_EXPOSURE = "reduce_exposure"
    INCREASE_COLLATERAL = "increase_collateral"
    HEDGE_RISK = "hedge_risk"
    DIVERSIFY_PORTFOLIO = "diversify_portfolio"
    ADD_STOP_LOSS = "add_stop_loss"
    REBALANCE_ALLOCATION = "rebalance_allocation"


class RecommendationPriority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


@dataclass(frozen=True, slots=True)
class Recommendation:
    kind: RecommendationType
    priority: RecommendationPriority
    description: str
    expected_impact: float
    implementation_cost: float
    time_to_implement_days: int
    confidence: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "priority": self.priority.name.lower(),
            "description": self.description,
            "expected_impact": self.expected_impact,
            "implementation_cost": self.implementation_cost,
            "time_to_implement_days": self.time_to_implement_days,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class SimulationResult:
    """Outcome of one stress test, Monte Carlo iteration, or backtest."""

    scenario: str
    scenario_name: str
    initial_value: float
    final_value: float
    max_drawdown: float
    var_95: float
    cvar_95: float
    liquidated_positions: Tuple[str, ...]
    surviving_positions: Tuple[str, ...]
    risk_metrics: RiskMetrics
    recommendations: Tuple[Recommendation, ...] = ()
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def portfolio_return(self) -> float:
        if self.initial_value == 0.0:
            return 0.0
        return (self.final_value - self.initial_value) / self.initial_value

    def as_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "scenario_name": self.scenario_name,
            "initial_value": self.initial_value,
            "final_value": self.final_value,
            "max_drawdown": self.max_drawdown,
            "var_95": self.var_95,
            "cvar_95": self.cvar_95,
            "liquidated_positions": list(self.liquidated_positions),
            "surviving_positions": list(self.surviving_positions),
            "risk_metrics": self.risk_metrics.as_dict(),
            "recommendations": [rec.as_dict() for rec in self.recommendations],
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class PortfolioPosition:
    """Holding inside a registered portfolio used by the analytics operations."""

    symbol: str
    value_usd: float
    quantity: float = 0.0
    volatility: float = 0.0
    beta: float = 1.0
    risk_score: float = 0.5
    asset_class: str = "crypto"


class DiversificationLevel(str, Enum):
    POOR = "poor"
    MODERATE = "moderate"
    GOOD = "good"
    EXCELLENT = "excellent"


@dataclass(frozen=True, slots=True)
class DiversificationMetrics:
    diversification_score: float
    effective_number_assets: float
    concentration_risk: float
    herfindahl_index: float
    gini_coefficient: float
    max_weight: float
    sector_concentration: Mapping[str, float]
    correlation_based_diversification: float


@dataclass(frozen=True, slots=True)
class ConcentrationAnalysis:
    total_portfolio_value: float
    largest_position_percentage: float
    top_5_concentration: float
    top_10_concentration: float
    single_asset_limit_violations: Tuple[str, ...]
    sector_concentration_violations: Tuple[Tuple[str, float], ...]
    risk_contribution_analysis: Mapping[str, float]


class DiversificationAction(str, Enum):
    REDUCE_LARGEST_POSITION = "reduce_largest_position"
    DIVERSIFY_ACROSS_SECTORS = "diversify_across_sectors"
    ADD_ASSET_CLASS = "add_asset_class"
    HEDGE_CORRELATED_RISK = "hedge_correlated_risk"
    REBALANCE_ALLOCATIONS = "rebalance_allocations"


@dataclass(frozen=True, slots=True)
class DiversificationRecommendation:
    action: DiversificationAction
    priority: int
    description: str
    expected_improvement: float
    risk_reduction_estimate: float
    suggested_allocations: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ComponentRiskAnalysis:
    individual_var: Mapping[str, float]
    marginal_var: Mapping[str, float]
    component_var: Mapping[str, float]
    risk_contributions: Mapping[str, float]
    diversification_ratio: float
    concentration_index: float


@dataclass(frozen=True, slots=True)
class DownsideRiskMetrics:
    downside_deviation: float
    semi_variance: float
    downside_beta: float
    pain_index: float
    ulcer_index: float
    sterling_ratio: float
    burke_ratio: float


@dataclass(frozen=True, slots=True)
class TailRiskMetrics:
    expected_shortfall_95: float
    expected_shortfall_99: float
    hill_estimator: float
    peaks_over_threshold: float


@dataclass(frozen=True, slots=True)
class VolatilityMetrics:
    realized_volatility: float
    ewma_volatility: float
    volatility_of_volatility: float
    skewness: float


__all__ = [
    "ComponentRiskAnalysis",
    "ConcentrationAnalysis",
    "CorrelationMatrix",
    "CustomScenario",
    "DiversificationAction",
    "DiversificationLevel",
    "DiversificationMetrics",
    "DiversificationRecommendation",
    "DownsideRiskMetrics",
    "Matrix",
    "MonteCarloConfig",
    "PortfolioPosition",
    "PositionSnapshot",
    "Recommendation",
    "RecommendationPriority",
    "RecommendationType",
    "RiskMetrics",
    "Scenario",
    "ScenarioKind",
    "ScenarioTemplate",
    "SimulationResult",
    "TailRiskMetrics",
    "VolatilityMetrics",
]
