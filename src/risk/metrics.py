"""Risk metric calculations: VaR/CVaR, volatility, ratios, drawdowns, decompositions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import CalculationError, EmptyPortfolio
from .models import (
    ComponentRiskAnalysis,
    CorrelationMatrix,
    DownsideRiskMetrics,
    Matrix,
    PortfolioPosition,
    RiskMetrics,
    TailRiskMetrics,
    VolatilityMetrics,
)

TRADING_DAYS = 252
DEFAULT_CONFIDENCE_LEVELS: Tuple[float, ...] = (0.90, 0.95, 0.99, 0.995)
EWMA_LAMBDA = 0.94
VOL_OF_VOL_WINDOW = 20


@dataclass(frozen=True, slots=True)
class ParametricTable:
    """Normal-approximation constants keyed by confidence level."""

    z_scores: Mapping[float, float] = field(
        default_factory=lambda: {0.90: 1.282, 0.95: 1.645, 0.99: 2.326, 0.995: 2.576}
    )
    cvar_multipliers: Mapping[float, float] = field(
        default_factory=lambda: {0.90: 1.755, 0.95: 2.063, 0.99: 2.665, 0.995: 2.892}
    )

    def z(self, confidence: float) -> float:
        return self.z_scores.get(confidence, self.z_scores[0.95])

    def cvar_multiplier(self, confidence: float) -> float:
        return self.cvar_multipliers.get(confidence, self.cvar_multipliers[0.95])


DEFAULT_PARAMETRIC_TABLE = ParametricTable()


def _loss(value: float) -> float:
    return max(-value, 0.0)


def empirical_var(returns: Sequence[float], confidence: float) -> float:
    """Historical VaR as a non-negative loss fraction."""
    if not returns:
        return 0.0
    ordered = sorted(returns)
    index = min(int((1.0 - confidence) * len(ordered)), len(ordered) - 1)
    return _loss(ordered[index])


def empirical_cvar(returns: Sequence[float], confidence: float) -> float:
    """Mean loss of the returns at or below the VaR return."""
    if not returns:
        return 0.0
    ordered = sorted(returns)
    index = min(int((1.0 - confidence) * len(ordered)), len(ordered) - 1)
    cutoff = ordered[index]
    tail = [value for value in ordered if value <= cutoff]
    if not tail:
        return _loss(cutoff)
    return _loss(sum(tail) / len(tail))


def empirical_var_cvar(
    returns: Sequence[float],
    levels: Sequence[float] = DEFAULT_CONFIDENCE_LEVELS,
) -> Tuple[Dict[float, float], Dict[float, float]]:
    var = {level: empirical_var(returns, level) for level in levels}
    cvar = {level: empirical_cvar(returns, level) for level in levels}
    return var, cvar


def parametric_var(
    sigma: float,
    value: float,
    confidence: float,
    table: ParametricTable = DEFAULT_PARAMETRIC_TABLE,
) -> float:
    return table.z(confidence) * sigma * value


def parametric_cvar(
    sigma: float,
    value: float,
    confidence: float,
    table: ParametricTable = DEFAULT_PARAMETRIC_TABLE,
) -> float:
    return table.cvar_multiplier(confidence) * sigma * value


def portfolio_volatility(
    weights: Sequence[float],
    volatilities: Sequence[float],
    correlation: np.ndarray | None = None,
) -> float:
    """Covariance-weighted volatility; value-weighted average when no correlation is known."""

    w = np.asarray(weights, dtype=float)
    sigma = np.asarray(volatilities, dtype=float)
    if correlation is None or correlation.shape != (len(w), len(w)):
        return float(np.dot(w, sigma))
    covariance = np.outer(sigma, sigma) * correlation
    variance = float(w @ covariance @ w)
    return math.sqrt(max(variance, 0.0))


def simple_returns(values: Sequence[float]) -> List[float]:
    returns: List[float] = []
    for previous, current in zip(values, values[1:]):
        returns.append(0.0 if previous == 0.0 else (current - previous) / previous)
    return returns


def cumulative_values(returns: Sequence[float]) -> List[float]:
    values = [1.0]
    for value in returns:
        values.append(values[-1] * (1.0 + value))
    return values


def drawdown_series(values: Sequence[float]) -> List[float]:
    drawdowns: List[float] = []
    peak = -math.inf
    for value in values:
        peak = max(peak, value)
        drawdowns.append((value - peak) / peak if peak > 0.0 else 0.0)
    return drawdowns


def max_drawdown(values: Sequence[float]) -> float:
    """Most negative peak-to-trough drawdown of a value trajectory (0 when flat)."""
    drawdowns = drawdown_series(values)
    return min(drawdowns) if drawdowns else 0.0


def drawdown_duration(values: Sequence[float]) -> Tuple[int, int | None]:
    """Observations from peak to the deepest trough, and from trough back to the peak.

    Recovery is ``None`` while the trajectory has not regained the peak.
    """

    if len(values) < 2:
        return 0, None
    drawdowns = drawdown_series(values)
    trough = int(np.argmin(drawdowns))
    if drawdowns[trough] >= 0.0:
        return 0, 0
    peak_index = int(np.argmax(values[: trough + 1]))
    peak_value = values[peak_index]
    recovery: int | None = None
    for offset, value in enumerate(values[trough + 1 :], start=1):
        if value >= peak_value:
            recovery = offset
            break
    return trough - peak_index, recovery


def _std(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def downside_deviation(returns: Sequence[float]) -> float:
    """Population standard deviation of the strictly negative returns."""
    return _std([value for value in returns if value < 0.0])


class RiskMetricsCalculator:
    """Stateless metric calculator parameterised by the risk-free rate and parametric table."""

    def __init__(
        self,
        *,
        risk_free_rate: float = 0.02,
        parametric_table: ParametricTable = DEFAULT_PARAMETRIC_TABLE,
        confidence_levels: Sequence[float] = DEFAULT_CONFIDENCE_LEVELS,
    ) -> None:
        self.risk_free_rate = risk_free_rate
        self.parametric_table = parametric_table
        self.confidence_levels = tuple(confidence_levels)

    @property
    def daily_risk_free_rate(self) -> float:
        return self.risk_free_rate / TRADING_DAYS

    def sharpe_ratio(self, returns: Sequence[float]) -> float:
        volatility = _std(returns)
        if not returns or volatility == 0.0:
            return 0.0
        excess = float(np.mean(returns)) - self.daily_risk_free_rate
        return excess / volatility * math.sqrt(TRADING_DAYS)

    def sortino_ratio(self, returns: Sequence[float]) -> float:
        deviation = downside_deviation(returns)
        if not returns or deviation == 0.0:
            return 0.0
        excess = float(np.mean(returns)) - self.daily_risk_free_rate
        return excess / deviation * math.sqrt(TRADING_DAYS)

    @staticmethod
    def calmar_ratio(returns: Sequence[float], drawdown: float) -> float:
        if not returns or drawdown == 0.0:
            return 0.0
        return float(np.mean(returns)) * TRADING_DAYS / abs(drawdown)

    @staticmethod
    def tracking_error(returns: Sequence[float], benchmark: Sequence[float]) -> float:
        excess = _aligned_excess(returns, benchmark)
        if not excess:
            return 0.0
        return _std(excess) * math.sqrt(TRADING_DAYS)

    def information_ratio(self, returns: Sequence[float], benchmark: Sequence[float]) -> float:
        error = self.tracking_error(returns, benchmark)
        if error == 0.0:
            return 0.0
        excess = _aligned_excess(returns, benchmark)
        return float(np.mean(excess)) * TRADING_DAYS / error

    def from_returns(
        self,
        returns: Sequence[float],
        *,
        benchmark: Sequence[float] | None = None,
        beta: float = 0.0,
        correlation_matrix: Matrix = (),
    ) -> RiskMetrics:
        """Build a full RiskMetrics record from a daily return series."""

        values = cumulative_values(returns)
        drawdown = max_drawdown(values)
        duration, recovery = drawdown_duration(values)
        var, cvar = empirical_var_cvar(returns, self.confidence_levels)
        benchmark = benchmark or []
        return RiskMetrics(
            sharpe_ratio=self.sharpe_ratio(returns),
            sortino_ratio=self.sortino_ratio(returns),
            calmar_ratio=self.calmar_ratio(returns, drawdown),
            max_drawdown=drawdown,
            max_drawdown_duration=duration,
            recovery_time_days=recovery,
            volatility=_std(returns) * math.sqrt(TRADING_DAYS),
            beta=beta,
            tracking_error=self.tracking_error(returns, benchmark),
            information_ratio=self.information_ratio(returns, benchmark),
            var=var,
            cvar=cvar,
            correlation_matrix=correlation_matrix,
        )

    def component_risk(
        self,
        positions: Sequence[PortfolioPosition],
        correlation: CorrelationMatrix | None = None,
        *,
        confidence: float = 0.95,
    ) -> ComponentRiskAnalysis:
        """Euler decomposition of parametric portfolio VaR into per-asset components."""

        total = sum(position.value_usd for position in positions)
        if total <= 0.0:
            raise EmptyPortfolio("portfolio total value must be positive")
        symbols = [position.symbol for position in positions]
        w = np.array([position.value_usd / total for position in positions])
        sigma = np.array([position.volatility for position in positions])
        z = self.parametric_table.z(confidence)

        if correlation is not None and len(symbols) > 1 and correlation.covers(symbols):
            covariance = np.outer(sigma, sigma) * correlation.as_array(symbols)
            portfolio_sigma = math.sqrt(max(float(w @ covariance @ w), 0.0))
            if portfolio_sigma > 0.0:
                marginal = z * total * (covariance @ w) / portfolio_sigma
            else:
                marginal = np.zeros_like(w)
        else:
            portfolio_sigma = float(np.dot(w, sigma))
            marginal = z * total * sigma

        if not np.all(np.isfinite(marginal)):
            raise CalculationError("marginal VaR is not finite")
        component = w * marginal
        portfolio_var = z * total * portfolio_sigma
        individual = z * sigma * w * total
        if portfolio_var > 0.0:
            contributions = component / portfolio_var * 100.0
            ratio = float(individual.sum()) / portfolio_var
        else:
            contributions = np.zeros_like(w)
            ratio = 1.0
        return ComponentRiskAnalysis(
            individual_var=dict(zip(symbols, individual.tolist())),
            marginal_var=dict(zip(symbols, marginal.tolist())),
            component_var=dict(zip(symbols, component.tolist())),
            risk_contributions=dict(zip(symbols, contributions.tolist())),
            diversification_ratio=ratio,
            concentration_index=float(np.sum(w * w)),
        )

    def downside_risk(
        self,
        returns: Sequence[float],
        benchmark: Sequence[float] | None = None,
    ) -> DownsideRiskMetrics:
        deviation = downside_deviation(returns)
        values = cumulative_values(returns)
        drawdowns = drawdown_series(values)
        pain = float(np.mean(np.abs(drawdowns))) if drawdowns else 0.0
        ulcer = math.sqrt(float(np.mean(np.square(drawdowns)))) if drawdowns else 0.0
        worst = abs(min(drawdowns)) if drawdowns else 0.0
        annual_excess = (float(np.mean(returns)) * TRADING_DAYS if returns else 0.0) - (
            self.risk_free_rate
        )
        return DownsideRiskMetrics(
            downside_deviation=deviation,
            semi_variance=deviation * deviation,
            downside_beta=_downside_beta(returns, benchmark or []),
            pain_index=pain,
            ulcer_index=ulcer,
            sterling_ratio=annual_excess / worst if worst > 0.0 else 0.0,
            burke_ratio=annual_excess / ulcer if ulcer > 0.0 else 0.0,
        )

    @staticmethod
    def tail_risk(returns: Sequence[float]) -> TailRiskMetrics:
        if not returns:
            return TailRiskMetrics(0.0, 0.0, 0.0, 0.0)
        ordered = sorted(returns)
        count = len(ordered)

        def shortfall(confidence: float) -> float:
            cutoff = max(int((1.0 - confidence) * count), 1)
            return _loss(sum(ordered[:cutoff]) / cutoff)

        return TailRiskMetrics(
            expected_shortfall_95=shortfall(0.95),
            expected_shortfall_99=shortfall(0.99),
            hill_estimator=_hill_estimator(ordered),
            peaks_over_threshold=_mean_excess(ordered),
        )

    @staticmethod
    def volatility_metrics(returns: Sequence[float]) -> VolatilityMetrics:
        if not returns:
            return VolatilityMetrics(0.0, 0.0, 0.0, 0.0)
        annualizer = math.sqrt(TRADING_DAYS)
        variance = returns[0] ** 2
        for value in returns[1:]:
            variance = EWMA_LAMBDA * variance + (1.0 - EWMA_LAMBDA) * value * value
        series = pd.Series(list(returns), dtype=float)
        rolling = series.rolling(VOL_OF_VOL_WINDOW).std(ddof=0).dropna() * annualizer
        vol_of_vol = float(rolling.std(ddof=0)) if len(rolling) > 1 else 0.0
        skew = series.skew() if len(series) > 2 else 0.0
        return VolatilityMetrics(
            realized_volatility=_std(returns) * annualizer,
            ewma_volatility=math.sqrt(variance) * annualizer,
            volatility_of_volatility=vol_of_vol,
            skewness=0.0 if pd.isna(skew) else float(skew),
        )


def _aligned_excess(returns: Sequence[float], benchmark: Sequence[float]) -> List[float]:
    length = min(len(returns), len(benchmark))
    return [returns[i] - benchmark[i] for i in range(length)]


def _downside_beta(returns: Sequence[float], benchmark: Sequence[float]) -> float:
    length = min(len(returns), len(benchmark))
    pairs = [(returns[i], benchmark[i]) for i in range(length) if benchmark[i] < 0.0]
    if len(pairs) < 2:
        return 0.0
    r = np.array([pair[0] for pair in pairs])
    b = np.array([pair[1] for pair in pairs])
    variance = float(np.var(b))
    if variance == 0.0:
        return 0.0
    covariance = float(np.mean((r - r.mean()) * (b - b.mean())))
    return covariance / variance


def _hill_estimator(ordered: Sequence[float]) -> float:
    magnitudes = sorted((abs(value) for value in ordered), reverse=True)
    k = max(int(len(magnitudes) * 0.1), 1)
    if len(magnitudes) <= k:
        return 0.0
    threshold = magnitudes[k]
    if threshold <= 0.0:
        return 0.0
    mean_log = sum(math.log(magnitudes[i] / threshold) for i in range(k)) / k
    return 1.0 / mean_log if mean_log > 0.0 else 0.0


def _mean_excess(ordered: Sequence[float]) -> float:
    threshold = ordered[int(len(ordered) * 0.05)]
    exceedances = [threshold - value for value in ordered if value < threshold]
    if not exceedances:
        return 0.0
    return sum(exceedances) / len(exceedances)


__all__ = [
    "DEFAULT_CONFIDENCE_LEVELS",
    "DEFAULT_PARAMETRIC_TABLE",
    "ParametricTable",
    "RiskMetricsCalculator",
    "TRADING_DAYS",
    "cumulative_values",
    "downside_deviation",
    "drawdown_duration",
    "drawdown_series",
    "empirical_cvar",
    "empirical_var",
    "empirical_var_cvar",
    "max_drawdown",
    "parametric_cvar",
    "parametric_var",
    "portfolio_volatility",
    "simple_returns",
]
