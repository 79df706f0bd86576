"""Diversification and concentration analytics over registered portfolios."""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from typing import Deque, Dict, List, Mapping, Sequence, Tuple

import numpy as np

from .errors import EmptyPortfolio
from .models import (
    ConcentrationAnalysis,
    CorrelationMatrix,
    DiversificationAction,
    DiversificationLevel,
    DiversificationMetrics,
    DiversificationRecommendation,
    PortfolioPosition,
)

logger = logging.getLogger("aegis.risk.diversification")

SECTOR_LIMIT = 0.5
NEUTRAL_CORRELATION_SCORE = 0.5
HISTORY_LIMIT = 100

SUGGESTED_ASSET_CLASS_ALLOCATIONS: Mapping[str, float] = {
    "Stablecoins": 15.0,
    "Blue-chip Crypto": 30.0,
    "DeFi Protocols": 20.0,
    "Real World Assets": 10.0,
    "Commodities": 5.0,
    "Alternative Assets": 20.0,
}


def classify(score: float) -> DiversificationLevel:
    if score >= 0.8:
        return DiversificationLevel.EXCELLENT
    if score >= 0.6:
        return DiversificationLevel.GOOD
    if score >= 0.3:
        return DiversificationLevel.MODERATE
    return DiversificationLevel.POOR


def value_weights(positions: Sequence[PortfolioPosition]) -> Tuple[float, Dict[str, float]]:
    """Total value and per-symbol value share; raises EmptyPortfolio when total <= 0."""
    totals: Dict[str, float] = {}
    for position in positions:
        totals[position.symbol] = totals.get(position.symbol, 0.0) + position.value_usd
    total = sum(totals.values())
    if total <= 0.0:
        raise EmptyPortfolio("portfolio total value must be positive")
    return total, {symbol: value / total for symbol, value in totals.items() if value > 0.0}


def entropy_score(weights: Sequence[float]) -> float:
    n = len(weights)
    if n <= 1:
        return 0.0
    entropy = -sum(w * math.log(w) for w in weights if w > 0.0)
    return min(max(entropy / math.log(n), 0.0), 1.0)


def herfindahl_index(weights: Sequence[float]) -> float:
    return float(sum(w * w for w in weights))


def concentration_risk(weights: Sequence[float]) -> float:
    n = len(weights)
    if n <= 1:
        return 1.0
    floor = 1.0 / n
    value = (herfindahl_index(weights) - floor) / (1.0 - floor)
    return min(max(value, 0.0), 1.0)


def gini_coefficient(weights: Sequence[float]) -> float:
    """Gini over ascending weights with an n/(n-1) small-sample normalization."""
    n = len(weights)
    if n <= 1:
        return 0.0
    ordered = sorted(weights)
    raw = sum((2 * (i + 1) - n - 1) * w for i, w in enumerate(ordered)) / n
    return min(max(raw * n / (n - 1), 0.0), 1.0)


def correlation_diversification(
    weights: Mapping[str, float],
    correlation: CorrelationMatrix | None,
) -> float:
    if correlation is None:
        return NEUTRAL_CORRELATION_SCORE
    symbols = [symbol for symbol in weights if correlation.index_of(symbol) is not None]
    weighted = 0.0
    pair_weight = 0.0
    for i, left in enumerate(symbols):
        for right in symbols[i + 1 :]:
            rho = correlation.correlation(left, right) or 0.0
            product = weights[left] * weights[right]
            weighted += product * abs(rho)
            pair_weight += product
    if pair_weight == 0.0:
        return NEUTRAL_CORRELATION_SCORE
    return 1.0 - weighted / pair_weight


class DiversificationAnalyzer:
    """Scores portfolio diversification and keeps a bounded score history per portfolio."""

    def __init__(self, *, max_concentration_pct: float = 25.0) -> None:
        self.max_concentration_pct = max_concentration_pct
        self._history: Dict[str, Deque[Tuple[float, DiversificationMetrics]]] = {}
        self._lock = threading.Lock()

    def metrics(
        self,
        positions: Sequence[PortfolioPosition],
        correlation: CorrelationMatrix | None = None,
    ) -> DiversificationMetrics:
        total, weights = value_weights(positions)
        w = list(weights.values())
        hhi = herfindahl_index(w)
        sectors: Dict[str, float] = {}
        for position in positions:
            sectors[position.asset_class] = (
                sectors.get(position.asset_class, 0.0) + position.value_usd / total
            )
        return DiversificationMetrics(
            diversification_score=entropy_score(w),
            effective_number_assets=1.0 / hhi if hhi > 0.0 else 0.0,
            concentration_risk=concentration_risk(w),
            herfindahl_index=hhi,
            gini_coefficient=gini_coefficient(w),
            max_weight=max(w),
            sector_concentration=sectors,
            correlation_based_diversification=correlation_diversification(weights, correlation),
        )

    def concentration(self, positions: Sequence[PortfolioPosition]) -> ConcentrationAnalysis:
        total, weights = value_weights(positions)
        ranked = sorted(weights.items(), key=lambda item: item[1], reverse=True)
        percentages = np.array([weight for _, weight in ranked]) * 100.0

        sectors: Dict[str, float] = {}
        risk: Dict[str, float] = {}
        for position in positions:
            share = position.value_usd / total
            sectors[position.asset_class] = sectors.get(position.asset_class, 0.0) + share
            risk[position.symbol] = risk.get(position.symbol, 0.0) + share * position.risk_score

        return ConcentrationAnalysis(
            total_portfolio_value=total,
            largest_position_percentage=float(percentages[0]),
            top_5_concentration=float(percentages[:5].sum()),
            top_10_concentration=float(percentages[:10].sum()),
            single_asset_limit_violations=tuple(
                symbol for symbol, weight in ranked if weight * 100.0 > self.max_concentration_pct
            ),
            sector_concentration_violations=tuple(
                (sector, share * 100.0)
                for sector, share in sorted(sectors.items(), key=lambda item: -item[1])
                if share > SECTOR_LIMIT
            ),
            risk_contribution_analysis=risk,
        )

    def recommendations(
        self,
        positions: Sequence[PortfolioPosition],
        metrics: DiversificationMetrics | None = None,
    ) -> List[DiversificationRecommendation]:
        """Rule-based suggestions ranked by priority (10 = most urgent)."""

        metrics = metrics or self.metrics(positions)
        _, weights = value_weights(positions)
        recommendations: List[DiversificationRecommendation] = []

        largest_symbol, largest = max(weights.items(), key=lambda item: item[1])
        if largest * 100.0 > self.max_concentration_pct:
            excess = largest * 100.0 - self.max_concentration_pct
            recommendations.append(
                DiversificationRecommendation(
                    action=DiversificationAction.REDUCE_LARGEST_POSITION,
                    priority=9,
                    description=(
                        f"{largest_symbol} is {largest:.1%} of the portfolio; trim it below "
                        f"{self.max_concentration_pct:.0f}%"
                    ),
                    expected_improvement=excess / 100.0,
                    risk_reduction_estimate=min(excess / 100.0 * 0.8, 1.0),
                    suggested_allocations={largest_symbol: self.max_concentration_pct},
                )
            )

        breached = {
            sector: share
            for sector, share in metrics.sector_concentration.items()
            if share > SECTOR_LIMIT
        }
        if breached:
            sector, share = max(breached.items(), key=lambda item: item[1])
            recommendations.append(
                DiversificationRecommendation(
                    action=DiversificationAction.DIVERSIFY_ACROSS_SECTORS,
                    priority=8,
                    description=f"{sector} holds {share:.1%} of value; spread across asset classes",
                    expected_improvement=share - SECTOR_LIMIT,
                    risk_reduction_estimate=0.25,
                )
            )

        if metrics.diversification_score < 0.5:
            recommendations.append(
                DiversificationRecommendation(
                    action=DiversificationAction.ADD_ASSET_CLASS,
                    priority=7,
                    description=(
                        f"Diversification score {metrics.diversification_score:.2f} is "
                        f"{classify(metrics.diversification_score).value}; add uncorrelated asset classes"
                    ),
                    expected_improvement=0.5 - metrics.diversification_score,
                    risk_reduction_estimate=0.2,
                    suggested_allocations=dict(SUGGESTED_ASSET_CLASS_ALLOCATIONS),
                )
            )

        if metrics.correlation_based_diversification < 0.4:
            recommendations.append(
                DiversificationRecommendation(
                    action=DiversificationAction.HEDGE_CORRELATED_RISK,
                    priority=6,
                    description="Holdings move together; hedge or add negatively correlated assets",
                    expected_improvement=0.4 - metrics.correlation_based_diversification,
                    risk_reduction_estimate=0.15,
                )
            )

        if metrics.effective_number_assets < 5.0:
            recommendations.append(
                DiversificationRecommendation(
                    action=DiversificationAction.REBALANCE_ALLOCATIONS,
                    priority=5,
                    description=(
                        f"Effective number of assets is {metrics.effective_number_assets:.1f}; "
                        "rebalance toward at least 5"
                    ),
                    expected_improvement=(5.0 - metrics.effective_number_assets) / 5.0,
                    risk_reduction_estimate=0.1,
                )
            )

        recommendations.sort(key=lambda rec: rec.priority, reverse=True)
        return recommendations

    @staticmethod
    def compare_to_benchmark(
        portfolio: DiversificationMetrics,
        benchmark: DiversificationMetrics,
    ) -> Dict[str, float]:
        """Ratios of portfolio to benchmark diversification (1.0 = on par)."""

        def ratio(left: float, right: float) -> float:
            return left / right if right != 0.0 else 0.0

        return {
            "diversification_score": ratio(
                portfolio.diversification_score, benchmark.diversification_score
            ),
            "effective_number_assets": ratio(
                portfolio.effective_number_assets, benchmark.effective_number_assets
            ),
            "correlation_based_diversification": ratio(
                portfolio.correlation_based_diversification,
                benchmark.correlation_based_diversification,
            ),
        }

    def record(self, portfolio_id: str, metrics: DiversificationMetrics, *, at: float) -> None:
        with self._lock:
            history = self._history.setdefault(portfolio_id, deque(maxlen=HISTORY_LIMIT))
            history.append((at, metrics))
        logger.debug(
            "diversification recorded",
            extra={"portfolio_id": portfolio_id, "score": metrics.diversification_score},
        )

    def history(self, portfolio_id: str) -> List[Tuple[float, DiversificationMetrics]]:
        with self._lock:
            return list(self._history.get(portfolio_id, ()))

    def trend(self, portfolio_id: str) -> float | None:
        """Latest minus previous diversification score, ``None`` with fewer than two samples."""
        with self._lock:
            history = self._history.get(portfolio_id)
            if not history or len(history) < 2:
                return None
            return history[-1][1].diversification_score - history[-2][1].diversification_score


__all__ = [
    "DiversificationAnalyzer",
    "SUGGESTED_ASSET_CLASS_ALLOCATIONS",
    "classify",
    "concentration_risk",
    "correlation_diversification",
    "entropy_score",
    "gini_coefficient",
    "herfindahl_index",
    "value_weights",
]
