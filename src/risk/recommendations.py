"""Rule-based recommendations derived from stress-test outcomes."""

from __future__ import annotations

import logging
from typing import List, Sequence

from data.providers.base import DataProviderError, HealthProvider

from .models import (
    PositionSnapshot,
    Recommendation,
    RecommendationPriority,
    RecommendationType,
    RiskMetrics,
)

logger = logging.getLogger("aegis.risk.recommendations")


class RecommendationEngine:
    """Turns liquidations, weak risk-adjusted returns and alerts into ranked actions."""

    def __init__(
        self,
        *,
        health_provider: HealthProvider | None = None,
        min_sharpe: float = 0.5,
        max_volatility: float = 0.8,
    ) -> None:
        self._health_provider = health_provider
        self._min_sharpe = min_sharpe
        self._max_volatility = max_volatility

    def for_stress_result(
        self,
        positions: Sequence[PositionSnapshot],
        liquidated: Sequence[str],
        metrics: RiskMetrics,
    ) -> List[Recommendation]:
        recommendations: List[Recommendation] = []
        if liquidated:
            recommendations.append(
                Recommendation(
                    kind=RecommendationType.INCREASE_COLLATERAL,
                    priority=RecommendationPriority.CRITICAL,
                    description=(
                        f"Add collateral or repay debt: {len(liquidated)} position(s) "
                        f"liquidated ({', '.join(liquidated)})"
                    ),
                    expected_impact=0.8,
                    implementation_cost=0.1,
                    time_to_implement_days=1,
                    confidence=0.95,
                )
            )
        if metrics.sharpe_ratio < self._min_sharpe:
            recommendations.append(
                Recommendation(
                    kind=RecommendationType.REBALANCE_ALLOCATION,
                    priority=RecommendationPriority.HIGH,
                    description=(
                        f"Sharpe ratio {metrics.sharpe_ratio:.2f} below {self._min_sharpe:.2f}; "
                        "rebalance toward higher risk-adjusted return assets"
                    ),
                    expected_impact=0.3,
                    implementation_cost=0.05,
                    time_to_implement_days=7,
                    confidence=0.7,
                )
            )
        if metrics.volatility > self._max_volatility:
            recommendations.append(
                Recommendation(
                    kind=RecommendationType.HEDGE_RISK,
                    priority=RecommendationPriority.MEDIUM,
                    description=(
                        f"Volatility {metrics.volatility:.0%} exceeds {self._max_volatility:.0%}; "
                        "hedge with options or stable assets"
                    ),
                    expected_impact=0.5,
                    implementation_cost=0.02,
                    time_to_implement_days=3,
                    confidence=0.8,
                )
            )
        alerted = self._alerted_assets(positions)
        if alerted:
            recommendations.append(
                Recommendation(
                    kind=RecommendationType.ADD_STOP_LOSS,
                    priority=RecommendationPriority.HIGH,
                    description=f"Live alerts open for {', '.join(alerted)}; add stop-loss orders",
                    expected_impact=0.4,
                    implementation_cost=0.01,
                    time_to_implement_days=1,
                    confidence=0.75,
                )
            )
        recommendations.sort(key=lambda rec: rec.priority, reverse=True)
        return recommendations

    def _alerted_assets(self, positions: Sequence[PositionSnapshot]) -> List[str]:
        if self._health_provider is None:
            return []
        alerted: List[str] = []
        for position in positions:
            try:
                alerts = self._health_provider.get_alerts(position.asset)
            except DataProviderError:
                logger.warning(
                    "health alert lookup failed", extra={"asset": position.asset}, exc_info=True
                )
                continue
            if alerts:
                alerted.append(position.asset)
        if alerted:
            logger.info("health provider reported alerts", extra={"assets": alerted})
        return alerted


__all__ = ["RecommendationEngine"]
