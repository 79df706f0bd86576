from __future__ import annotations

from typing import List

from data.providers.base import Alert, DataProviderError
from risk.models import (
    PositionSnapshot,
    RecommendationPriority,
    RecommendationType,
    RiskMetrics,
)
from risk.recommendations import RecommendationEngine


class StubHealthProvider:
    def __init__(self, alerted: set[str]) -> None:
        self.alerted = alerted
        self.queried: List[str | None] = []

    def get_position_health(self, position_id: str) -> float:
        return 1.1

    def get_alerts(self, position_id: str | None = None) -> List[Alert]:
        self.queried.append(position_id)
        if position_id in self.alerted:
            return [Alert(position_id=position_id, severity="high", message="HF dropping")]
        return []


def _position(asset: str) -> PositionSnapshot:
    return PositionSnapshot(
        asset=asset,
        quantity=1.0,
        entry_price=100.0,
        current_price=100.0,
        collateral_value=100.0,
        debt_value=10.0,
        liquidation_threshold=1.2,
    )


def test_healthy_result_produces_no_recommendations() -> None:
    metrics = RiskMetrics(sharpe_ratio=1.2, volatility=0.3)
    assert RecommendationEngine().for_stress_result([_position("BTC")], (), metrics) == []


def test_rules_fire_and_sort_by_priority() -> None:
    metrics = RiskMetrics(sharpe_ratio=0.1, volatility=0.9)
    recommendations = RecommendationEngine().for_stress_result(
        [_position("BTC")], ("BTC",), metrics
    )
    assert [rec.kind for rec in recommendations] == [
        RecommendationType.INCREASE_COLLATERAL,
        RecommendationType.REBALANCE_ALLOCATION,
        RecommendationType.HEDGE_RISK,
    ]
    assert recommendations[0].priority is RecommendationPriority.CRITICAL
    assert "BTC" in recommendations[0].description


def test_health_provider_alerts_add_stop_loss() -> None:
    provider = StubHealthProvider({"ETH"})
    engine = RecommendationEngine(health_provider=provider)
    metrics = RiskMetrics(sharpe_ratio=1.0, volatility=0.2)

    recommendations = engine.for_stress_result([_position("BTC"), _position("ETH")], (), metrics)

    assert provider.queried == ["BTC", "ETH"]
    assert len(recommendations) == 1
    assert recommendations[0].kind is RecommendationType.ADD_STOP_LOSS
    assert recommendations[0].priority is RecommendationPriority.HIGH


def test_failing_health_provider_is_skipped_per_asset() -> None:
    class FlakyHealthProvider(StubHealthProvider):
        def get_alerts(self, position_id: str | None = None) -> List[Alert]:
            if position_id == "BTC":
                raise DataProviderError("health feed offline")
            return super().get_alerts(position_id)

    engine = RecommendationEngine(health_provider=FlakyHealthProvider({"ETH"}))
    metrics = RiskMetrics(sharpe_ratio=1.0, volatility=0.2)

    recommendations = engine.for_stress_result([_position("BTC"), _position("ETH")], (), metrics)

    assert [rec.kind for rec in recommendations] == [RecommendationType.ADD_STOP_LOSS]
    assert "ETH" in recommendations[0].description
