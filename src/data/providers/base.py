"""Collaborator interfaces consumed by the risk engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Protocol, Sequence, runtime_checkable


class DataProviderError(Exception):
    """Generic provider failure."""


@dataclass(frozen=True, slots=True)
class PricePoint:
    timestamp: datetime
    price: float
    volume: float = 0.0


@dataclass(frozen=True, slots=True)
class Alert:
    position_id: str
    severity: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class HealthProvider(Protocol):
    """Live health-factor and alert feed owned by the monitoring service."""

    def get_position_health(self, position_id: str) -> float:
        ...

    def get_alerts(self, position_id: str | None = None) -> List[Alert]:
        ...


@runtime_checkable
class PriceHistorySource(Protocol):
    """Ordered (timestamp, price, volume) history per asset, oldest first."""

    def get_price_history(self, asset: str) -> Sequence[PricePoint]:
        ...


__all__ = [
    "Alert",
    "DataProviderError",
    "HealthProvider",
    "PriceHistorySource",
    "PricePoint",
]
