"""In-memory registry of portfolios analysed by the risk engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from infra.locks import ReadWriteLock
from risk.errors import InvalidConfiguration, PortfolioNotFound
from risk.models import CorrelationMatrix, PortfolioPosition


@dataclass(frozen=True)
class PortfolioRecord:
    portfolio_id: str
    positions: Tuple[PortfolioPosition, ...]
    correlation: CorrelationMatrix | None = None
    asset_returns: Mapping[str, Tuple[float, ...]] = field(default_factory=dict)
    last_updated: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def total_value(self) -> float:
        return sum(position.value_usd for position in self.positions)

    def weights(self) -> Dict[str, float]:
        total = self.total_value
        if total <= 0.0:
            return {}
        weights: Dict[str, float] = {}
        for position in self.positions:
            weights[position.symbol] = weights.get(position.symbol, 0.0) + position.value_usd / total
        return weights

    def portfolio_returns(self) -> List[float]:
        """Value-weighted daily returns over the common length of the registered series."""

        weights = self.weights()
        series = {symbol: self.asset_returns[symbol] for symbol in weights if symbol in self.asset_returns}
        if not series:
            return []
        length = min(len(values) for values in series.values())
        covered = sum(weights[symbol] for symbol in series)
        if covered <= 0.0:
            return []
        return [
            sum(weights[symbol] * values[i] for symbol, values in series.items()) / covered
            for i in range(length)
        ]


class PortfolioRegistry:
    """Thread-safe portfolio_id -> record map; readers never block each other."""

    def __init__(self) -> None:
        self._records: Dict[str, PortfolioRecord] = {}
        self._benchmark: Tuple[float, ...] = ()
        self._lock = ReadWriteLock()

    def register(self, portfolio_id: str, positions: Iterable[PortfolioPosition]) -> PortfolioRecord:
        if not portfolio_id:
            raise InvalidConfiguration("portfolio_id must be non-empty")
        with self._lock.write():
            existing = self._records.get(portfolio_id)
            record = PortfolioRecord(
                portfolio_id=portfolio_id,
                positions=tuple(positions),
                correlation=existing.correlation if existing else None,
                asset_returns=existing.asset_returns if existing else {},
            )
            self._records[portfolio_id] = record
        return record

    def get(self, portfolio_id: str) -> PortfolioRecord:
        with self._lock.read():
            record = self._records.get(portfolio_id)
        if record is None:
            raise PortfolioNotFound(portfolio_id)
        return record

    def set_correlation(self, portfolio_id: str, matrix: CorrelationMatrix) -> None:
        self._update(portfolio_id, correlation=matrix)

    def set_returns(self, portfolio_id: str, returns: Mapping[str, Sequence[float]]) -> None:
        frozen = {symbol: tuple(float(value) for value in values) for symbol, values in returns.items()}
        self._update(portfolio_id, asset_returns=frozen)

    def _update(self, portfolio_id: str, **changes: object) -> None:
        with self._lock.write():
            record = self._records.get(portfolio_id)
            if record is None:
                raise PortfolioNotFound(portfolio_id)
            self._records[portfolio_id] = replace(
                record,
                last_updated=datetime.now(timezone.utc).isoformat(),
                **changes,  # type: ignore[arg-type]
            )

    def remove(self, portfolio_id: str) -> None:
        with self._lock.write():
            if self._records.pop(portfolio_id, None) is None:
                raise PortfolioNotFound(portfolio_id)

    def ids(self) -> List[str]:
        with self._lock.read():
            return sorted(self._records)

    @property
    def benchmark_returns(self) -> Tuple[float, ...]:
        with self._lock.read():
            return self._benchmark

    def set_benchmark(self, returns: Sequence[float]) -> None:
        with self._lock.write():
            self._benchmark = tuple(float(value) for value in returns)


__all__ = ["PortfolioRecord", "PortfolioRegistry"]
