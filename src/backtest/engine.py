"""Historical backtester replaying archived prices against collateral positions."""

from __future__ import annotations

import logging
import time
from bisect import bisect_left
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple

import pandas as pd

from data.providers.base import DataProviderError, PriceHistorySource, PricePoint
from infra.locks import ReadWriteLock
from risk.errors import InvalidConfiguration
from risk.metrics import (
    RiskMetricsCalculator,
    empirical_cvar,
    empirical_var,
    max_drawdown,
    simple_returns,
)
from risk.models import PositionSnapshot, SimulationResult
from risk.stress import classify_liquidations, portfolio_value

logger = logging.getLogger("aegis.backtest")

SCENARIO_ID = "Backtest"


class HistoricalPriceArchive:
    """In-memory asset -> ordered price history map guarded by a reader-writer lock."""

    def __init__(self, payload: Mapping[str, Iterable[PricePoint]] | None = None) -> None:
        self._series: Dict[str, Tuple[PricePoint, ...]] = {}
        self._lock = ReadWriteLock()
        for asset, points in (payload or {}).items():
            self.put_price_history(asset, points)

    def get_price_history(self, asset: str) -> Tuple[PricePoint, ...]:
        with self._lock.read():
            return self._series.get(asset, ())

    def put_price_history(self, asset: str, points: Iterable[PricePoint]) -> None:
        ordered = tuple(sorted(points, key=lambda point: point.timestamp))
        with self._lock.write():
            self._series[asset] = ordered

    def clear(self) -> None:
        with self._lock.write():
            self._series.clear()

    def assets(self) -> List[str]:
        with self._lock.read():
            return sorted(self._series)


class ChainedPriceSource:
    """Answers from the first source holding a non-empty history for the asset."""

    def __init__(self, *sources: PriceHistorySource) -> None:
        self._sources = sources

    def get_price_history(self, asset: str) -> Sequence[PricePoint]:
        for source in self._sources:
            history = source.get_price_history(asset)
            if history:
                return history
        return ()


def load_price_csv(path: str | Path) -> Dict[str, List[PricePoint]]:
    """Read ``asset,timestamp,price[,volume]`` rows into per-asset price histories."""

    frame = pd.read_csv(path)
    missing = {"asset", "timestamp", "price"} - set(frame.columns)
    if missing:
        raise InvalidConfiguration(f"price file missing columns: {sorted(missing)}")
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
    if "volume" not in frame.columns:
        frame["volume"] = 0.0
    histories: Dict[str, List[PricePoint]] = {}
    for asset, group in frame.sort_values("timestamp").groupby("asset"):
        histories[str(asset)] = [
            PricePoint(
                timestamp=row.timestamp.to_pydatetime(),
                price=float(row.price),
                volume=float(row.volume),
            )
            for row in group.itertuples(index=False)
        ]
    return histories


@dataclass(frozen=True)
class _IndexedHistory:
    days: Tuple[date, ...]
    prices: Tuple[float, ...]

    def price_on_or_after(self, day: date) -> float | None:
        index = bisect_left(self.days, day)
        if index >= len(self.days):
            return None
        return self.prices[index]


class HistoricalBacktester:
    """Walks day by day from start to end, repricing positions from a price history source."""

    def __init__(
        self,
        source: PriceHistorySource,
        *,
        calculator: RiskMetricsCalculator | None = None,
    ) -> None:
        self._source = source
        self._calculator = calculator or RiskMetricsCalculator()

    def _index(self, assets: Sequence[str]) -> Dict[str, _IndexedHistory]:
        indexed: Dict[str, _IndexedHistory] = {}
        for asset in assets:
            try:
                history = self._source.get_price_history(asset)
            except DataProviderError:
                logger.warning("price history lookup failed", extra={"asset": asset}, exc_info=True)
                continue
            if not history:
                continue
            indexed[asset] = _IndexedHistory(
                days=tuple(point.timestamp.date() for point in history),
                prices=tuple(point.price for point in history),
            )
        return indexed

    def value_trajectory(
        self,
        positions: Sequence[PositionSnapshot],
        start: date,
        end: date,
    ) -> Tuple[List[Tuple[date, float]], List[PositionSnapshot], Set[str]]:
        """Daily (date, value) pairs, the final repriced positions and every asset ever liquidated."""

        if start > end:
            raise InvalidConfiguration(f"start {start} is after end {end}")
        histories = self._index(sorted({position.asset for position in positions}))
        current = list(positions)
        trajectory: List[Tuple[date, float]] = []
        ever_liquidated: Set[str] = set()
        day = start
        while day <= end:
            for i, position in enumerate(current):
                history = histories.get(position.asset)
                price = history.price_on_or_after(day) if history else None
                if price is not None and price != position.current_price:
                    current[i] = position.reprice(price)
            liquidated, _ = classify_liquidations(current)
            ever_liquidated.update(liquidated)
            trajectory.append((day, portfolio_value(current)))
            day += timedelta(days=1)
        return trajectory, current, ever_liquidated

    def run(
        self,
        positions: Sequence[PositionSnapshot],
        start: date,
        end: date,
    ) -> SimulationResult:
        started = time.perf_counter()
        trajectory, final_positions, ever_liquidated = self.value_trajectory(positions, start, end)
        values = [value for _, value in trajectory]
        returns = simple_returns(values)
        metrics = self._calculator.from_returns(returns)
        assets = [position.asset for position in final_positions]
        liquidated = tuple(asset for asset in dict.fromkeys(assets) if asset in ever_liquidated)
        surviving = tuple(asset for asset in dict.fromkeys(assets) if asset not in ever_liquidated)
        logger.info(
            "backtest complete",
            extra={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "days": len(trajectory),
                "liquidated": len(liquidated),
            },
        )
        return SimulationResult(
            scenario=SCENARIO_ID,
            scenario_name=f"Backtest {start.isoformat()}..{end.isoformat()}",
            initial_value=values[0],
            final_value=values[-1],
            max_drawdown=max_drawdown(values),
            var_95=empirical_var(returns, 0.95),
            cvar_95=empirical_cvar(returns, 0.95),
            liquidated_positions=liquidated,
            surviving_positions=surviving,
            risk_metrics=metrics,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )


__all__ = ["ChainedPriceSource", "HistoricalBacktester", "HistoricalPriceArchive", "load_price_csv"]
