"""StressTestingEngine: the library entry point composing every risk component."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterable, Iterator, List, Mapping, MutableMapping, Sequence

from backtest.engine import ChainedPriceSource, HistoricalBacktester, HistoricalPriceArchive
from data.cache import ResultCache, fingerprint
from data.providers.base import HealthProvider, PriceHistorySource, PricePoint
from infra.metrics import MetricSink, null_sink
from portfolio.store import PortfolioRecord, PortfolioRegistry

from .config import EngineConfig
from .diversification import DiversificationAnalyzer
from .errors import EmptyPortfolio, InvalidConfiguration
from .metrics import (
    DEFAULT_CONFIDENCE_LEVELS,
    RiskMetricsCalculator,
    parametric_cvar,
    parametric_var,
    portfolio_volatility,
)
from .models import (
    ComponentRiskAnalysis,
    ConcentrationAnalysis,
    CorrelationMatrix,
    DiversificationMetrics,
    DiversificationRecommendation,
    DownsideRiskMetrics,
    MonteCarloConfig,
    PortfolioPosition,
    PositionSnapshot,
    RiskMetrics,
    Scenario,
    ScenarioKind,
    ScenarioTemplate,
    SimulationResult,
    TailRiskMetrics,
    VolatilityMetrics,
)
from .montecarlo import MonteCarloSimulator
from .recommendations import RecommendationEngine
from .scenarios import SCENARIO_CATALOG, scenario_cache_key, scenario_identifier
from .stress import StressSettings, StressTestHarness

logger = logging.getLogger("aegis.risk.engine")


class StressTestingEngine:
    """Stress tests, Monte Carlo, backtests and portfolio analytics behind one facade.

    The scenario catalog is shared read-only. The result cache, price archive and
    portfolio registry each carry their own reader-writer lock, so one engine can
    serve concurrent callers.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        registry: PortfolioRegistry | None = None,
        archive: HistoricalPriceArchive | None = None,
        price_source: PriceHistorySource | None = None,
        health_provider: HealthProvider | None = None,
        metric_sink: MetricSink | None = None,
        catalog: Mapping[ScenarioKind, ScenarioTemplate] = SCENARIO_CATALOG,
    ) -> None:
        self.config = config or EngineConfig()
        self._catalog = catalog
        self._cache: ResultCache[SimulationResult] = ResultCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            enabled=self.config.cache_enabled,
        )
        self._registry = registry or PortfolioRegistry()
        self._archive = archive or HistoricalPriceArchive()
        self._metric_sink = metric_sink or null_sink
        self._calculator = RiskMetricsCalculator(
            risk_free_rate=self.config.risk_free_rate,
            parametric_table=self.config.parametric_table,
        )
        recommender = (
            RecommendationEngine(health_provider=health_provider)
            if self.config.auto_recommendations
            else None
        )
        self._harness = StressTestHarness(
            settings=StressSettings(
                risk_free_rate=self.config.risk_free_rate,
                baseline_volatility=self.config.baseline_volatility,
                parametric_table=self.config.parametric_table,
            ),
            catalog=catalog,
            recommender=recommender,
        )
        self._simulator = MonteCarloSimulator(max_workers=self.config.monte_carlo_workers)
        # Explicitly loaded histories take precedence over the injected source.
        backtest_source: PriceHistorySource = (
            ChainedPriceSource(self._archive, price_source) if price_source else self._archive
        )
        self._backtester = HistoricalBacktester(backtest_source, calculator=self._calculator)
        self._analyzer = DiversificationAnalyzer(
            max_concentration_pct=self.config.max_concentration_pct
        )

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        try:
            yield
        except Exception:
            logger.exception("%s failed", name)
            self._record_metric("engine_error", 1.0, {"operation": name})
            raise

    def _record_metric(
        self, name: str, value: float, tags: Mapping[str, object] | None = None
    ) -> None:
        self._metric_sink(name, value, tags)

    # Simulation -----------------------------------------------------------------

    def scenarios(self) -> Dict[str, ScenarioTemplate]:
        return {kind.value: template for kind, template in self._catalog.items()}

    def run_stress_test(
        self,
        positions: Sequence[PositionSnapshot],
        scenario: Scenario,
    ) -> SimulationResult:
        """Return the cached result for this exact portfolio/scenario, computing it on a miss."""

        with self._operation("run_stress_test"):
            scenario_id = scenario_identifier(scenario)
            key = fingerprint(scenario_cache_key(scenario), positions)
            hit, cached = self._cache.get(key)
            if hit and cached is not None:
                self._record_metric("cache_hit", 1.0)
                return cached
            self._record_metric("cache_miss", 1.0)
            started = time.perf_counter()
            result = self._harness.run(positions, scenario)
            self._record_metric(
                "stress_duration_seconds",
                time.perf_counter() - started,
                {"scenario": scenario_id},
            )
            logger.info(
                "stress test computed",
                extra={
                    "scenario": scenario_id,
                    "initial_value": result.initial_value,
                    "final_value": result.final_value,
                    "liquidated": list(result.liquidated_positions),
                },
            )
            return self._cache.put(key, result)

    def run_monte_carlo_simulation(
        self,
        positions: Sequence[PositionSnapshot],
        config: MonteCarloConfig,
        *,
        timeout: float | None = None,
    ) -> List[SimulationResult]:
        with self._operation("run_monte_carlo_simulation"):
            results = self._simulator.simulate(positions, config, timeout=timeout)
            self._record_metric("monte_carlo_iterations", float(len(results)))
            return results

    def run_backtest(
        self,
        positions: Sequence[PositionSnapshot],
        start_date: date,
        end_date: date,
    ) -> SimulationResult:
        with self._operation("run_backtest"):
            return self._backtester.run(positions, start_date, end_date)

    def load_price_history(self, histories: Mapping[str, Iterable[PricePoint]]) -> None:
        for asset, points in histories.items():
            self._archive.put_price_history(asset, points)

    def clear_price_history(self) -> None:
        self._archive.clear()

    # Cache ----------------------------------------------------------------------

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> MutableMapping[str, Any]:
        return self._cache.stats()

    # Portfolio registry ---------------------------------------------------------

    def register_portfolio(
        self, portfolio_id: str, positions: Iterable[PortfolioPosition]
    ) -> PortfolioRecord:
        return self._registry.register(portfolio_id, positions)

    def register_correlation_matrix(self, portfolio_id: str, matrix: CorrelationMatrix) -> None:
        self._registry.set_correlation(portfolio_id, matrix)

    def register_returns(self, portfolio_id: str, returns: Mapping[str, Sequence[float]]) -> None:
        self._registry.set_returns(portfolio_id, returns)

    def set_benchmark_returns(self, returns: Sequence[float]) -> None:
        self._registry.set_benchmark(returns)

    def _funded_record(self, portfolio_id: str) -> PortfolioRecord:
        record = self._registry.get(portfolio_id)
        if record.total_value <= 0.0:
            raise EmptyPortfolio(f"portfolio {portfolio_id!r} has no positive value")
        return record

    def _returns_for(self, record: PortfolioRecord) -> List[float]:
        returns = record.portfolio_returns()
        if not returns:
            raise InvalidConfiguration(
                f"no return series registered for portfolio {record.portfolio_id!r}"
            )
        return returns

    # Risk metrics ---------------------------------------------------------------

    def calculate_risk_metrics(self, portfolio_id: str) -> RiskMetrics:
        """Historical metrics when return series are registered, parametric otherwise."""

        with self._operation("calculate_risk_metrics"):
            record = self._funded_record(portfolio_id)
            weights = record.weights()
            total = record.total_value
            beta = sum(position.value_usd / total * position.beta for position in record.positions)
            symbols = list(weights)
            correlation = record.correlation
            corr_array = (
                correlation.as_array(symbols)
                if correlation is not None and correlation.covers(symbols)
                else None
            )
            snapshot = (
                tuple(tuple(float(v) for v in row) for row in corr_array)
                if corr_array is not None
                else ()
            )
            returns = record.portfolio_returns()
            if returns:
                return self._calculator.from_returns(
                    returns,
                    benchmark=self._registry.benchmark_returns,
                    beta=beta,
                    correlation_matrix=snapshot,
                )

            volatilities: Dict[str, float] = {}
            for position in record.positions:
                volatilities.setdefault(position.symbol, position.volatility)
            sigma = portfolio_volatility(
                [weights[symbol] for symbol in symbols],
                [volatilities[symbol] for symbol in symbols],
                corr_array,
            )
            # value=1.0 keeps VaR/CVaR as loss fractions, matching the historical path.
            table = self.config.parametric_table
            return RiskMetrics(
                volatility=sigma,
                beta=beta,
                var={
                    level: parametric_var(sigma, 1.0, level, table)
                    for level in DEFAULT_CONFIDENCE_LEVELS
                },
                cvar={
                    level: parametric_cvar(sigma, 1.0, level, table)
                    for level in DEFAULT_CONFIDENCE_LEVELS
                },
                correlation_matrix=snapshot,
            )

    def calculate_component_risk(
        self, portfolio_id: str, *, confidence: float = 0.95
    ) -> ComponentRiskAnalysis:
        with self._operation("calculate_component_risk"):
            record = self._funded_record(portfolio_id)
            return self._calculator.component_risk(
                record.positions, record.correlation, confidence=confidence
            )

    def calculate_downside_risk_metrics(self, portfolio_id: str) -> DownsideRiskMetrics:
        with self._operation("calculate_downside_risk_metrics"):
            record = self._funded_record(portfolio_id)
            return self._calculator.downside_risk(
                self._returns_for(record), self._registry.benchmark_returns
            )

    def calculate_tail_risk_metrics(self, portfolio_id: str) -> TailRiskMetrics:
        with self._operation("calculate_tail_risk_metrics"):
            record = self._funded_record(portfolio_id)
            return self._calculator.tail_risk(self._returns_for(record))

    def calculate_volatility_metrics(self, portfolio_id: str) -> VolatilityMetrics:
        with self._operation("calculate_volatility_metrics"):
            record = self._funded_record(portfolio_id)
            return self._calculator.volatility_metrics(self._returns_for(record))

    # Diversification ------------------------------------------------------------

    def calculate_diversification_metrics(self, portfolio_id: str) -> DiversificationMetrics:
        with self._operation("calculate_diversification_metrics"):
            record = self._registry.get(portfolio_id)
            metrics = self._analyzer.metrics(record.positions, record.correlation)
            self._analyzer.record(portfolio_id, metrics, at=time.time())
            return metrics

    def analyze_concentration_risk(self, portfolio_id: str) -> ConcentrationAnalysis:
        with self._operation("analyze_concentration_risk"):
            record = self._registry.get(portfolio_id)
            return self._analyzer.concentration(record.positions)

    def generate_diversification_recommendations(
        self, portfolio_id: str
    ) -> List[DiversificationRecommendation]:
        with self._operation("generate_diversification_recommendations"):
            record = self._registry.get(portfolio_id)
            metrics = self._analyzer.metrics(record.positions, record.correlation)
            return self._analyzer.recommendations(record.positions, metrics)

    def compare_to_benchmark(
        self, portfolio_id: str, benchmark_portfolio_id: str
    ) -> Dict[str, float]:
        with self._operation("compare_to_benchmark"):
            portfolio = self._registry.get(portfolio_id)
            benchmark = self._registry.get(benchmark_portfolio_id)
            return self._analyzer.compare_to_benchmark(
                self._analyzer.metrics(portfolio.positions, portfolio.correlation),
                self._analyzer.metrics(benchmark.positions, benchmark.correlation),
            )

    def diversification_trend(self, portfolio_id: str) -> float | None:
        return self._analyzer.trend(portfolio_id)


__all__ = ["StressTestingEngine"]
