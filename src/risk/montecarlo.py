"""Monte Carlo price-path simulation over collateral positions."""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import replace
from typing import List, Sequence

import numpy as np

from .errors import CalculationError, SimulationTimeout
from .metrics import DEFAULT_CONFIDENCE_LEVELS, empirical_cvar, empirical_var, empirical_var_cvar
from .models import MonteCarloConfig, PositionSnapshot, RiskMetrics, SimulationResult
from .stress import classify_liquidations, portfolio_value

logger = logging.getLogger("aegis.risk.montecarlo")

PRICE_FLOOR = 0.01
DAYS_PER_YEAR = 365.0
SCENARIO_ID = "MonteCarlo"


class MonteCarloSimulator:
    """Runs independent iterations on a thread pool and back-fills VaR/CVaR afterwards."""

    def __init__(self, *, max_workers: int = 4) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._max_workers = max_workers

    def simulate(
        self,
        positions: Sequence[PositionSnapshot],
        config: MonteCarloConfig,
        *,
        timeout: float | None = None,
    ) -> List[SimulationResult]:
        config.validate()
        positions = list(positions)
        assets = list(dict.fromkeys(position.asset for position in positions))
        cholesky = self._cholesky(config, assets)
        children = np.random.SeedSequence(config.seed).spawn(config.iterations)
        initial = portfolio_value(positions)

        batch = max(1, math.ceil(config.iterations / (self._max_workers * 4)))
        bounds = [
            (start, min(start + batch, config.iterations))
            for start in range(0, config.iterations, batch)
        ]
        started = time.perf_counter()
        cancelled = threading.Event()
        pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="aegis-mc")
        try:
            futures = [
                pool.submit(
                    self._run_batch,
                    positions,
                    assets,
                    config,
                    cholesky,
                    children[start:stop],
                    initial,
                    cancelled,
                )
                for start, stop in bounds
            ]
            done, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)
            if pending:
                failed = [future for future in done if future.exception() is not None]
                if failed:
                    raise failed[0].exception()  # type: ignore[misc]
                raise SimulationTimeout(
                    f"Monte Carlo run exceeded {timeout}s with "
                    f"{len(pending)}/{len(futures)} batches outstanding"
                )
            results: List[SimulationResult] = []
            for future in futures:
                results.extend(future.result())
        finally:
            cancelled.set()
            pool.shutdown(wait=False, cancel_futures=True)

        # Barrier reached: portfolio-level statistics need the full distribution.
        returns = [result.portfolio_return for result in results]
        var = empirical_var(returns, config.confidence_level)
        cvar = empirical_cvar(returns, config.confidence_level)
        var_levels, cvar_levels = empirical_var_cvar(returns, DEFAULT_CONFIDENCE_LEVELS)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            "monte carlo simulation complete",
            extra={
                "iterations": config.iterations,
                "positions": len(positions),
                "confidence_level": config.confidence_level,
                "var": var,
                "cvar": cvar,
                "elapsed_ms": elapsed_ms,
            },
        )
        return [
            replace(
                result,
                var_95=var,
                cvar_95=cvar,
                risk_metrics=replace(result.risk_metrics, var=var_levels, cvar=cvar_levels),
            )
            for result in results
        ]

    @staticmethod
    def _cholesky(config: MonteCarloConfig, assets: Sequence[str]) -> np.ndarray | None:
        matrix = config.correlation_matrix
        if matrix is None or len(assets) < 2 or not matrix.covers(assets):
            return None
        try:
            return np.linalg.cholesky(matrix.as_array(assets))
        except np.linalg.LinAlgError as exc:
            raise CalculationError("correlation matrix is not positive definite") from exc

    @staticmethod
    def _run_batch(
        positions: Sequence[PositionSnapshot],
        assets: Sequence[str],
        config: MonteCarloConfig,
        cholesky: np.ndarray | None,
        seeds: Sequence[np.random.SeedSequence],
        initial: float,
        cancelled: threading.Event,
    ) -> List[SimulationResult]:
        # Drift rates are annual and only apply when price_volatility > 0.
        drift = np.zeros(len(positions))
        if config.price_volatility > 0.0:
            horizon = config.time_horizon_days / DAYS_PER_YEAR
            drift = np.array(
                [config.drift_rates.get(position.asset, 0.0) * horizon for position in positions]
            )
        asset_index = [assets.index(position.asset) for position in positions]
        results: List[SimulationResult] = []
        for seed in seeds:
            if cancelled.is_set():
                break
            started = time.perf_counter()
            rng = np.random.default_rng(seed)
            if cholesky is not None:
                correlated = cholesky @ rng.standard_normal(len(assets))
                shocks = correlated[asset_index]
            else:
                shocks = rng.standard_normal(len(positions))
            draws = drift + config.price_volatility * shocks
            factors = np.maximum(1.0 + draws, PRICE_FLOOR)

            simulated = [
                position if factor == 1.0 else position.reprice(position.current_price * factor)
                for position, factor in zip(positions, factors.tolist())
            ]
            liquidated, surviving = classify_liquidations(simulated)
            final = portfolio_value(simulated)
            period_return = (final - initial) / initial if initial != 0.0 else 0.0
            results.append(
                SimulationResult(
                    scenario=SCENARIO_ID,
                    scenario_name=f"Monte Carlo ({config.time_horizon_days}d)",
                    initial_value=initial,
                    final_value=final,
                    max_drawdown=min(period_return, 0.0),
                    var_95=0.0,
                    cvar_95=0.0,
                    liquidated_positions=liquidated,
                    surviving_positions=surviving,
                    risk_metrics=RiskMetrics(
                        max_drawdown=min(period_return, 0.0),
                        volatility=config.price_volatility,
                    ),
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                )
            )
        return results


__all__ = ["MonteCarloSimulator", "PRICE_FLOOR"]
