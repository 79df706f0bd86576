"""CLI for running stress tests, Monte Carlo simulations and backtests."""

from __future__ import annotations

import json
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from dotenv import load_dotenv

from backtest.engine import load_price_csv
from data.providers.yahoo import YahooPriceHistoryLoader
from infra.logging import configure_logging
from infra.metrics import PrometheusMetricSink, ensure_metrics_server
from risk.config import EngineConfig
from risk.engine import StressTestingEngine
from risk.errors import RiskEngineError
from risk.models import MonteCarloConfig, PortfolioPosition, PositionSnapshot, SimulationResult
from risk.scenarios import SCENARIO_CATALOG, parse_scenario

app = typer.Typer(help="Aegis DeFi risk engine")


def _configure_environment() -> None:
    load_dotenv()
    run_id = os.environ.get("RUN_ID")
    if not run_id:
        run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        os.environ["RUN_ID"] = run_id
    configure_logging(run_id=run_id, environment=os.environ.get("RISK_ENVIRONMENT"))


def _build_engine() -> StressTestingEngine:
    config = EngineConfig.from_env()
    port = os.environ.get("RISK_METRICS_PORT")
    if port:
        ensure_metrics_server(int(port))
    return StressTestingEngine(config, metric_sink=PrometheusMetricSink())


def _parse_date(value: str) -> date:
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid date: {value}") from exc


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise typer.BadParameter(f"Cannot read {path}: {exc}") from exc


def _load_positions(path: Path) -> List[PositionSnapshot]:
    payload = _read_json(path)
    if not isinstance(payload, list) or not payload:
        raise typer.BadParameter("positions file must contain a non-empty JSON list")
    positions: List[PositionSnapshot] = []
    for row in payload:
        try:
            positions.append(
                PositionSnapshot(
                    asset=str(row["asset"]),
                    quantity=float(row["quantity"]),
                    entry_price=float(row.get("entry_price", row["current_price"])),
                    current_price=float(row["current_price"]),
                    collateral_value=float(
                        row.get("collateral_value", float(row["quantity"]) * float(row["current_price"]))
                    ),
                    debt_value=float(row.get("debt_value", 0.0)),
                    liquidation_threshold=float(row.get("liquidation_threshold", 1.0)),
                    asset_class=str(row.get("asset_class", "crypto")),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise typer.BadParameter(f"Invalid position entry {row!r}: {exc}") from exc
    return positions


def _load_portfolio(path: Path) -> List[PortfolioPosition]:
    payload = _read_json(path)
    if not isinstance(payload, list):
        raise typer.BadParameter("portfolio file must contain a JSON list")
    try:
        return [
            PortfolioPosition(
                symbol=str(row["symbol"]),
                value_usd=float(row["value_usd"]),
                quantity=float(row.get("quantity", 0.0)),
                volatility=float(row.get("volatility", 0.0)),
                beta=float(row.get("beta", 1.0)),
                risk_score=float(row.get("risk_score", 0.5)),
                asset_class=str(row.get("asset_class", "crypto")),
            )
            for row in payload
        ]
    except (KeyError, TypeError, ValueError) as exc:
        raise typer.BadParameter(f"Invalid portfolio entry: {exc}") from exc


def _echo_result(result: SimulationResult, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(result.as_dict(), indent=2))
        return
    typer.echo(
        f"[{result.scenario_name}] initial=${result.initial_value:,.2f} "
        f"final=${result.final_value:,.2f} return={result.portfolio_return * 100:.2f}% "
        f"max_drawdown={result.max_drawdown * 100:.2f}%"
    )
    typer.echo(f"VaR95={result.var_95:.4f} CVaR95={result.cvar_95:.4f}")
    typer.echo(f"Liquidated: {', '.join(result.liquidated_positions) or 'none'}")
    for rec in result.recommendations:
        typer.echo(f"  - [{rec.priority.name}] {rec.description}")


@app.command()
def scenarios() -> None:
    """List the built-in stress scenarios."""

    for kind, template in SCENARIO_CATALOG.items():
        shocks = ", ".join(f"{asset} {shock:+.0%}" for asset, shock in template.price_shocks.items())
        typer.echo(f"{kind.value:<24} {template.name} ({template.duration_days}d): {shocks}")


@app.command()
def stress(
    positions_file: Path = typer.Argument(..., help="JSON list of position snapshots"),
    scenario: str = typer.Option("HistoricalMarketCrash", "--scenario", "-s"),
    as_json: bool = typer.Option(False, "--json", help="Emit the full result as JSON"),
) -> None:
    """Apply a built-in scenario to a set of positions."""

    _configure_environment()
    try:
        kind = parse_scenario(scenario)
    except ValueError as exc:
        valid = ", ".join(kind.value for kind in SCENARIO_CATALOG)
        raise typer.BadParameter(f"{exc}. Valid options: {valid}") from exc
    positions = _load_positions(positions_file)
    engine = _build_engine()
    _echo_result(engine.run_stress_test(positions, kind), as_json)


@app.command("monte-carlo")
def monte_carlo(
    positions_file: Path = typer.Argument(..., help="JSON list of position snapshots"),
    iterations: int = typer.Option(10_000, "--iterations", "-n"),
    volatility: float = typer.Option(0.5, "--volatility"),
    confidence: float = typer.Option(0.95, "--confidence"),
    horizon: int = typer.Option(30, "--horizon", help="Time horizon in days"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds before aborting"),
) -> None:
    """Simulate random price moves and report portfolio VaR/CVaR."""

    _configure_environment()
    positions = _load_positions(positions_file)
    config = MonteCarloConfig(
        iterations=iterations,
        time_horizon_days=horizon,
        confidence_level=confidence,
        price_volatility=volatility,
        seed=seed,
    )
    engine = _build_engine()
    try:
        results = engine.run_monte_carlo_simulation(positions, config, timeout=timeout)
    except RiskEngineError as exc:
        typer.echo(f"Simulation failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    liquidation_rate = sum(1 for result in results if result.liquidated_positions) / len(results)
    mean_return = sum(result.portfolio_return for result in results) / len(results)
    typer.echo(
        f"iterations={len(results)} mean_return={mean_return * 100:.2f}% "
        f"VaR{confidence:.0%}={results[0].var_95:.4f} CVaR{confidence:.0%}={results[0].cvar_95:.4f} "
        f"liquidation_rate={liquidation_rate:.2%}"
    )


@app.command()
def backtest(
    positions_file: Path = typer.Argument(..., help="JSON list of position snapshots"),
    start: str = typer.Option(..., help="Start date (YYYY-MM-DD)"),
    end: str = typer.Option(..., help="End date (YYYY-MM-DD)"),
    prices: Optional[Path] = typer.Option(
        None, "--prices", help="CSV with asset,timestamp,price[,volume]; Yahoo Finance otherwise"
    ),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Replay archived prices against the positions."""

    _configure_environment()
    start_date = _parse_date(start)
    end_date = _parse_date(end)
    if start_date > end_date:
        raise typer.BadParameter("start date must be on/before end date")
    positions = _load_positions(positions_file)
    engine = _build_engine()
    if prices is not None:
        histories: Dict[str, Any] = load_price_csv(prices)
    else:
        loader = YahooPriceHistoryLoader(start=start_date, end=end_date)
        histories = loader.load(sorted({position.asset for position in positions}))
    engine.load_price_history(histories)
    _echo_result(engine.run_backtest(positions, start_date, end_date), as_json)


@app.command()
def diversification(
    portfolio_file: Path = typer.Argument(..., help="JSON list of portfolio holdings"),
) -> None:
    """Score diversification and print ranked recommendations."""

    _configure_environment()
    holdings = _load_portfolio(portfolio_file)
    engine = _build_engine()
    engine.register_portfolio("cli", holdings)
    try:
        metrics = engine.calculate_diversification_metrics("cli")
    except RiskEngineError as exc:
        typer.echo(f"Analysis failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(
        f"score={metrics.diversification_score:.3f} hhi={metrics.herfindahl_index:.3f} "
        f"effective_assets={metrics.effective_number_assets:.2f} gini={metrics.gini_coefficient:.3f}"
    )
    for rec in engine.generate_diversification_recommendations("cli"):
        typer.echo(f"  - [{rec.priority}] {rec.description}")


if __name__ == "__main__":
    app()
