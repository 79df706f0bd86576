from __future__ import annotations

import math

import pytest

from risk.errors import InvalidConfiguration
from risk.models import CorrelationMatrix, MonteCarloConfig, PositionSnapshot


def test_health_factor_and_liquidation_boundary() -> None:
    position = PositionSnapshot(
        asset="ETH",
        quantity=1.0,
        entry_price=2_000.0,
        current_price=1_800.0,
        collateral_value=1_800.0,
        debt_value=1_500.0,
        liquidation_threshold=1.2,
    )
    assert position.health_factor == pytest.approx(1.2)
    assert not position.is_liquidated
    assert position.reprice(1_700.0).is_liquidated
    assert position.reprice(1_700.0).collateral_value == 1_700.0


def test_debt_free_position_is_never_liquidated() -> None:
    position = PositionSnapshot("USDC", 10.0, 1.0, 1.0, 10.0, 0.0, 1.1)
    assert math.isinf(position.health_factor)
    assert not position.reprice(0.0).is_liquidated


@pytest.mark.parametrize(
    "field,value",
    [("asset", ""), ("quantity", -1.0), ("current_price", -5.0), ("debt_value", -0.1)],
)
def test_invalid_positions_are_rejected(field: str, value: object) -> None:
    kwargs = dict(
        asset="BTC",
        quantity=1.0,
        entry_price=1.0,
        current_price=1.0,
        collateral_value=1.0,
        debt_value=0.0,
        liquidation_threshold=1.0,
    )
    kwargs[field] = value
    with pytest.raises(ValueError):
        PositionSnapshot(**kwargs)


@pytest.mark.parametrize(
    "assets,matrix",
    [
        (("A", "B"), ((1.0, 0.2), (0.3, 1.0))),
        (("A", "B"), ((1.0, 1.5), (1.5, 1.0))),
        (("A", "B"), ((0.9, 0.0), (0.0, 1.0))),
        (("A", "B"), ((1.0, 0.0),)),
        (("A", "A"), ((1.0, 0.0), (0.0, 1.0))),
    ],
)
def test_malformed_correlation_matrices_are_rejected(assets, matrix) -> None:
    with pytest.raises(InvalidConfiguration):
        CorrelationMatrix(assets=assets, matrix=matrix)


def test_correlation_lookup_and_submatrix() -> None:
    matrix = CorrelationMatrix(
        assets=["BTC", "ETH", "SOL"],
        matrix=[[1.0, 0.8, 0.5], [0.8, 1.0, 0.6], [0.5, 0.6, 1.0]],
    )
    assert matrix.correlation("ETH", "BTC") == 0.8
    assert matrix.correlation("DOGE", "DOGE") == 1.0
    assert matrix.correlation("BTC", "DOGE") is None
    assert matrix.covers(["SOL", "BTC"])
    assert not matrix.covers(["SOL", "DOGE"])
    assert matrix.as_array(["SOL", "BTC"]).tolist() == [[1.0, 0.5], [0.5, 1.0]]


def test_correlation_from_returns() -> None:
    matrix = CorrelationMatrix.from_returns(
        {"A": [1.0, 2.0, 3.0, 4.0], "B": [2.0, 4.0, 6.0, 8.0], "C": [4.0, 3.0, 2.0, 1.0]}
    )
    assert matrix.assets == ("A", "B", "C")
    assert matrix.correlation("A", "B") == pytest.approx(1.0)
    assert matrix.correlation("A", "C") == pytest.approx(-1.0)

    with pytest.raises(InvalidConfiguration):
        CorrelationMatrix.from_returns({"A": [0.1, 0.2]})


@pytest.mark.parametrize(
    "config",
    [
        MonteCarloConfig(iterations=0),
        MonteCarloConfig(price_volatility=-0.1),
        MonteCarloConfig(price_volatility=float("nan")),
        MonteCarloConfig(confidence_level=1.0),
        MonteCarloConfig(time_horizon_days=-1),
    ],
)
def test_monte_carlo_config_validation(config: MonteCarloConfig) -> None:
    with pytest.raises(InvalidConfiguration):
        config.validate()
