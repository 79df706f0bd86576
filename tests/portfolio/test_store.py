from __future__ import annotations

import pytest

from portfolio.store import PortfolioRegistry
from risk.errors import InvalidConfiguration, PortfolioNotFound
from risk.models import CorrelationMatrix, PortfolioPosition


def _positions() -> list[PortfolioPosition]:
    return [
        PortfolioPosition(symbol="BTC", value_usd=60.0),
        PortfolioPosition(symbol="ETH", value_usd=40.0),
    ]


def test_register_and_get_round_trip():
    registry = PortfolioRegistry()
    record = registry.register("main", _positions())

    assert registry.get("main") is record
    assert record.total_value == 100.0
    assert record.weights() == pytest.approx({"BTC": 0.6, "ETH": 0.4})
    assert registry.ids() == ["main"]


def test_unknown_portfolio_raises():
    registry = PortfolioRegistry()
    with pytest.raises(PortfolioNotFound):
        registry.get("missing")
    with pytest.raises(PortfolioNotFound):
        registry.set_returns("missing", {"BTC": [0.01]})
    with pytest.raises(PortfolioNotFound):
        registry.remove("missing")
    with pytest.raises(InvalidConfiguration):
        registry.register("", _positions())


def test_reregistering_keeps_correlation_and_returns():
    registry = PortfolioRegistry()
    registry.register("main", _positions())
    registry.set_correlation("main", CorrelationMatrix.identity(["BTC", "ETH"]))
    registry.set_returns("main", {"BTC": [0.01, 0.02], "ETH": [0.03, -0.01]})

    record = registry.register("main", _positions()[:1])

    assert record.correlation is not None
    assert record.asset_returns["ETH"] == (0.03, -0.01)
    assert record.weights() == {"BTC": 1.0}


def test_portfolio_returns_are_value_weighted_over_common_length():
    registry = PortfolioRegistry()
    registry.register("main", _positions())
    registry.set_returns("main", {"BTC": [0.10, -0.05, 0.02], "ETH": [0.0, 0.05]})

    returns = registry.get("main").portfolio_returns()

    assert returns == pytest.approx([0.06, -0.01])


def test_portfolio_returns_empty_without_history():
    registry = PortfolioRegistry()
    registry.register("main", _positions())
    assert registry.get("main").portfolio_returns() == []


def test_benchmark_and_remove():
    registry = PortfolioRegistry()
    assert registry.benchmark_returns == ()
    registry.set_benchmark([0.01, "0.02"])
    assert registry.benchmark_returns == (0.01, 0.02)

    registry.register("main", _positions())
    registry.remove("main")
    assert registry.ids() == []
