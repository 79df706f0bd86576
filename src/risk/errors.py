"""Error taxonomy raised by the risk engine."""

from __future__ import annotations


class RiskEngineError(Exception):
    """Base class for all risk engine failures."""


class PortfolioNotFound(RiskEngineError):
    """Raised when an operation references an unregistered portfolio id."""

    def __init__(self, portfolio_id: str) -> None:
        super().__init__(f"portfolio {portfolio_id!r} is not registered")
        self.portfolio_id = portfolio_id


class EmptyPortfolio(RiskEngineError):
    """Raised when a portfolio has no positive total value to divide by."""


class InvalidConfiguration(RiskEngineError):
    """Raised for malformed simulation or backtest parameters."""


class CalculationError(RiskEngineError):
    """Generic numeric failure inside a calculation."""


class SimulationTimeout(CalculationError):
    """Raised when a Monte Carlo run exceeds the caller supplied timeout."""


__all__ = [
    "CalculationError",
    "EmptyPortfolio",
    "InvalidConfiguration",
    "PortfolioNotFound",
    "RiskEngineError",
    "SimulationTimeout",
]
