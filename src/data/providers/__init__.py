"""Collaborator interfaces and market-data loaders."""

from .base import Alert, DataProviderError, HealthProvider, PriceHistorySource, PricePoint
from .yahoo import YahooPriceHistoryLoader

__all__ = [
    "Alert",
    "DataProviderError",
    "HealthProvider",
    "PriceHistorySource",
    "PricePoint",
    "YahooPriceHistoryLoader",
]
