"""Historical backtesting over archived price series."""

from .engine import ChainedPriceSource, HistoricalBacktester, HistoricalPriceArchive, load_price_csv

__all__ = ["ChainedPriceSource", "HistoricalBacktester", "HistoricalPriceArchive", "load_price_csv"]
