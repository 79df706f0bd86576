from __future__ import annotations

from datetime import date

import pandas as pd
import pytest

from data.providers import yahoo
from data.providers.base import DataProviderError, PriceHistorySource
from data.providers.yahoo import YahooPriceHistoryLoader


def _frame() -> pd.DataFrame:
    index = pd.to_datetime(["2024-01-01", "2024-01-02"])
    return pd.DataFrame({"Close": [42_000.0, 43_500.0], "Volume": [10.0, 12.0]}, index=index)


def test_loader_converts_frame_to_price_points(monkeypatch):
    calls = {}

    def fake_download(ticker, **kwargs):
        calls["ticker"] = ticker
        calls.update(kwargs)
        return _frame()

    monkeypatch.setattr(yahoo.yf, "download", fake_download)
    loader = YahooPriceHistoryLoader(start=date(2024, 1, 1), end=date(2024, 1, 2))

    points = loader.get_price_history("BTC")

    assert calls["ticker"] == "BTC-USD"
    assert calls["end"] == "2024-01-03"
    assert [point.price for point in points] == [42_000.0, 43_500.0]
    assert points[1].volume == 12.0
    assert points[0].timestamp.tzinfo is not None
    assert isinstance(loader, PriceHistorySource)


def test_unknown_assets_map_to_usd_ticker():
    loader = YahooPriceHistoryLoader(start=date(2024, 1, 1), end=date(2024, 1, 2))
    assert loader.ticker_for("SOL") == "SOL-USD"
    assert loader.ticker_for("UNI") == "UNI7083-USD"


def test_empty_download_returns_no_points(monkeypatch):
    monkeypatch.setattr(yahoo.yf, "download", lambda ticker, **kwargs: pd.DataFrame())
    loader = YahooPriceHistoryLoader(start=date(2024, 1, 1), end=date(2024, 1, 2))
    assert loader.load(["ETH"]) == {"ETH": []}


def test_download_failures_are_wrapped(monkeypatch):
    def boom(ticker, **kwargs):
        raise RuntimeError("network down")

    monkeypatch.setattr(yahoo.yf, "download", boom)
    loader = YahooPriceHistoryLoader(start=date(2024, 1, 1), end=date(2024, 1, 2))
    with pytest.raises(DataProviderError):
        loader.get_price_history("BTC")


def test_start_after_end_is_rejected():
    with pytest.raises(ValueError):
        YahooPriceHistoryLoader(start=date(2024, 2, 1), end=date(2024, 1, 1))
