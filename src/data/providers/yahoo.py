"""Daily price history via yfinance."""

from __future__ import annotations

import logging
from datetime import date, timedelta, timezone
from typing import Dict, List, Mapping, Sequence

import yfinance as yf

from .base import DataProviderError, PricePoint

logger = logging.getLogger("aegis.data.yahoo")

DEFAULT_SYMBOLS: Mapping[str, str] = {
    "BTC": "BTC-USD",
    "ETH": "ETH-USD",
    "USDC": "USDC-USD",
    "USDT": "USDT-USD",
    "UNI": "UNI7083-USD",
    "AAVE": "AAVE-USD",
    "COMP": "COMP5692-USD",
}


class YahooPriceHistoryLoader:
    """Fetches daily closes for crypto assets and serves them as ordered price points."""

    def __init__(
        self,
        *,
        start: date,
        end: date,
        symbol_map: Mapping[str, str] | None = None,
        auto_adjust: bool = True,
    ) -> None:
        if start > end:
            raise ValueError("start must not be after end")
        self.start = start
        self.end = end
        self.symbol_map = dict(symbol_map or DEFAULT_SYMBOLS)
        self.auto_adjust = auto_adjust

    def ticker_for(self, asset: str) -> str:
        return self.symbol_map.get(asset, f"{asset}-USD")

    def get_price_history(self, asset: str) -> List[PricePoint]:
        ticker = self.ticker_for(asset)
        try:
            frame = yf.download(
                ticker,
                start=self.start.isoformat(),
                end=(self.end + timedelta(days=1)).isoformat(),
                progress=False,
                auto_adjust=self.auto_adjust,
            )
        except Exception as exc:  # yfinance surfaces transport errors untyped
            raise DataProviderError(f"yfinance download failed for {ticker}") from exc
        if frame is None or frame.empty:
            logger.warning("no price history returned", extra={"asset": asset, "ticker": ticker})
            return []
        if getattr(frame.columns, "nlevels", 1) > 1:
            frame = frame.xs(ticker, axis=1, level=-1)
        points: List[PricePoint] = []
        for idx, record in frame.iterrows():
            try:
                stamp = idx.to_pydatetime()
            except AttributeError:
                continue
            if stamp.tzinfo is None:
                stamp = stamp.replace(tzinfo=timezone.utc)
            close = record.get("Close", record.get("close"))
            if close is None:
                continue
            volume = record.get("Volume", 0.0)
            points.append(PricePoint(timestamp=stamp, price=float(close), volume=float(volume)))
        return points

    def load(self, assets: Sequence[str]) -> Dict[str, List[PricePoint]]:
        return {asset: self.get_price_history(asset) for asset in assets}


__all__ = ["DEFAULT_SYMBOLS", "YahooPriceHistoryLoader"]
