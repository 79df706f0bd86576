from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from backtest.engine import HistoricalBacktester, HistoricalPriceArchive, load_price_csv
from data.providers.base import DataProviderError, PricePoint
from risk.errors import InvalidConfiguration
from risk.models import PositionSnapshot


def _point(day: int, price: float) -> PricePoint:
    return PricePoint(timestamp=datetime(2024, 1, day, tzinfo=timezone.utc), price=price)


def _eth() -> PositionSnapshot:
    return PositionSnapshot(
        asset="ETH",
        quantity=10.0,
        entry_price=2_000.0,
        current_price=2_000.0,
        collateral_value=20_000.0,
        debt_value=5_000.0,
        liquidation_threshold=1.5,
    )


def test_walk_uses_first_price_at_or_after_each_day() -> None:
    archive = HistoricalPriceArchive({"ETH": [_point(5, 1_000.0), _point(2, 2_200.0)]})
    trajectory, final, liquidated = HistoricalBacktester(archive).value_trajectory(
        [_eth()], date(2024, 1, 1), date(2024, 1, 7)
    )

    values = [value for _, value in trajectory]
    assert len(trajectory) == 7
    # Days 1-2 see the Jan 2 point, days 3-5 the Jan 5 point, later days keep the last price.
    assert values == [17_000.0, 17_000.0, 5_000.0, 5_000.0, 5_000.0, 5_000.0, 5_000.0]
    assert final[0].current_price == 1_000.0
    assert liquidated == set()


def test_missing_series_keeps_last_known_price() -> None:
    backtester = HistoricalBacktester(HistoricalPriceArchive())
    result = backtester.run([_eth()], date(2024, 1, 1), date(2024, 1, 3))
    assert result.initial_value == result.final_value == 15_000.0
    assert result.max_drawdown == 0.0
    assert result.var_95 == 0.0


def test_failed_lookup_does_not_abort_the_walk() -> None:
    class FlakySource:
        def get_price_history(self, asset: str):
            if asset == "BTC":
                raise DataProviderError("archive offline")
            return [_point(1, 2_500.0)]

    btc = PositionSnapshot(
        asset="BTC",
        quantity=1.0,
        entry_price=50_000.0,
        current_price=50_000.0,
        collateral_value=50_000.0,
        debt_value=0.0,
        liquidation_threshold=1.2,
    )
    result = HistoricalBacktester(FlakySource()).run([btc, _eth()], date(2024, 1, 1), date(2024, 1, 2))
    assert result.final_value == pytest.approx(50_000.0 + 25_000.0 - 5_000.0)
    assert result.surviving_positions == ("BTC", "ETH")


def test_result_reports_drawdown_risk_and_liquidations() -> None:
    start = date(2024, 1, 1)
    prices = [2_000.0, 2_400.0, 700.0, 1_500.0, 2_600.0]
    archive = HistoricalPriceArchive(
        {"ETH": [_point(1 + i, price) for i, price in enumerate(prices)]}
    )
    result = HistoricalBacktester(archive).run([_eth()], start, start + timedelta(days=4))

    values = [price * 10.0 - 5_000.0 for price in prices]
    assert result.initial_value == values[0]
    assert result.final_value == values[-1]
    assert result.max_drawdown == pytest.approx((values[2] - values[1]) / values[1])
    assert result.liquidated_positions == ("ETH",)
    assert result.var_95 > 0.0
    assert result.cvar_95 >= result.var_95
    assert result.risk_metrics.max_drawdown == pytest.approx(result.max_drawdown)
    assert result.risk_metrics.recovery_time_days == 2


def test_start_after_end_is_rejected() -> None:
    with pytest.raises(InvalidConfiguration):
        HistoricalBacktester(HistoricalPriceArchive()).run(
            [_eth()], date(2024, 1, 5), date(2024, 1, 1)
        )


def test_archive_put_get_clear_under_concurrency() -> None:
    archive = HistoricalPriceArchive()

    def writer(i: int) -> None:
        archive.put_price_history(f"A{i}", [_point(1, float(i))])

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(archive.assets()) == 16
    assert archive.get_price_history("A3")[0].price == 3.0
    assert archive.get_price_history("missing") == ()
    archive.clear()
    assert archive.assets() == []


def test_load_price_csv(tmp_path) -> None:
    path = tmp_path / "prices.csv"
    path.write_text(
        "asset,timestamp,price,volume\n"
        "ETH,2024-01-02,2100,5\n"
        "ETH,2024-01-01,2000,4\n"
        "BTC,2024-01-01,42000,1\n"
    )
    histories = load_price_csv(path)
    assert [point.price for point in histories["ETH"]] == [2000.0, 2100.0]
    assert histories["BTC"][0].volume == 1.0

    bad = tmp_path / "bad.csv"
    bad.write_text("asset,price\nETH,1\n")
    with pytest.raises(InvalidConfiguration):
        load_price_csv(bad)
