from __future__ import annotations

from datetime import timedelta

import pytest

from tradematch.domain.matcher import match_fills
from tradematch.domain.metrics import MetricsCalculator

from conftest import BASE_TS

ONE_DAY = 24 * 60


@pytest.fixture(name="trades")
def trades_fixture(make_fill, resolver):
    fills = [
        # Day 1: +10 gross, 2.0 commission
        make_fill("BUY", 1, 100.0, minutes=0, commission=1.0),
        make_fill("SELL", 1, 110.0, minutes=5, commission=1.0),
        # Day 2: -5 gross, no commission
        make_fill("BUY", 1, 100.0, minutes=ONE_DAY, instrument="OTHER"),
        make_fill("SELL", 1, 95.0, minutes=ONE_DAY + 5, instrument="OTHER"),
    ]
    resolver.override("OTHER", {"tick_size": 1, "tick_value": 1})
    return match_fills(fills, resolver).trades


def test_overview_stats(trades):
    stats = MetricsCalculator.get_overview_stats(trades)

    assert stats["total_trades"] == 2
    assert stats["winning_trades"] == 1
    assert stats["losing_trades"] == 1
    assert stats["win_rate"] == 0.5
    assert stats["total_gross"] == 5.0
    assert stats["total_commissions"] == 2.0
    assert stats["total_net"] == 3.0
    assert stats["avg_win"] == 8.0
    assert stats["avg_loss"] == -5.0
    assert stats["profit_factor"] == pytest.approx(1.6)  # net 8 / net 5


def test_overview_stats_gross_basis(trades):
    stats = MetricsCalculator.get_overview_stats(trades, use_gross=True)

    assert stats["avg_win"] == 10.0
    assert stats["avg_loss"] == -5.0
    assert stats["profit_factor"] == 2.0


def test_overview_stats_empty():
    stats = MetricsCalculator.get_overview_stats([])
    assert stats["total_trades"] == 0
    assert stats["profit_factor"] == 0.0


def test_instrument_stats(trades):
    df = MetricsCalculator.get_instrument_stats(trades)

    assert list(df["instrument"]) == ["OTHER", "TEST"]
    test_row = df[df["instrument"] == "TEST"].iloc[0]
    assert test_row["count"] == 1
    assert test_row["wins"] == 1
    assert test_row["net_pnl"] == 8.0


def test_equity_curve_non_empty(trades):
    curve = MetricsCalculator.get_equity_curve(trades, report_timezone="US/Eastern")

    assert list(curve["date"]) == [
        BASE_TS.strftime("%Y-%m-%d"),
        (BASE_TS + timedelta(days=1)).strftime("%Y-%m-%d"),
    ]
    assert list(curve["cumulative_pnl"]) == [8.0, 3.0]
    assert list(curve["drawdown"]) == [0.0, -5.0]


def test_trades_frame_columns(trades):
    df = MetricsCalculator.trades_frame(trades)
    assert len(df) == 2
    assert {"id", "pnl", "net_pnl", "held"} <= set(df.columns)
