from datetime import datetime

import pytest

from cross_analysis import (
    classify,
    cross_analyze,
    cross_analyze_by_model,
    duration_bucket,
    number_bucket,
    time_bucket,
)
from schemas import CrossMetric, Dimension, Scope

# 2024-01-01 is a Monday
WEEKDAY_COUNTS = [(1, 4), (2, 3), (3, 1), (4, 1), (5, 1)]


@pytest.fixture
def week_trades(make_trade):
    trades = []
    for day, count in WEEKDAY_COUNTS:
        for i in range(count):
            trades.append(make_trade(10 * (i + 1) - 15, day=datetime(2024, 1, day, 9 + i)))
    return trades


def test_day_of_week_top_three(week_trades):
    assert len(week_trades) == 10
    rows = cross_analyze(week_trades, Dimension.DAY_OF_WEEK, CrossMetric.TRADES, Scope.TOP, 3)

    assert [r.bucket for r in rows] == ["Mon", "Tue", "Wed"]
    assert [r.trade_count for r in rows] == [4, 3, 1]


def test_bottom_scope_sorts_ascending(week_trades):
    rows = cross_analyze(week_trades, "Day of Week", "Trades", "Bottom", 5)
    assert [r.trade_count for r in rows] == [1, 1, 1, 3, 4]
    # ties keep first-encountered order
    assert [r.bucket for r in rows[:3]] == ["Wed", "Thu", "Fri"]


def test_pnl_and_win_rate_metrics(week_trades):
    by_pnl = cross_analyze(week_trades, Dimension.DAY_OF_WEEK, CrossMetric.PNL, Scope.TOP, 5)
    # Mon: -5 + 5 + 15 + 25
    assert by_pnl[0].bucket == "Mon"
    assert by_pnl[0].pnl_sum == 40

    by_rate = cross_analyze(week_trades, Dimension.DAY_OF_WEEK, CrossMetric.WIN_RATE, Scope.TOP, 5)
    assert by_rate[0].bucket == "Mon"
    assert by_rate[0].win_rate == 75.0


def test_invalid_top_n(week_trades):
    with pytest.raises(ValueError):
        cross_analyze(week_trades, Dimension.SYMBOLS, top_n=0)


def test_invalid_dimension(week_trades):
    with pytest.raises(ValueError):
        cross_analyze(week_trades, "Weather")


def test_missing_inputs_classify_as_unknown(make_trade):
    t = make_trade(5, close_date=None, entry_time=None, contracts_traded=None)
    assert classify(t, Dimension.ENTRY_TIME_15M) == ["Unknown"]
    assert classify(t, Dimension.TRADE_DURATION) == ["Unknown"]
    assert classify(t, Dimension.POSITION_SIZE) == ["Unknown"]
    assert classify(t, Dimension.R_MULTIPLE) == ["Unknown"]
    assert classify(t, Dimension.ACCOUNT) == ["Unknown"]
    assert classify(t, Dimension.TAG) == ["Untagged"]


def test_tags_are_multi_valued(make_trade):
    trades = [make_trade(10, tags="gap, news"), make_trade(-5, tags=["news"]), make_trade(1)]
    rows = cross_analyze(trades, Dimension.TAG, CrossMetric.TRADES, Scope.TOP, 5)
    counts = {r.bucket: r.trade_count for r in rows}
    assert counts == {"news": 2, "gap": 1, "Untagged": 1}


def test_bucket_helpers(make_trade):
    assert time_bucket("09:47", 15) == "09:45-10:00"
    assert time_bucket("09:47", 60) == "09:00-10:00"
    assert time_bucket("23:59", 5) == "23:55-24:00"
    assert time_bucket("bad", 5) == "Unknown"
    assert number_bucket(2.3, 1, "Size") == "Size 2 to 3"
    assert number_bucket(-0.7, 0.5, "R") == "R -1 to -0.5"
    assert number_bucket(None, 1, "Size") == "Unknown"
    assert duration_bucket(make_trade(1)) == "30-60m"
    long_hold = make_trade(1, day=datetime(2024, 1, 2, 9), close_date=datetime(2024, 1, 2, 19))
    assert duration_bucket(long_hold) == ">8h"


def test_month_and_year_dimensions(make_trade):
    trades = [make_trade(1, day=datetime(2023, 12, 4)), make_trade(1, day=datetime(2024, 1, 4))]
    assert [r.bucket for r in cross_analyze(trades, Dimension.MONTH, top_n=5)] == ["Dec", "Jan"]
    assert [r.bucket for r in cross_analyze(trades, Dimension.YEAR, top_n=5)] == ["2023", "2024"]


def test_cross_analyze_by_model(make_trade):
    trades = [
        make_trade(10, model="Breakout", symbol="ES"),
        make_trade(-5, model="Breakout", symbol="NQ"),
        make_trade(3, symbol="ES"),
    ]
    tables = cross_analyze_by_model(trades, Dimension.SYMBOLS, top_n=5)
    assert [t.model for t in tables] == ["Breakout", "None"]
    assert [r.bucket for r in tables[0].rows] == ["ES", "NQ"]
    assert tables[1].rows[0].trade_count == 1
