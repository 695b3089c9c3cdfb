from datetime import date, datetime

import pytest

from cross_analysis import classify
from filters import apply_filters, filter_by_model, filter_group, timeframe_range
from metrics import date_key
from schemas import Dimension, GroupFilter, TradeRecord
from timeseries import build_daily_series


def test_timeframe_range():
    now = datetime(2024, 5, 31, 12)
    assert timeframe_range("all", now) == (None, None)
    assert timeframe_range("1M", now) == (date(2024, 4, 30), date(2024, 5, 31))
    assert timeframe_range("3M", now) == (date(2024, 2, 29), date(2024, 5, 31))
    assert timeframe_range("1Y", now) == (date(2023, 5, 31), date(2024, 5, 31))
    with pytest.raises(ValueError):
        timeframe_range("2W", now)


def test_filter_by_model(make_trade):
    trades = [make_trade(1, model="Breakout"), make_trade(2)]
    assert len(filter_by_model(trades, "All Models")) == 2
    assert [t.model for t in filter_by_model(trades, "Breakout")] == ["Breakout"]
    assert [t.model for t in filter_by_model(trades, "None")] == [None]


def test_apply_filters(make_trade):
    trades = [
        make_trade(1, day=datetime(2024, 1, 10), symbol="ES", side="LONG"),
        make_trade(2, day=datetime(2024, 2, 10), symbol="NQ", side="SHORT"),
        make_trade(3, day=datetime(2024, 3, 10), symbol="es", side="long"),
    ]
    assert len(apply_filters(trades, start=date(2024, 2, 1))) == 2
    assert len(apply_filters(trades, end=date(2024, 2, 10))) == 2
    assert [t.net_pnl for t in apply_filters(trades, symbol="ES")] == [1, 3]
    assert [t.net_pnl for t in apply_filters(trades, side="short")] == [2]


def test_offset_dates_use_local_calendar_day(new_york_tz):
    # 02:00 UTC on Feb 1 is 21:00 on Wednesday Jan 31 in New York
    trade = TradeRecord(id="late", symbol="ES", openDate="2024-02-01T01:30:00Z",
                        closeDate="2024-02-01T02:00:00Z", netPnl=10)
    assert date_key(trade.event_date) == "2024-01-31"
    assert build_daily_series([trade])[0].date_key == "2024-01-31"
    assert apply_filters([trade], start=date(2024, 1, 31), end=date(2024, 1, 31)) == [trade]
    assert classify(trade, Dimension.DAY_OF_WEEK) == ["Wed"]
    assert classify(trade, Dimension.MONTH) == ["Jan"]


def test_tags_must_all_match(make_trade):
    trades = [
        make_trade(1, tags=("Gap", "Trend")),
        make_trade(2, tags=("gap",)),
        make_trade(3),
    ]
    assert [t.net_pnl for t in apply_filters(trades, tags=["GAP"])] == [1, 2]
    assert [t.net_pnl for t in apply_filters(trades, tags=["gap", "trend"])] == [1]
    assert len(apply_filters(trades, tags=[""])) == 3


def test_filter_group(make_trade):
    trades = [
        make_trade(1, day=datetime(2024, 1, 10), side="LONG", tags=("Gap",)),
        make_trade(2, day=datetime(2024, 2, 10), side="SHORT"),
    ]
    assert len(filter_group(trades, GroupFilter(side="ALL"))) == 2
    assert [t.net_pnl for t in filter_group(trades, GroupFilter(side=" short "))] == [2]
    assert [t.net_pnl for t in filter_group(trades, GroupFilter(tags="gap, "))] == [1]
    assert filter_group(trades, GroupFilter(start=date(2024, 3, 1))) == []
