# timeseries.py - daily/monthly series, equity curve and streaks

import logging
from typing import Iterable, List

from grouping import group_by
from metrics import date_key, date_label, month_key, safe_div
from schemas import (
    DayPoint,
    EquityCurve,
    EquityPoint,
    MonthBucket,
    PnlMetric,
    Streaks,
    TradeRecord,
)

logger = logging.getLogger(__name__)


def closed_trades(trades: Iterable[TradeRecord]) -> List[TradeRecord]:
    """Closed trades with a usable event date."""
    return [t for t in trades if not t.is_open and t.event_date is not None]


def build_daily_series(trades: Iterable[TradeRecord], metric: PnlMetric = PnlMetric.NET) -> List[DayPoint]:
    """One point per calendar day with closed trades, ascending by date key."""
    groups = group_by(closed_trades(trades), lambda t: date_key(t.event_date), metric)
    series = [
        DayPoint(
            date_key=key,
            label=date_label(key),
            value=g.pnl_sum,
            contracts=g.contracts,
            trade_count=g.count,
            win_rate=g.win_rate,
        )
        for key, g in groups.items()
    ]
    # YYYY-MM-DD sorts lexicographically in date order
    series.sort(key=lambda d: d.date_key)
    logger.debug("Built daily series with %d days", len(series))
    return series


def build_monthly_series(trades: Iterable[TradeRecord], metric: PnlMetric = PnlMetric.NET) -> List[MonthBucket]:
    """Month buckets in first-encountered order (not re-sorted)."""
    groups = group_by(closed_trades(trades), lambda t: month_key(t.event_date), metric)
    return [MonthBucket(month_key=key, value=g.pnl_sum, trade_count=g.count) for key, g in groups.items()]


def build_equity_curve(daily: List[DayPoint]) -> EquityCurve:
    running = 0.0
    peak = 0.0
    max_drawdown = 0.0
    drawdown_sum = 0.0
    drawdown_samples = 0
    points = []
    for d in daily:
        running += d.value
        peak = max(peak, running)
        drawdown = running - peak
        if drawdown < 0:
            max_drawdown = min(max_drawdown, drawdown)
            drawdown_sum += drawdown
            drawdown_samples += 1
        points.append(EquityPoint(
            date_key=d.date_key,
            cumulative_value=running,
            running_peak=peak,
            drawdown_from_peak=drawdown,
        ))

    peak_cumulative = max([0.0] + [p.cumulative_value for p in points])
    avg_drawdown = safe_div(drawdown_sum, drawdown_samples)
    return EquityCurve(
        points=points,
        max_drawdown=max_drawdown,
        avg_drawdown=avg_drawdown,
        max_drawdown_pct=safe_div(abs(max_drawdown), peak_cumulative) * 100,
        avg_drawdown_pct=safe_div(abs(avg_drawdown), peak_cumulative) * 100,
        peak_cumulative=peak_cumulative,
    )


def detect_streaks(daily: List[DayPoint]) -> Streaks:
    """Longest runs of winning and losing days; a flat day resets both."""
    max_win = max_loss = 0
    cur_win = cur_loss = 0
    for d in daily:
        if d.value > 0:
            cur_win += 1
            cur_loss = 0
            max_win = max(max_win, cur_win)
        elif d.value < 0:
            cur_loss += 1
            cur_win = 0
            max_loss = max(max_loss, cur_loss)
        else:
            cur_win = 0
            cur_loss = 0
    return Streaks(max_win_streak=max_win, max_loss_streak=max_loss)


def build_losing_streak_series(daily: List[DayPoint]) -> List[int]:
    """Running maximum losing-day streak as of each day."""
    streak = 0
    max_so_far = 0
    out = []
    for d in daily:
        streak = streak + 1 if d.value < 0 else 0
        max_so_far = max(max_so_far, streak)
        out.append(max_so_far)
    return out
