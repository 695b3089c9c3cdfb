# cross_analysis.py - bucket trades by a dimension, rank and truncate

import logging
import math
from typing import Callable, Dict, List, Optional, Sequence

from grouping import group_by
from metrics import duration_minutes, parse_time_of_day, realized_r_multiple
from schemas import (
    CrossMetric,
    CrossRow,
    Dimension,
    ModelCrossTable,
    PnlMetric,
    Scope,
    TradeRecord,
)

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
UNTAGGED = "Untagged"

DURATION_BUCKETS = [
    (15, '<15m'),
    (30, '15-30m'),
    (60, '30-60m'),
    (120, '1-2h'),
    (240, '2-4h'),
    (480, '4-8h'),
]


def _hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_bucket(text: Optional[str], granularity: int) -> str:
    """'09:47' with 15 -> '09:45-10:00'."""
    minutes = parse_time_of_day(text)
    if minutes is None:
        return UNKNOWN
    start = (minutes // granularity) * granularity
    return f"{_hhmm(start)}-{_hhmm(start + granularity)}"


def number_bucket(value: Optional[float], step: float, label: str) -> str:
    if value is None or not math.isfinite(value):
        return UNKNOWN
    start = math.floor(value / step) * step
    return f"{label} {start:g} to {start + step:g}"


def duration_bucket(trade: TradeRecord) -> str:
    minutes = duration_minutes(trade)
    if minutes is None:
        return UNKNOWN
    for limit, label in DURATION_BUCKETS:
        if minutes < limit:
            return label
    return '>8h'


def _dated(fmt: Callable) -> Callable[[TradeRecord], str]:
    def classify(t: TradeRecord) -> str:
        return fmt(t.event_date) if t.event_date is not None else UNKNOWN
    return classify


def _tags(t: TradeRecord) -> List[str]:
    return list(t.tags) if t.tags else [UNTAGGED]


CLASSIFIERS: Dict[Dimension, Callable[[TradeRecord], object]] = {
    Dimension.SYMBOLS: lambda t: t.symbol or UNKNOWN,
    Dimension.INSTRUMENT: lambda t: t.instrument or t.instrument_type or UNKNOWN,
    Dimension.ACCOUNT: lambda t: t.account_name or UNKNOWN,
    Dimension.TAG: _tags,
    Dimension.DAY_OF_WEEK: _dated(lambda d: d.strftime("%a")),
    Dimension.MONTH: _dated(lambda d: d.strftime("%b")),
    Dimension.YEAR: _dated(lambda d: str(d.year)),
    Dimension.TRADE_DURATION: duration_bucket,
    Dimension.ENTRY_TIME_5M: lambda t: time_bucket(t.entry_time, 5),
    Dimension.ENTRY_TIME_15M: lambda t: time_bucket(t.entry_time, 15),
    Dimension.ENTRY_TIME_30M: lambda t: time_bucket(t.entry_time, 30),
    Dimension.ENTRY_TIME_HOURLY: lambda t: time_bucket(t.entry_time, 60),
    Dimension.EXIT_TIME_5M: lambda t: time_bucket(t.exit_time, 5),
    Dimension.EXIT_TIME_15M: lambda t: time_bucket(t.exit_time, 15),
    Dimension.EXIT_TIME_30M: lambda t: time_bucket(t.exit_time, 30),
    Dimension.EXIT_TIME_HOURLY: lambda t: time_bucket(t.exit_time, 60),
    Dimension.POSITION_SIZE: lambda t: number_bucket(t.contracts_traded, 1, 'Size'),
    Dimension.R_MULTIPLE: lambda t: number_bucket(realized_r_multiple(t), 0.5, 'R'),
    Dimension.VOLUME: lambda t: number_bucket(t.volume, 100, 'Vol'),
    Dimension.ENTRY_PRICE: lambda t: number_bucket(t.entry_price, 10, 'Price'),
    Dimension.EXIT_PRICE: lambda t: number_bucket(t.exit_price, 10, 'Price'),
}


def classify(trade: TradeRecord, dimension: Dimension) -> List[str]:
    labels = CLASSIFIERS[dimension](trade)
    return [labels] if isinstance(labels, str) else list(labels)


def _metric_value(row: CrossRow, metric: CrossMetric) -> float:
    if metric == CrossMetric.WIN_RATE:
        return row.win_rate
    if metric == CrossMetric.PNL:
        return row.pnl_sum
    return row.trade_count


def cross_analyze(
    trades: Sequence[TradeRecord],
    dimension: Dimension,
    metric: CrossMetric = CrossMetric.TRADES,
    scope: Scope = Scope.TOP,
    top_n: int = 10,
    pnl_metric: PnlMetric = PnlMetric.NET,
) -> List[CrossRow]:
    """Rank buckets of `dimension` by `metric` and keep the top or bottom N.

    Top sorts descending, Bottom ascending; ties keep first-encountered order.
    """
    dimension = Dimension(dimension)
    metric = CrossMetric(metric)
    scope = Scope(scope)
    if top_n < 1:
        raise ValueError(f"top_n must be positive, got {top_n}")

    groups = group_by(trades, lambda t: classify(t, dimension), pnl_metric)
    rows = [
        CrossRow(bucket=key, trade_count=g.count, pnl_sum=g.pnl_sum, win_rate=g.win_rate)
        for key, g in groups.items()
    ]
    rows.sort(key=lambda r: _metric_value(r, metric), reverse=(scope == Scope.TOP))
    logger.debug("Cross analysis on %s: %d buckets", dimension.value, len(rows))
    return rows[:top_n]


def cross_analyze_by_model(
    trades: Sequence[TradeRecord],
    dimension: Dimension,
    metric: CrossMetric = CrossMetric.TRADES,
    scope: Scope = Scope.TOP,
    top_n: int = 10,
    pnl_metric: PnlMetric = PnlMetric.NET,
) -> List[ModelCrossTable]:
    """One cross-analysis table per model, models in first-encountered order."""
    by_model = group_by(trades, lambda t: t.assigned_model, pnl_metric)
    return [
        ModelCrossTable(
            model=model,
            rows=cross_analyze(g.trades, dimension, metric, scope, top_n, pnl_metric),
        )
        for model, g in by_model.items()
    ]
