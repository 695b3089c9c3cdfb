import calendar
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from schemas import ALL_MODELS, GroupFilter, TradeRecord

TIMEFRAMES = ("all", "1M", "3M", "6M", "1Y")


def _months_back(now: datetime, months: int) -> datetime:
    month_index = now.month - 1 - months
    year = now.year + month_index // 12
    month = month_index % 12 + 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def timeframe_range(code: str, now: Optional[datetime] = None) -> Tuple[Optional[date], Optional[date]]:
    """(start, end) dates for a timeframe selector code; (None, None) for 'all'."""
    if code not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe '{code}', expected one of {TIMEFRAMES}")
    if code == "all":
        return None, None
    now = now or datetime.now()
    months = {"1M": 1, "3M": 3, "6M": 6, "1Y": 12}[code]
    return _months_back(now, months).date(), now.date()


def filter_by_model(trades: Sequence[TradeRecord], model: Optional[str]) -> List[TradeRecord]:
    if not model or model == ALL_MODELS:
        return list(trades)
    return [t for t in trades if t.assigned_model == model]


def apply_filters(
    trades: Sequence[TradeRecord],
    model: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    side: Optional[str] = None,
    symbol: Optional[str] = None,
    tags: Sequence[str] = (),
) -> List[TradeRecord]:
    """Narrow trades by model, event date range, side, symbol and tags.

    Tags match case-insensitively and every requested tag must be present.
    """
    filtered = filter_by_model(trades, model)
    if start or end:
        kept = []
        for t in filtered:
            if t.event_date is None:
                continue
            d = t.event_date.date()
            if (not start or d >= start) and (not end or d <= end):
                kept.append(t)
        filtered = kept
    if side:
        filtered = [t for t in filtered if t.side == side.upper()]
    if symbol:
        filtered = [t for t in filtered if t.symbol.lower() == symbol.lower()]
    wanted = {tag.lower() for tag in tags if tag}
    if wanted:
        filtered = [t for t in filtered if wanted <= {tag.lower() for tag in t.tags}]
    return filtered


def filter_group(trades: Sequence[TradeRecord], group: GroupFilter) -> List[TradeRecord]:
    return apply_filters(trades, start=group.start, end=group.end, side=group.side,
                         symbol=group.symbol, tags=group.tags)
