# metrics.py - per-trade metric primitives shared by every analytics surface

import math
from datetime import datetime
from typing import Optional

from schemas import PnlMetric, TradeRecord


def pnl_of(trade: TradeRecord, metric: PnlMetric = PnlMetric.NET) -> float:
    """P&L of a trade under the selected metric; gross falls back to net."""
    if metric == PnlMetric.GROSS:
        return trade.gross_pnl if trade.gross_pnl is not None else (trade.net_pnl or 0)
    return trade.net_pnl or 0


def date_key(dt: datetime) -> str:
    # record dates are naive local time, see schemas.parse_datetime
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"


def month_key(dt: datetime) -> str:
    return f"{dt.year:04d}-{dt.month:02d}"


def date_label(key: str) -> str:
    """'2024-01-05' -> '1/5/2024'."""
    year, month, day = (int(p) for p in key.split("-"))
    return f"{month}/{day}/{year}"


def month_label(key: str) -> str:
    """'2024-01' -> 'Jan 2024'."""
    year, month = (int(p) for p in key.split("-"))
    return datetime(year, month, 1).strftime("%b %Y")


def duration_minutes(trade: TradeRecord) -> Optional[float]:
    """Minutes between open and close; None when missing, negative or non-finite."""
    if trade.open_date is None or trade.close_date is None:
        return None
    minutes = (trade.close_date - trade.open_date).total_seconds() / 60
    if not math.isfinite(minutes) or minutes < 0:
        return None
    return minutes


def parse_time_of_day(text: Optional[str]) -> Optional[int]:
    """'HH:MM[:SS]' -> minutes since midnight, None if it cannot be read."""
    if not text:
        return None
    parts = text.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def _risk(trade: TradeRecord) -> Optional[float]:
    if trade.entry_price is None or trade.stop_loss is None:
        return None
    is_long = trade.side != "SHORT"
    risk = abs(trade.entry_price - trade.stop_loss if is_long else trade.stop_loss - trade.entry_price)
    return risk if risk > 0 else None


def realized_r_multiple(trade: TradeRecord) -> Optional[float]:
    """Stored R-multiple, else net P&L over entry-to-stop risk."""
    if trade.r_multiple is not None:
        return trade.r_multiple
    risk = _risk(trade)
    if risk is None:
        return None
    return trade.net_pnl / risk


def planned_r_multiple(trade: TradeRecord) -> Optional[float]:
    risk = _risk(trade)
    if risk is None or trade.profit_target is None:
        return None
    is_long = trade.side != "SHORT"
    target = trade.profit_target - trade.entry_price if is_long else trade.entry_price - trade.profit_target
    return target / risk


def trade_roi(trade: TradeRecord) -> Optional[float]:
    return trade.net_roi


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    if not denominator:
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def format_currency(value: Optional[float]) -> str:
    """The one currency formatter: $950.00, -$1.5k, $2.3M."""
    if value is None or not math.isfinite(value):
        return "$0"
    sign = "-" if value < 0 else ""
    absolute = abs(value)
    # unit follows the rounded magnitude: 999,960 is $1.0M, 999.996 is $1.0k
    if round(absolute / 1_000, 1) >= 1_000:
        return f"{sign}${absolute / 1_000_000:.1f}M"
    if round(absolute, 2) >= 1_000:
        return f"{sign}${absolute / 1_000:.1f}k"
    return f"{sign}${absolute:,.2f}"


def format_r_multiple(value: Optional[float]) -> str:
    if value is None or not math.isfinite(value):
        return "--"
    return f"{'+' if value >= 0 else ''}{value:.2f}R"


def format_ratio(value: Optional[float]) -> str:
    # None is the "no losses" sentinel for profit factor
    if value is None:
        return "∞"
    if not math.isfinite(value):
        return "0.00"
    return f"{value:.2f}"


def format_percent(value: float) -> str:
    return f"{value:.1f}%" if math.isfinite(value) else "0.0%"


def format_hm(total_minutes: Optional[float]) -> str:
    if total_minutes is None or not math.isfinite(total_minutes):
        return "N/A"
    mins = int(round(total_minutes))
    hours, minutes = divmod(mins, 60)
    if hours <= 0:
        return f"{minutes} min{'s' if minutes != 1 else ''}"
    text = f"{hours} hour{'s' if hours != 1 else ''}"
    if minutes:
        text += f", {minutes} minute{'s' if minutes != 1 else ''}"
    return text
