# analytics.py - scorecard, model breakdown and R-multiple rollups

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from filters import filter_group
from grouping import group_by, is_loss, is_win
from metrics import (
    date_key,
    duration_minutes,
    format_currency,
    format_hm,
    format_percent,
    format_r_multiple,
    format_ratio,
    month_label,
    planned_r_multiple,
    pnl_of,
    realized_r_multiple,
    safe_div,
)
from schemas import (
    CompareReport,
    CumulativePoint,
    CurrentStreak,
    DayPoint,
    DayTally,
    FeaturedModels,
    GroupFilter,
    GroupMetrics,
    HoldTimes,
    ModelRow,
    OutcomeSource,
    PnlMetric,
    RDistributionBin,
    SideStats,
    Summary,
    TradeRecord,
    WinsLossesReport,
)
from timeseries import build_equity_curve, build_monthly_series, closed_trades, detect_streaks

logger = logging.getLogger(__name__)

R_RANGES = [
    ('< -2R', None, -2),
    ('-2R to -1R', -2, -1),
    ('-1R to 0R', -1, 0),
    ('0R to 1R', 0, 1),
    ('1R to 2R', 1, 2),
    ('2R to 3R', 2, 3),
    ('> 3R', 3, None),
]


def profit_factor(win_amount: float, loss_amount: float) -> Optional[float]:
    """Gross wins over absolute gross losses.

    0.0 when there is nothing on either side; None (undefined) when there
    are wins but no losses.
    """
    loss_amount = abs(loss_amount)
    if loss_amount > 0:
        return win_amount / loss_amount
    return None if win_amount > 0 else 0.0


def expectancy(win_rate: float, avg_win: float, avg_loss: float) -> float:
    """win_rate is a fraction; avg_loss a positive magnitude."""
    return win_rate * avg_win - (1 - win_rate) * avg_loss


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def avg_daily_volume(trades: Sequence[TradeRecord]) -> float:
    """Contracts traded per calendar day that has any trade."""
    day_volume: Dict[str, float] = {}
    for t in trades:
        if t.event_date is None:
            continue
        key = date_key(t.event_date)
        day_volume[key] = day_volume.get(key, 0.0) + (t.contracts_traded or 0)
    return safe_div(sum(day_volume.values()), len(day_volume))


def hold_times(trades: Sequence[TradeRecord], metric: PnlMetric, outcome: OutcomeSource) -> HoldTimes:
    def avg(subset):
        return _mean([d for d in (duration_minutes(t) for t in subset) if d is not None])

    return HoldTimes(
        all=avg(trades),
        win=avg([t for t in trades if is_win(t, metric, outcome)]),
        loss=avg([t for t in trades if is_loss(t, metric, outcome)]),
        breakeven=avg([t for t in trades if pnl_of(t, metric) == 0]),
    )


def side_win_rate(trades: Sequence[TradeRecord], side: str, metric: PnlMetric) -> float:
    side_trades = [t for t in trades if t.side == side]
    wins = sum(1 for t in side_trades if pnl_of(t, metric) > 0)
    return safe_div(wins, len(side_trades)) * 100


def current_streak(trades: Sequence[TradeRecord], metric: PnlMetric = PnlMetric.NET) -> CurrentStreak:
    """Run of same-signed trades counting back from the most recent one."""
    dated = [t for t in trades if t.event_date is not None]
    if not dated:
        return CurrentStreak()
    dated.sort(key=lambda t: t.event_date, reverse=True)
    kind = "win" if pnl_of(dated[0], metric) >= 0 else "loss"
    streak = 0
    for t in dated:
        if ("win" if pnl_of(t, metric) >= 0 else "loss") != kind:
            break
        streak += 1
    return CurrentStreak(value=streak, type=kind)


def r_multiple_metrics(trades: Sequence[TradeRecord]) -> Dict[str, object]:
    planned = [r for r in (planned_r_multiple(t) for t in trades) if r is not None]
    realized = [r for r in (realized_r_multiple(t) for t in trades) if r is not None]

    def in_range(value, low, high):
        return (low is None or value >= low) and (high is None or value < high)

    distribution = [
        RDistributionBin(
            range=label,
            planned=sum(1 for r in planned if in_range(r, low, high)),
            realized=sum(1 for r in realized if in_range(r, low, high)),
        )
        for label, low, high in R_RANGES
    ]
    return {
        "avg_planned": _mean(planned) or 0.0,
        "avg_realized": _mean(realized) or 0.0,
        "distribution": distribution,
    }


def summarize(
    trades: Sequence[TradeRecord],
    daily: List[DayPoint],
    metric: PnlMetric = PnlMetric.NET,
    outcome: OutcomeSource = OutcomeSource.STATUS,
) -> Summary:
    """Full scorecard. Trade-level win/loss follows `outcome` (stored status by default)."""
    trades = list(trades)
    closed = closed_trades(trades)
    open_count = sum(1 for t in trades if t.is_open)
    logger.debug("Summarizing %d trades (%d open) with %s", len(trades), open_count, metric.value)
    if not closed:
        return Summary(total_trades=len(trades), open_trades=open_count, hold=hold_times(trades, metric, outcome))

    wins = [t for t in closed if is_win(t, metric, outcome)]
    losses = [t for t in closed if is_loss(t, metric, outcome)]
    total_pnl = sum(pnl_of(t, metric) for t in closed)
    win_amount = sum(pnl_of(t, metric) for t in wins)
    loss_amount = abs(sum(pnl_of(t, metric) for t in losses))
    avg_win = safe_div(win_amount, len(wins))
    avg_loss = safe_div(loss_amount, len(losses))
    win_rate = safe_div(len(wins), len(closed))

    months = build_monthly_series(closed, metric)
    best_month = worst_month = None
    for m in months:
        if best_month is None or m.value > best_month.value:
            best_month = m
        if worst_month is None or m.value < worst_month.value:
            worst_month = m

    win_days = sum(1 for d in daily if d.value > 0)
    loss_days = sum(1 for d in daily if d.value < 0)
    curve = build_equity_curve(daily)
    r_stats = r_multiple_metrics(closed)
    pnls = [pnl_of(t, metric) for t in closed]

    return Summary(
        total_trades=len(trades),
        closed_trades=len(closed),
        open_trades=open_count,
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=win_rate * 100,
        total_pnl=total_pnl,
        total_commissions=sum(t.commissions or 0 for t in closed),
        avg_trade_pnl=safe_div(total_pnl, len(closed)),
        avg_win=avg_win,
        avg_loss=avg_loss,
        largest_win=max(pnls),
        largest_loss=min(pnls),
        profit_factor=profit_factor(win_amount, loss_amount),
        expectancy=expectancy(win_rate, avg_win, avg_loss),
        long_win_rate=side_win_rate(closed, "LONG", metric),
        short_win_rate=side_win_rate(closed, "SHORT", metric),
        hold=hold_times(closed, metric, outcome),
        best_month=best_month,
        worst_month=worst_month,
        avg_per_month=safe_div(sum(m.value for m in months), len(months)),
        days=DayTally(total=len(daily), win=win_days, loss=loss_days, breakeven=len(daily) - win_days - loss_days),
        streaks=detect_streaks(daily),
        current_streak=current_streak(closed, metric),
        largest_profit_day=max((d.value for d in daily), default=0.0),
        largest_loss_day=min((d.value for d in daily), default=0.0),
        avg_daily_contracts=safe_div(sum(d.contracts for d in daily), len(daily)),
        max_drawdown=curve.max_drawdown,
        max_drawdown_pct=curve.max_drawdown_pct,
        avg_drawdown=curve.avg_drawdown,
        avg_drawdown_pct=curve.avg_drawdown_pct,
        avg_planned_r_multiple=r_stats["avg_planned"],
        avg_realized_r_multiple=r_stats["avg_realized"],
        r_distribution=r_stats["distribution"],
    )


def format_summary(summary: Summary) -> Dict[str, str]:
    """Display strings for the fixed-layout scorecard."""
    def month_text(bucket):
        if bucket is None:
            return "—", "—"
        return format_currency(bucket.value), f"in {month_label(bucket.month_key)}"

    best_value, best_when = month_text(summary.best_month)
    worst_value, worst_when = month_text(summary.worst_month)
    return {
        "total_pnl": format_currency(summary.total_pnl),
        "total_trades": str(summary.total_trades),
        "open_trades": str(summary.open_trades),
        "win_rate": format_percent(summary.win_rate),
        "avg_trade_pnl": format_currency(summary.avg_trade_pnl),
        "avg_win": format_currency(summary.avg_win),
        "avg_loss": format_currency(summary.avg_loss),
        "largest_win": format_currency(summary.largest_win),
        "largest_loss": format_currency(summary.largest_loss),
        "profit_factor": format_ratio(summary.profit_factor),
        "expectancy": format_currency(summary.expectancy),
        "total_commissions": format_currency(summary.total_commissions),
        "best_month": best_value,
        "best_month_label": best_when,
        "worst_month": worst_value,
        "worst_month_label": worst_when,
        "avg_per_month": format_currency(summary.avg_per_month),
        "hold_all": format_hm(summary.hold.all),
        "hold_win": format_hm(summary.hold.win),
        "hold_loss": format_hm(summary.hold.loss),
        "hold_breakeven": format_hm(summary.hold.breakeven),
        "max_drawdown": format_currency(abs(summary.max_drawdown)),
        "max_drawdown_pct": format_percent(summary.max_drawdown_pct),
        "avg_drawdown": format_currency(abs(summary.avg_drawdown)),
        "avg_drawdown_pct": format_percent(summary.avg_drawdown_pct),
        "largest_profit_day": format_currency(summary.largest_profit_day),
        "largest_loss_day": format_currency(summary.largest_loss_day),
        "avg_daily_contracts": f"{summary.avg_daily_contracts:.2f}",
        "max_win_streak": str(summary.streaks.max_win_streak),
        "max_loss_streak": str(summary.streaks.max_loss_streak),
        "avg_planned_r_multiple": format_r_multiple(summary.avg_planned_r_multiple),
        "avg_realized_r_multiple": format_r_multiple(summary.avg_realized_r_multiple),
    }


def model_breakdown(
    trades: Sequence[TradeRecord],
    metric: PnlMetric = PnlMetric.NET,
    outcome: OutcomeSource = OutcomeSource.STATUS,
) -> List[ModelRow]:
    """Per-model rows sorted by P&L, highest first."""
    rows = []
    for model, g in group_by(trades, lambda t: t.assigned_model, metric, outcome).items():
        wins = [t for t in g.trades if is_win(t, metric, outcome)]
        losses = [t for t in g.trades if is_loss(t, metric, outcome)]
        win_amount = sum(pnl_of(t, metric) for t in wins)
        loss_amount = abs(sum(pnl_of(t, metric) for t in losses))
        avg_win = safe_div(win_amount, len(wins))
        avg_loss = safe_div(loss_amount, len(losses))

        rows.append(ModelRow(
            model=model,
            trade_count=g.count,
            win_rate=safe_div(len(wins), g.count) * 100,
            net_pnl=g.pnl_sum,
            avg_win=avg_win,
            avg_loss=avg_loss,
            avg_daily_volume=avg_daily_volume(g.trades),
            profit_factor=profit_factor(win_amount, loss_amount),
            expectancy=expectancy(safe_div(len(wins), g.count), avg_win, avg_loss),
        ))
    rows.sort(key=lambda r: r.net_pnl, reverse=True)
    return rows


def featured_models(rows: Sequence[ModelRow]) -> FeaturedModels:
    if not rows:
        return FeaturedModels()
    return FeaturedModels(
        best_performing=max(rows, key=lambda r: r.net_pnl),
        least_performing=min(rows, key=lambda r: r.net_pnl),
        most_active=max(rows, key=lambda r: r.trade_count),
        best_win_rate=max(rows, key=lambda r: r.win_rate),
    )


def max_consecutive_trades(
    trades: Sequence[TradeRecord], metric: PnlMetric = PnlMetric.NET
) -> Tuple[int, int]:
    """Longest (winning, losing) runs of trades in open order.

    A breakeven trade neither extends nor breaks the run in progress.
    """
    dated = [t for t in trades if (t.open_date or t.event_date) is not None]
    dated.sort(key=lambda t: t.open_date or t.event_date)
    best_win = best_loss = run_win = run_loss = 0
    for t in dated:
        pnl = pnl_of(t, metric)
        if pnl > 0:
            run_win += 1
            run_loss = 0
        elif pnl < 0:
            run_loss += 1
            run_win = 0
        best_win = max(best_win, run_win)
        best_loss = max(best_loss, run_loss)
    return best_win, best_loss


def wins_losses_report(trades: Sequence[TradeRecord], metric: PnlMetric = PnlMetric.NET) -> WinsLossesReport:
    """Cumulative winning vs losing P&L by day, plus per-side stats, for closed trades."""
    closed = closed_trades(trades)
    wins = [t for t in closed if pnl_of(t, metric) > 0]
    losses = [t for t in closed if pnl_of(t, metric) < 0]

    def by_day(subset):
        return group_by(subset, lambda t: date_key(t.event_date), metric)

    daily_wins, daily_losses = by_day(wins), by_day(losses)
    series = []
    won = lost = 0.0
    for key in sorted(set(daily_wins) | set(daily_losses)):
        if key in daily_wins:
            won += daily_wins[key].pnl_sum
        if key in daily_losses:
            lost += abs(daily_losses[key].pnl_sum)
        series.append(CumulativePoint(date_key=key, wins=won, losses=lost))

    max_wins, max_losses = max_consecutive_trades(closed, metric)

    def side(subset, run):
        total = sum(pnl_of(t, metric) for t in subset)
        return SideStats(
            total_pnl=total,
            trade_count=len(subset),
            avg_trade=abs(total) / len(subset) if subset else None,
            avg_daily_volume=avg_daily_volume(subset),
            commissions=sum(t.commissions or 0 for t in subset),
            max_consecutive=run,
        )

    return WinsLossesReport(series=series, wins=side(wins, max_wins), losses=side(losses, max_losses))


def compute_group_metrics(trades: Sequence[TradeRecord], metric: PnlMetric = PnlMetric.NET) -> GroupMetrics:
    pnls = [pnl_of(t, metric) for t in trades]
    won = [p for p in pnls if p > 0]
    lost = [p for p in pnls if p < 0]
    avg_win = safe_div(sum(won), len(won))
    avg_loss = safe_div(abs(sum(lost)), len(lost))
    return GroupMetrics(
        total_trades=len(pnls),
        total_pnl=sum(pnls),
        avg_pnl=safe_div(sum(pnls), len(pnls)),
        win_rate=safe_div(len(won), len(pnls)) * 100,
        winners=len(won),
        losers=len(lost),
        avg_win=avg_win,
        avg_loss=avg_loss,
        profit_factor=profit_factor(sum(won), sum(lost)),
        payoff_ratio=safe_div(avg_win, avg_loss),
    )


def compare_groups(
    trades: Sequence[TradeRecord],
    group_a: GroupFilter,
    group_b: GroupFilter,
    metric: Optional[PnlMetric] = None,
) -> CompareReport:
    """Side-by-side metrics for two filtered views of the same trades.

    Each group is scored with its own P&L metric unless metric overrides both.
    """
    report = CompareReport(
        group_a=compute_group_metrics(filter_group(trades, group_a), metric or group_a.metric),
        group_b=compute_group_metrics(filter_group(trades, group_b), metric or group_b.metric),
    )
    logger.debug("Compared groups: %d vs %d trades", report.group_a.total_trades, report.group_b.total_trades)
    return report
