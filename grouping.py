from typing import Callable, Dict, Iterable, List, Sequence, Union

from metrics import pnl_of, safe_div
from schemas import GroupStats, OutcomeSource, PnlMetric, TradeRecord

KeyFn = Callable[[TradeRecord], Union[str, Sequence[str]]]


def keys_for(trade: TradeRecord, key_fn: KeyFn) -> List[str]:
    keys = key_fn(trade)
    if isinstance(keys, str):
        return [keys]
    # a trade counts once per distinct label
    return list(dict.fromkeys(keys))


def is_win(trade: TradeRecord, metric: PnlMetric, outcome: OutcomeSource) -> bool:
    if outcome == OutcomeSource.STATUS:
        return trade.status == "WIN"
    return pnl_of(trade, metric) > 0


def is_loss(trade: TradeRecord, metric: PnlMetric, outcome: OutcomeSource) -> bool:
    if outcome == OutcomeSource.STATUS:
        return trade.status == "LOSS"
    return pnl_of(trade, metric) < 0


def group_by(
    trades: Iterable[TradeRecord],
    key_fn: KeyFn,
    metric: PnlMetric = PnlMetric.NET,
    outcome: OutcomeSource = OutcomeSource.PNL,
) -> Dict[str, GroupStats]:
    """Group trades by key_fn and reduce each bucket to count/sum/win-loss stats.

    key_fn may return a single label or several; the trade is added to
    every bucket it maps to. Buckets come back in first-encountered order.
    """
    groups: Dict[str, dict] = {}
    for t in trades:
        pnl = pnl_of(t, metric)
        win = is_win(t, metric, outcome)
        loss = is_loss(t, metric, outcome)
        for key in keys_for(t, key_fn):
            if key not in groups:
                groups[key] = {"trades": [], "pnl": 0.0, "wins": 0, "losses": 0, "contracts": 0.0}
            g = groups[key]
            g["trades"].append(t)
            g["pnl"] += pnl
            g["contracts"] += t.contracts_traded or 0
            if win:
                g["wins"] += 1
            if loss:
                g["losses"] += 1

    return {
        key: GroupStats(
            key=key,
            trades=tuple(g["trades"]),
            count=len(g["trades"]),
            pnl_sum=g["pnl"],
            win_count=g["wins"],
            loss_count=g["losses"],
            win_rate=safe_div(g["wins"], len(g["trades"])) * 100,
            contracts=g["contracts"],
        )
        for key, g in groups.items()
    }
