import os
import logging
from datetime import date
from typing import Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from dotenv import load_dotenv
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import timezone

from analytics import (
    compare_groups,
    featured_models,
    format_summary,
    model_breakdown,
    summarize,
    wins_losses_report,
)
from cache import AnalyticsCache
from charting import equity_chart_points
from cross_analysis import cross_analyze, cross_analyze_by_model
from export_tools import export_summary_pdf, export_to_excel
from filters import apply_filters, timeframe_range
from schemas import (
    ALL_MODELS,
    TOP_N_CHOICES,
    CompareRequest,
    CrossMetric,
    Dimension,
    ModelAssignment,
    PnlMetric,
    Scope,
    Selection,
    TradeRecord,
    TradesImport,
)
from store import TradeStore
from timeseries import (
    build_daily_series,
    build_equity_curve,
    build_losing_streak_series,
    build_monthly_series,
    detect_streaks,
)

load_dotenv()

# ─── Config & Logging ────────────────────────────────────────────────────────
DATA_FILE = os.getenv("TRADE_JOURNAL_DATA_FILE", "trades.json")
BACKUP_DIR = os.getenv("TRADE_JOURNAL_BACKUP_DIR", "backups")
MAX_BACKUPS = int(os.getenv("TRADE_JOURNAL_MAX_BACKUPS", "10"))
EXPORT_DIR = os.getenv("TRADE_JOURNAL_EXPORT_DIR", "exports")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

# ─── FastAPI Setup ───────────────────────────────────────────────────────────
app = FastAPI(title="Trade Journal Analytics")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

store = TradeStore(DATA_FILE, backup_dir=BACKUP_DIR, max_backups=MAX_BACKUPS)
_caches: Dict[int, AnalyticsCache] = {}


def get_store() -> TradeStore:
    return store


def get_cache(store: TradeStore = Depends(get_store)) -> AnalyticsCache:
    cache = _caches.get(id(store))
    if cache is None or cache.store is not store:
        cache = _caches[id(store)] = AnalyticsCache(store)
    return cache


def parse_choice(enum_cls, value: str, field: str):
    """Accept an enum by value ("NET P&L") or by name ("net")."""
    try:
        return enum_cls(value)
    except ValueError:
        pass
    try:
        return enum_cls[value.strip().upper().replace(" ", "_")]
    except KeyError:
        choices = [e.value for e in enum_cls]
        raise HTTPException(status_code=400, detail=f"Invalid {field} '{value}', expected one of {choices}")


def get_selection(
    metric: str = Query(PnlMetric.NET.value),
    model: Optional[str] = Query(None),
    timeframe: str = Query("all"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    side: Optional[str] = Query(None),
    symbol: Optional[str] = Query(None),
    tags: Optional[str] = Query(None, description="Comma-separated; every tag must match"),
) -> Selection:
    try:
        tf_start, tf_end = timeframe_range(timeframe)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Selection(
        metric=parse_choice(PnlMetric, metric, "metric"),
        model=model,
        start=start or tf_start,
        end=end or tf_end,
        side=side,
        symbol=symbol,
        tags=tags,
    )


def selected_trades(store: TradeStore, sel: Selection) -> List[TradeRecord]:
    return apply_filters(
        store.get_all_trades(),
        model=sel.model,
        start=sel.start,
        end=sel.end,
        side=sel.side,
        symbol=sel.symbol,
        tags=sel.tags,
    )


# ─── Routes ──────────────────────────────────────────────────────────────────
@app.get("/trades")
def get_trades(sel: Selection = Depends(get_selection), store: TradeStore = Depends(get_store)):
    return selected_trades(store, sel)

@app.post("/trades", status_code=201)
def import_trades(payload: TradesImport, store: TradeStore = Depends(get_store)):
    added = store.add_trades(payload.trades)
    skipped = len(payload.trades) - len(added)
    if skipped:
        logger.warning("Skipped %d invalid trades on import", skipped)
    return {"added": len(added), "skipped": skipped, "trades": added}

@app.delete("/trades")
def clear_trades(store: TradeStore = Depends(get_store)):
    store.clear()
    return {"msg": "All trades deleted"}

@app.delete("/trades/{trade_id}")
def delete_trade(trade_id: str, store: TradeStore = Depends(get_store)):
    if not store.remove_trade(trade_id):
        raise HTTPException(status_code=404, detail="Trade not found")
    return {"msg": "Trade deleted"}

@app.put("/trades/{trade_id}/model")
def assign_model(trade_id: str, assignment: ModelAssignment, store: TradeStore = Depends(get_store)):
    try:
        return store.assign_model(trade_id, assignment.model)
    except KeyError:
        raise HTTPException(status_code=404, detail="Trade not found")

@app.get("/models")
def list_models(store: TradeStore = Depends(get_store)):
    return {"models": [ALL_MODELS] + store.list_models()}

# ─── Analytics ───────────────────────────────────────────────────────────────
@app.get("/analytics/summary")
def get_summary(
    sel: Selection = Depends(get_selection),
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    def compute():
        trades = selected_trades(store, sel)
        summary = summarize(trades, build_daily_series(trades, sel.metric), sel.metric)
        return {"summary": summary, "display": format_summary(summary)}

    return cache.get_or_compute(("summary", sel), compute)

@app.get("/analytics/daily")
def get_daily(
    sel: Selection = Depends(get_selection),
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    def compute():
        trades = selected_trades(store, sel)
        daily = build_daily_series(trades, sel.metric)
        return {
            "daily": daily,
            "monthly": build_monthly_series(trades, sel.metric),
            "streaks": detect_streaks(daily),
            "losing_streaks": build_losing_streak_series(daily),
        }

    return cache.get_or_compute(("daily", sel), compute)

@app.get("/analytics/equity")
def get_equity(
    sel: Selection = Depends(get_selection),
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    def compute():
        return build_equity_curve(build_daily_series(selected_trades(store, sel), sel.metric))

    return cache.get_or_compute(("equity", sel), compute)

@app.get("/analytics/equity/chart")
def get_equity_chart(
    sel: Selection = Depends(get_selection),
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    def compute():
        curve = build_equity_curve(build_daily_series(selected_trades(store, sel), sel.metric))
        return equity_chart_points(curve)

    return cache.get_or_compute(("equity_chart", sel), compute)

@app.get("/analytics/cross")
def get_cross(
    dimension: str = Query(Dimension.SYMBOLS.value),
    cross_metric: str = Query(CrossMetric.TRADES.value),
    scope: str = Query(Scope.TOP.value),
    top_n: int = Query(10),
    by_model: bool = Query(False),
    sel: Selection = Depends(get_selection),
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    dim = parse_choice(Dimension, dimension, "dimension")
    metric = parse_choice(CrossMetric, cross_metric, "cross metric")
    scope_ = parse_choice(Scope, scope, "scope")
    if top_n not in TOP_N_CHOICES:
        raise HTTPException(status_code=400, detail=f"top_n must be one of {list(TOP_N_CHOICES)}")
    analyze = cross_analyze_by_model if by_model else cross_analyze

    def compute():
        return analyze(selected_trades(store, sel), dim, metric, scope_, top_n, sel.metric)

    return cache.get_or_compute(("cross", dim, metric, scope_, top_n, by_model, sel), compute)

@app.get("/analytics/models")
def get_models_analytics(
    sel: Selection = Depends(get_selection),
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    def compute():
        rows = model_breakdown(selected_trades(store, sel), sel.metric)
        return {"models": rows, "featured": featured_models(rows)}

    return cache.get_or_compute(("models", sel), compute)

@app.get("/analytics/wins-losses")
def get_wins_losses(
    sel: Selection = Depends(get_selection),
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    def compute():
        return wins_losses_report(selected_trades(store, sel), sel.metric)

    return cache.get_or_compute(("wins_losses", sel), compute)

@app.post("/analytics/compare")
def compare(
    request: CompareRequest,
    store: TradeStore = Depends(get_store),
    cache: AnalyticsCache = Depends(get_cache),
):
    def compute():
        return compare_groups(store.get_all_trades(), request.group_a, request.group_b)

    return cache.get_or_compute(("compare", request), compute)

# ─── Export ──────────────────────────────────────────────────────────────────
@app.get("/export/excel")
def export_excel(sel: Selection = Depends(get_selection), store: TradeStore = Depends(get_store)):
    filename = export_to_excel(selected_trades(store, sel), export_dir=EXPORT_DIR)
    return FileResponse(filename, media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

@app.get("/export/pdf")
def export_pdf(sel: Selection = Depends(get_selection), store: TradeStore = Depends(get_store)):
    trades = selected_trades(store, sel)
    summary = summarize(trades, build_daily_series(trades, sel.metric), sel.metric)
    filename = export_summary_pdf(summary, export_dir=EXPORT_DIR)
    return FileResponse(filename, media_type="application/pdf")

# Scheduler for periodic tasks (e.g., backups)
scheduler = AsyncIOScheduler(timezone=timezone("UTC"))

# Health check
@app.get("/")
def read_root():
    return {"Trade Journal Analytics": "Online"}

@app.on_event("startup")
async def startup():
    scheduler.add_job(store.backup, "interval", hours=24, id="backup", replace_existing=True)
    scheduler.start()
    logger.info("Serving %d trades from %s", len(store.get_all_trades()), DATA_FILE)

@app.on_event("shutdown")
async def shutdown():
    if scheduler.running:
        scheduler.shutdown()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=PORT)
