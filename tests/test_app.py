from fastapi.testclient import TestClient
import pytest

from main import app, get_store
from store import TradeStore

TRADES = [
    {"id": "t1", "symbol": "ES", "side": "LONG", "openDate": "2024-01-01T09:30:00",
     "closeDate": "2024-01-01T10:00:00", "netPnl": 100, "entryTime": "09:30"},
    {"id": "t2", "symbol": "NQ", "side": "SHORT", "openDate": "2024-01-02T09:30:00",
     "closeDate": "2024-01-02T10:00:00", "netPnl": -50, "entryTime": "09:45"},
    {"id": "t3", "symbol": "ES", "side": "LONG", "openDate": "2024-01-03T09:30:00",
     "closeDate": "2024-01-03T10:00:00", "netPnl": 30, "grossPnl": 35},
    {"id": "t4", "symbol": "CL", "side": "LONG", "openDate": "2024-01-04T09:30:00", "netPnl": 10},
]


@pytest.fixture
def store():
    s = TradeStore()
    s.add_trades(TRADES)
    app.dependency_overrides[get_store] = lambda: s
    yield s
    app.dependency_overrides.clear()


client = TestClient(app)


def test_root_endpoint():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"Trade Journal Analytics": "Online"}


def test_import_and_list_trades(store):
    response = client.post("/trades", json={"trades": [
        {"symbol": "GC", "openDate": "2024-01-05", "netPnl": 5},
        {"openDate": "2024-01-05"},
    ]})
    assert response.status_code == 201
    assert response.json()["added"] == 1
    assert response.json()["skipped"] == 1

    trades = client.get("/trades").json()
    assert len(trades) == 5
    assert len(client.get("/trades", params={"symbol": "es"}).json()) == 2


def test_delete_trade(store):
    assert client.delete("/trades/t1").status_code == 200
    assert client.delete("/trades/t1").status_code == 404
    assert client.delete("/trades").status_code == 200
    assert store.get_all_trades() == []


def test_assign_model(store):
    response = client.put("/trades/t1/model", json={"model": "Breakout"})
    assert response.status_code == 200
    assert response.json()["model"] == "Breakout"
    assert client.get("/models").json() == {"models": ["All Models", "Breakout", "None"]}
    assert client.put("/trades/nope/model", json={"model": "Breakout"}).status_code == 404


def test_summary(store):
    body = client.get("/analytics/summary").json()
    summary = body["summary"]
    assert summary["total_pnl"] == 80
    assert summary["open_trades"] == 1
    assert summary["max_drawdown"] == -50
    assert body["display"]["total_pnl"] == "$80.00"

    gross = client.get("/analytics/summary", params={"metric": "GROSS P&L"}).json()
    assert gross["summary"]["total_pnl"] == 85


def test_summary_reflects_store_changes(store):
    assert client.get("/analytics/summary").json()["summary"]["total_pnl"] == 80
    store.remove_trade("t2")
    assert client.get("/analytics/summary").json()["summary"]["total_pnl"] == 130


def test_daily_and_equity(store):
    daily = client.get("/analytics/daily").json()
    assert [d["value"] for d in daily["daily"]] == [100, -50, 30]
    assert daily["losing_streaks"] == [0, 1, 1]

    equity = client.get("/analytics/equity").json()
    assert [p["cumulative_value"] for p in equity["points"]] == [100, 50, 80]

    chart = client.get("/analytics/equity/chart").json()
    assert len(chart) == 3


def test_cross_analysis(store):
    response = client.get("/analytics/cross", params={"dimension": "Symbols", "top_n": 5})
    assert response.status_code == 200
    rows = response.json()
    assert rows[0] == {"bucket": "ES", "trade_count": 2, "pnl_sum": 130, "win_rate": 100.0}

    by_time = client.get("/analytics/cross", params={"dimension": "Entry Time (15m)", "top_n": 5}).json()
    assert {r["bucket"] for r in by_time} == {"09:30-09:45", "09:45-10:00", "Unknown"}

    by_model = client.get("/analytics/cross", params={"by_model": True, "top_n": 5}).json()
    assert by_model[0]["model"] == "None"


@pytest.mark.parametrize("params", [
    {"top_n": 7},
    {"dimension": "Weather"},
    {"scope": "Middle"},
    {"cross_metric": "Sharpe"},
    {"metric": "NETT"},
])
def test_cross_analysis_bad_selection(store, params):
    assert client.get("/analytics/cross", params=params).status_code == 400


def test_choices_accepted_by_name(store):
    params = {"metric": "net", "dimension": "day_of_week", "scope": "bottom", "cross_metric": "pnl", "top_n": 5}
    assert client.get("/analytics/cross", params=params).status_code == 200


def test_bad_timeframe(store):
    assert client.get("/analytics/summary", params={"timeframe": "2W"}).status_code == 400


def test_models_analytics(store):
    client.put("/trades/t1/model", json={"model": "Breakout"})
    body = client.get("/analytics/models").json()
    assert [r["model"] for r in body["models"]] == ["Breakout", "None"]
    assert body["featured"]["best_performing"]["model"] == "Breakout"

    filtered = client.get("/analytics/summary", params={"model": "Breakout"}).json()
    assert filtered["summary"]["total_pnl"] == 100


def test_wins_losses(store):
    body = client.get("/analytics/wins-losses").json()
    assert [(p["date_key"], p["wins"], p["losses"]) for p in body["series"]] == [
        ("2024-01-01", 100, 0), ("2024-01-02", 100, 50), ("2024-01-03", 130, 50),
    ]
    assert body["wins"]["trade_count"] == 2
    assert body["wins"]["avg_trade"] == 65
    assert body["losses"]["total_pnl"] == -50
    assert body["losses"]["max_consecutive"] == 1


def test_compare(store):
    response = client.post("/analytics/compare", json={
        "group_a": {"symbol": "ES"},
        "group_b": {"side": "ALL"},
    })
    assert response.status_code == 200
    body = response.json()
    assert body["group_a"]["total_pnl"] == 130
    assert body["group_a"]["win_rate"] == 100.0
    assert body["group_a"]["profit_factor"] is None
    assert body["group_b"]["total_trades"] == 4
    assert body["group_b"]["losers"] == 1

    shorts = client.post("/analytics/compare", json={"group_b": {"side": "short"}}).json()
    assert shorts["group_b"]["total_pnl"] == -50
    assert client.post("/analytics/compare", json={"group_a": {"metric": "NETT"}}).status_code == 422


def test_tags_query(store):
    store.add_trades([{"id": "t5", "symbol": "ES", "openDate": "2024-01-05T09:30:00",
                       "closeDate": "2024-01-05T10:00:00", "netPnl": 7, "tags": ["Gap", "A+"]}])
    assert [t["id"] for t in client.get("/trades", params={"tags": "gap"}).json()] == ["t5"]
    assert client.get("/trades", params={"tags": "gap,fade"}).json() == []
    summary = client.get("/analytics/summary", params={"tags": "A+, GAP"}).json()["summary"]
    assert summary["total_pnl"] == 7
