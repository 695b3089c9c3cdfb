import pytest

from charting import equity_chart_points, interpolate_zero_crossings
from schemas import DayPoint
from timeseries import build_equity_curve


def test_crossing_inserted_between_opposite_signs():
    out = interpolate_zero_crossings([(0.0, 10.0), (1.0, -30.0)])
    assert out == [(0.0, 10.0), (0.25, 0.0), (1.0, -30.0)]


def test_no_crossing_when_touching_zero():
    points = [(0.0, 10.0), (1.0, 0.0), (2.0, -5.0)]
    assert interpolate_zero_crossings(points) == points


def test_chart_points_split_into_pos_and_neg():
    daily = [DayPoint(date_key=k, label="", value=v) for k, v in [("2024-01-01", 40), ("2024-01-02", -60)]]
    curve = build_equity_curve(daily)
    chart = equity_chart_points(curve)

    assert [p.value for p in chart] == [40, 0.0, -20]
    assert chart[1].synthetic
    assert chart[1].x == pytest.approx(2 / 3)
    assert chart[1].pos == 0.0 and chart[1].neg == 0.0
    assert chart[0].pos == 40 and chart[0].neg is None
    assert chart[2].neg == -20 and chart[2].pos is None
    assert chart[2].date_key == "2024-01-02"
    # the curve itself carries no synthetic points
    assert len(curve.points) == 2
