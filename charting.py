"""Chart adapters for the presentation layer.

Zero-crossing points exist only here; the equity curve built in
timeseries never carries them.
"""

from typing import List, Sequence, Tuple

from schemas import ChartPoint, EquityCurve


def interpolate_zero_crossings(points: Sequence[Tuple[float, float]]) -> List[Tuple[float, float]]:
    """Insert a (x, 0) point wherever consecutive values change sign.

    Both neighbours must be nonzero; the crossing sits at
    x1 + |v1| / |v2 - v1| * (x2 - x1).
    """
    out: List[Tuple[float, float]] = []
    for i, (x2, v2) in enumerate(points):
        if i > 0:
            x1, v1 = points[i - 1]
            if v1 != 0 and v2 != 0 and (v1 > 0) != (v2 > 0):
                out.append((x1 + abs(v1) / abs(v2 - v1) * (x2 - x1), 0.0))
        out.append((x2, v2))
    return out


def equity_chart_points(curve: EquityCurve) -> List[ChartPoint]:
    """Cumulative series with pos/neg fill columns for an area chart."""
    keys = {float(i): p.date_key for i, p in enumerate(curve.points)}
    raw = [(float(i), p.cumulative_value) for i, p in enumerate(curve.points)]
    chart = []
    for x, value in interpolate_zero_crossings(raw):
        chart.append(ChartPoint(
            x=x,
            date_key=keys.get(x),
            value=value,
            pos=value if value >= 0 else None,
            neg=value if value <= 0 else None,
            synthetic=x not in keys,
        ))
    return chart
