import os
import time
import itertools
from datetime import datetime, timedelta

import pytest

from schemas import TradeRecord

_ids = itertools.count(1)


@pytest.fixture
def make_trade():
    """Factory for closed trades; pass close_date=None for an open one."""

    def _make(net_pnl=0.0, day=None, **fields):
        opened = day or datetime(2024, 1, 2, 9, 30)
        data = {
            "id": f"t{next(_ids)}",
            "symbol": "ES",
            "side": "LONG",
            "open_date": opened,
            "close_date": opened + timedelta(minutes=30),
            "net_pnl": net_pnl,
            "status": "WIN" if net_pnl > 0 else "LOSS" if net_pnl < 0 else None,
        }
        data.update(fields)
        return TradeRecord(**data)

    return _make


@pytest.fixture
def new_york_tz():
    """Run the test with the process local zone set to America/New_York."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is unavailable on this platform")
    previous = os.environ.get("TZ")
    # POSIX rule form needs no zoneinfo database
    os.environ["TZ"] = "EST+05EDT,M3.2.0,M11.1.0"
    time.tzset()
    yield
    if previous is None:
        del os.environ["TZ"]
    else:
        os.environ["TZ"] = previous
    time.tzset()
