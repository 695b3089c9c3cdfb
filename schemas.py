import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

UNASSIGNED_MODEL = "None"
ALL_MODELS = "All Models"
TOP_N_CHOICES = (5, 10, 20, 50)

DATE_FORMATS = [
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%m/%d/%Y %H:%M:%S',
    '%m/%d/%Y %H:%M',
    '%Y-%m-%d',
    '%m/%d/%Y',
]


class PnlMetric(str, Enum):
    NET = "NET P&L"
    GROSS = "GROSS P&L"


class OutcomeSource(str, Enum):
    """Where a trade's win/loss classification comes from."""
    PNL = "pnl"        # sign of the metric-selected P&L
    STATUS = "status"  # stored WIN/LOSS status


class Scope(str, Enum):
    TOP = "Top"
    BOTTOM = "Bottom"


class CrossMetric(str, Enum):
    WIN_RATE = "Win rate"
    PNL = "P&L"
    TRADES = "Trades"


class Dimension(str, Enum):
    SYMBOLS = "Symbols"
    INSTRUMENT = "Instrument"
    ACCOUNT = "Account"
    TAG = "Tag"
    DAY_OF_WEEK = "Day of Week"
    MONTH = "Month"
    YEAR = "Year"
    TRADE_DURATION = "Trade Duration"
    ENTRY_TIME_5M = "Entry Time (5m)"
    ENTRY_TIME_15M = "Entry Time (15m)"
    ENTRY_TIME_30M = "Entry Time (30m)"
    ENTRY_TIME_HOURLY = "Entry Time (Hourly)"
    EXIT_TIME_5M = "Exit Time (5m)"
    EXIT_TIME_15M = "Exit Time (15m)"
    EXIT_TIME_30M = "Exit Time (30m)"
    EXIT_TIME_HOURLY = "Exit Time (Hourly)"
    POSITION_SIZE = "Position Size"
    R_MULTIPLE = "R-Multiple"
    VOLUME = "Volume"
    ENTRY_PRICE = "Entry Price"
    EXIT_PRICE = "Exit Price"


def to_local_naive(dt: datetime) -> datetime:
    """Aware datetimes become naive local wall-clock time; naive ones are taken as local already."""
    return dt.astimezone().replace(tzinfo=None) if dt.tzinfo is not None else dt


def parse_datetime(value: Any) -> Optional[datetime]:
    """Best-effort parse of broker/browser date values to naive local time; None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local_naive(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_local_naive(datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def coerce_number(value: Any) -> Optional[float]:
    """Numbers and "$1,234.50"/"(12.5)" style strings to float; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = (
            value.replace('$', '').replace(',', '')
            .replace('(', '-').replace(')', '').strip()
        )
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _tag_tuple(v) -> Tuple[str, ...]:
    if v is None:
        return ()
    if isinstance(v, str):
        return tuple(t.strip() for t in v.split(",") if t.strip())
    return tuple(v)


class TradeRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    symbol: str = "Unknown"
    instrument: Optional[str] = None
    instrument_type: Optional[str] = Field(None, validation_alias=AliasChoices("instrument_type", "instrumentType"))
    side: Optional[str] = None
    status: Optional[str] = None
    open_date: Optional[datetime] = Field(None, validation_alias=AliasChoices("open_date", "openDate"))
    close_date: Optional[datetime] = Field(None, validation_alias=AliasChoices("close_date", "closeDate"))
    entry_time: Optional[str] = Field(None, validation_alias=AliasChoices("entry_time", "entryTime"))
    exit_time: Optional[str] = Field(None, validation_alias=AliasChoices("exit_time", "exitTime"))
    entry_price: Optional[float] = Field(None, validation_alias=AliasChoices("entry_price", "entryPrice"))
    exit_price: Optional[float] = Field(None, validation_alias=AliasChoices("exit_price", "exitPrice"))
    contracts_traded: Optional[float] = Field(None, validation_alias=AliasChoices("contracts_traded", "contractsTraded"))
    net_pnl: float = Field(0.0, validation_alias=AliasChoices("net_pnl", "netPnl"))
    gross_pnl: Optional[float] = Field(None, validation_alias=AliasChoices("gross_pnl", "grossPnl"))
    commissions: float = 0.0
    net_roi: Optional[float] = Field(None, validation_alias=AliasChoices("net_roi", "netRoi"))
    model: Optional[str] = None
    stop_loss: Optional[float] = Field(None, validation_alias=AliasChoices("stop_loss", "stopLoss"))
    profit_target: Optional[float] = Field(None, validation_alias=AliasChoices("profit_target", "profitTarget"))
    r_multiple: Optional[float] = Field(None, validation_alias=AliasChoices("r_multiple", "rMultiple"))
    volume: Optional[float] = None
    tags: Tuple[str, ...] = ()
    account_name: Optional[str] = Field(None, validation_alias=AliasChoices("account_name", "accountName"))

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v):
        return str(v) if v is not None else v

    @field_validator("open_date", "close_date", mode="before")
    @classmethod
    def _parse_dates(cls, v):
        return parse_datetime(v)

    @field_validator(
        "entry_price", "exit_price", "contracts_traded", "gross_pnl", "net_roi",
        "stop_loss", "profit_target", "r_multiple", "volume",
        mode="before",
    )
    @classmethod
    def _optional_number(cls, v):
        return coerce_number(v)

    @field_validator("net_pnl", "commissions", mode="before")
    @classmethod
    def _number_or_zero(cls, v):
        number = coerce_number(v)
        return 0.0 if number is None else number

    @field_validator("side", "status", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.strip().upper() if isinstance(v, str) and v.strip() else None

    @field_validator("model", "instrument", "instrument_type", "account_name", "entry_time", "exit_time", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return _tag_tuple(v)

    @property
    def is_open(self) -> bool:
        return self.close_date is None

    @property
    def event_date(self) -> Optional[datetime]:
        return self.close_date or self.open_date

    @property
    def assigned_model(self) -> str:
        return self.model or UNASSIGNED_MODEL


# ─── Derived entities ────────────────────────────────────────────────────────
class _Derived(BaseModel):
    model_config = ConfigDict(frozen=True)


class GroupStats(_Derived):
    key: str
    trades: Tuple[TradeRecord, ...] = ()
    count: int = 0
    pnl_sum: float = 0.0
    win_count: int = 0
    loss_count: int = 0
    win_rate: float = 0.0
    contracts: float = 0.0


class DayPoint(_Derived):
    date_key: str
    label: str
    value: float
    contracts: float = 0.0
    trade_count: int = 0
    win_rate: float = 0.0


class MonthBucket(_Derived):
    month_key: str
    value: float
    trade_count: int = 0


class EquityPoint(_Derived):
    date_key: str
    cumulative_value: float
    running_peak: float
    drawdown_from_peak: float


class EquityCurve(_Derived):
    points: List[EquityPoint] = []
    max_drawdown: float = 0.0
    avg_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    avg_drawdown_pct: float = 0.0
    peak_cumulative: float = 0.0


class Streaks(_Derived):
    max_win_streak: int = 0
    max_loss_streak: int = 0


class ChartPoint(_Derived):
    x: float
    date_key: Optional[str] = None
    value: float
    pos: Optional[float] = None
    neg: Optional[float] = None
    synthetic: bool = False


class HoldTimes(_Derived):
    all: Optional[float] = None
    win: Optional[float] = None
    loss: Optional[float] = None
    breakeven: Optional[float] = None


class DayTally(_Derived):
    total: int = 0
    win: int = 0
    loss: int = 0
    breakeven: int = 0


class RDistributionBin(_Derived):
    range: str
    planned: int = 0
    realized: int = 0


class CurrentStreak(_Derived):
    value: int = 0
    type: str = "win"


class Summary(_Derived):
    total_trades: int = 0
    closed_trades: int = 0
    open_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    total_commissions: float = 0.0
    avg_trade_pnl: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    # None means undefined: winning trades and no losing amount
    profit_factor: Optional[float] = 0.0
    expectancy: float = 0.0
    long_win_rate: float = 0.0
    short_win_rate: float = 0.0
    hold: HoldTimes = HoldTimes()
    best_month: Optional[MonthBucket] = None
    worst_month: Optional[MonthBucket] = None
    avg_per_month: float = 0.0
    days: DayTally = DayTally()
    streaks: Streaks = Streaks()
    current_streak: CurrentStreak = CurrentStreak()
    largest_profit_day: float = 0.0
    largest_loss_day: float = 0.0
    avg_daily_contracts: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    avg_drawdown: float = 0.0
    avg_drawdown_pct: float = 0.0
    avg_planned_r_multiple: float = 0.0
    avg_realized_r_multiple: float = 0.0
    r_distribution: List[RDistributionBin] = []


class CrossRow(_Derived):
    bucket: str
    trade_count: int
    pnl_sum: float
    win_rate: float


class ModelCrossTable(_Derived):
    model: str
    rows: List[CrossRow] = []


class ModelRow(_Derived):
    model: str
    trade_count: int = 0
    win_rate: float = 0.0
    net_pnl: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    avg_daily_volume: float = 0.0
    profit_factor: Optional[float] = 0.0
    expectancy: float = 0.0


class FeaturedModels(_Derived):
    best_performing: Optional[ModelRow] = None
    least_performing: Optional[ModelRow] = None
    most_active: Optional[ModelRow] = None
    best_win_rate: Optional[ModelRow] = None


class CumulativePoint(_Derived):
    date_key: str
    wins: float = 0.0
    losses: float = 0.0  # positive magnitude


class SideStats(_Derived):
    total_pnl: float = 0.0
    trade_count: int = 0
    # average winning trade on the wins side, average losing magnitude on the losses side
    avg_trade: Optional[float] = None
    avg_daily_volume: float = 0.0
    commissions: float = 0.0
    max_consecutive: int = 0


class WinsLossesReport(_Derived):
    series: List[CumulativePoint] = []
    wins: SideStats = SideStats()
    losses: SideStats = SideStats()


class GroupMetrics(_Derived):
    total_trades: int = 0
    total_pnl: float = 0.0
    avg_pnl: float = 0.0
    win_rate: float = 0.0
    winners: int = 0
    losers: int = 0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: Optional[float] = 0.0
    payoff_ratio: float = 0.0


class CompareReport(_Derived):
    group_a: GroupMetrics
    group_b: GroupMetrics


# ─── API payloads ────────────────────────────────────────────────────────────
class TradesImport(BaseModel):
    trades: List[Dict[str, Any]]


class ModelAssignment(BaseModel):
    model: Optional[str] = None


class Selection(BaseModel):
    """Filter and metric choices of one analytics request; hashable for caching."""
    model_config = ConfigDict(frozen=True)

    metric: PnlMetric = PnlMetric.NET
    model: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None
    side: Optional[str] = None
    symbol: Optional[str] = None
    tags: Tuple[str, ...] = ()

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return _tag_tuple(v)


class GroupFilter(BaseModel):
    """One side of a compare report. side 'ALL' or blank means either side."""
    model_config = ConfigDict(frozen=True)

    symbol: Optional[str] = None
    side: Optional[str] = None
    tags: Tuple[str, ...] = ()
    start: Optional[date] = None
    end: Optional[date] = None
    metric: PnlMetric = PnlMetric.NET

    @field_validator("side", mode="before")
    @classmethod
    def _side(cls, v):
        if not isinstance(v, str) or not v.strip() or v.strip().upper() == "ALL":
            return None
        return v.strip().upper()

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v):
        return v.strip() if isinstance(v, str) and v.strip() else None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return _tag_tuple(v)


class CompareRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_a: GroupFilter = GroupFilter()
    group_b: GroupFilter = GroupFilter()
