import json
import logging
import os
import shutil
import tempfile
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from schemas import TradeRecord, UNASSIGNED_MODEL, coerce_number, parse_datetime

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

Listener = Callable[[], None]


# ─── JSON Storage Helpers ────────────────────────────────────────────────────
def atomic_write_json(path: str, data: Any):
    dirpath = os.path.dirname(path) or "."
    fd, tmp = tempfile.mkstemp(dir=dirpath, text=True)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, default=str, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except Exception:
        os.remove(tmp)
        raise


def rotate_backups(src: str, backup_dir: str, max_backups: int) -> str:
    os.makedirs(backup_dir, exist_ok=True)
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    dst = os.path.join(backup_dir, f"trades-{timestamp}.json")
    shutil.copy2(src, dst)
    backs = sorted(os.listdir(backup_dir))
    while len(backs) > max_backups:
        os.remove(os.path.join(backup_dir, backs.pop(0)))
    return dst


def derive_status(net_pnl: float) -> Optional[str]:
    if net_pnl > 0:
        return "WIN"
    if net_pnl < 0:
        return "LOSS"
    return None


class TradeStore:
    """Single source of trades for the analytics layer.

    Holds an in-memory snapshot, optionally mirrored to a JSON file
    ({"schema_version": 1, "trades": [...]}). Consumers read with
    get_all_trades() and register for changes with subscribe().
    """

    def __init__(self, path: Optional[str] = None, backup_dir: str = "backups", max_backups: int = 10):
        self.path = path
        self.backup_dir = backup_dir
        self.max_backups = max_backups
        self._trades: List[TradeRecord] = []
        self._listeners: List[Listener] = []
        self._version = 0
        if path:
            self._load()

    @property
    def version(self) -> int:
        return self._version

    # ─── Reads ───────────────────────────────────────────────────────────────
    def get_all_trades(self) -> List[TradeRecord]:
        return list(self._trades)

    def get_trade(self, trade_id: str) -> Optional[TradeRecord]:
        for t in self._trades:
            if t.id == trade_id:
                return t
        return None

    def list_models(self) -> List[str]:
        return list(dict.fromkeys(t.assigned_model for t in self._trades))

    # ─── Writes ──────────────────────────────────────────────────────────────
    def add_trades(self, records: Iterable[Union[Dict[str, Any], TradeRecord]]) -> List[TradeRecord]:
        """Validate, normalize and store trades; invalid rows are skipped.

        A row whose id is already stored replaces the stored trade in place,
        so ids stay unique.
        """
        accepted = []
        replaced = 0
        positions = {t.id: i for i, t in enumerate(self._trades)}
        for raw in records:
            trade = self._normalize(raw)
            if trade is None:
                continue
            if trade.id in positions:
                self._trades[positions[trade.id]] = trade
                replaced += 1
            else:
                positions[trade.id] = len(self._trades)
                self._trades.append(trade)
            accepted.append(trade)
        if accepted:
            logger.info("Stored %d trades (%d replaced, %d total)", len(accepted), replaced, len(self._trades))
            self._changed()
        return accepted

    def remove_trade(self, trade_id: str) -> bool:
        before = len(self._trades)
        self._trades = [t for t in self._trades if t.id != trade_id]
        if len(self._trades) == before:
            return False
        logger.info("Removed trade %s", trade_id)
        self._changed()
        return True

    def assign_model(self, trade_id: str, model: Optional[str]) -> TradeRecord:
        """Assign (or with None/"None", clear) the model of one trade."""
        if model == UNASSIGNED_MODEL:
            model = None
        for i, t in enumerate(self._trades):
            if t.id == trade_id:
                updated = t.model_copy(update={"model": model})
                self._trades[i] = updated
                logger.info("Assigned trade %s to model %s", trade_id, model or UNASSIGNED_MODEL)
                self._changed()
                return updated
        raise KeyError(trade_id)

    def unassign_model(self, trade_id: str) -> TradeRecord:
        return self.assign_model(trade_id, None)

    def clear(self):
        self._trades = []
        logger.info("Cleared all trades")
        self._changed()

    # ─── Subscription ────────────────────────────────────────────────────────
    def subscribe(self, callback: Listener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # ─── Persistence ─────────────────────────────────────────────────────────
    def save(self):
        if not self.path:
            return
        payload = {
            "schema_version": SCHEMA_VERSION,
            "trades": [t.model_dump(mode="json") for t in self._trades],
        }
        atomic_write_json(self.path, payload)

    def backup(self) -> Optional[str]:
        if not self.path or not os.path.exists(self.path):
            return None
        dst = rotate_backups(self.path, self.backup_dir, self.max_backups)
        logger.info("Backed up trades to %s", dst)
        return dst

    def _load(self):
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read %s, starting empty: %s", self.path, e)
            return
        if not isinstance(data, dict) or data.get("schema_version") != SCHEMA_VERSION:
            logger.warning("Unsupported trade file format in %s, starting empty", self.path)
            return
        # later rows win on repeated ids, keeping the first position
        loaded: Dict[str, TradeRecord] = {}
        for raw in data.get("trades", []):
            trade = self._normalize(raw)
            if trade is not None:
                loaded[trade.id] = trade
        self._trades = list(loaded.values())
        logger.info("Loaded %d trades from %s", len(self._trades), self.path)

    def _changed(self):
        self._version += 1
        self.save()
        for listener in list(self._listeners):
            listener()

    def _normalize(self, raw: Union[Dict[str, Any], TradeRecord]) -> Optional[TradeRecord]:
        if isinstance(raw, TradeRecord):
            raw = raw.model_dump()
        data = dict(raw)
        symbol = data.get("symbol")
        open_date = parse_datetime(data.get("open_date", data.get("openDate")))
        if not symbol or open_date is None:
            logger.warning("Skipping trade without symbol or open date: %s", data.get("id"))
            return None
        if not data.get("id"):
            data["id"] = f"trade_{uuid.uuid4().hex}"
        if not data.get("status"):
            net = coerce_number(data.get("net_pnl", data.get("netPnl")))
            data["status"] = derive_status(net or 0)
        try:
            return TradeRecord.model_validate(data)
        except ValidationError as e:
            logger.warning("Skipping invalid trade %s: %s", data.get("id"), e)
            return None
