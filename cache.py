import logging
from typing import Any, Callable, Dict, Hashable, Tuple

from store import TradeStore

logger = logging.getLogger(__name__)


class AnalyticsCache:
    """Memoizes analytics results per (store version, selections).

    Entries are dropped whenever the store reports a change, so a result
    is never served for a snapshot other than the one it was built from.
    """

    def __init__(self, store: TradeStore):
        self.store = store
        self._entries: Dict[Tuple[int, Hashable], Any] = {}
        self._unsubscribe = store.subscribe(self.invalidate)
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        full_key = (self.store.version, key)
        if full_key in self._entries:
            self.hits += 1
            return self._entries[full_key]
        self.misses += 1
        value = compute()
        self._entries[full_key] = value
        return value

    def invalidate(self):
        if self._entries:
            logger.debug("Dropping %d cached analytics results", len(self._entries))
        self._entries.clear()

    def close(self):
        self._unsubscribe()
        self._entries.clear()

    def __len__(self):
        return len(self._entries)
