from __future__ import annotations

import time
from collections import OrderedDict

from .types import TradeEvent


class TradeDeduper:
    """Remembers recently notified trade transitions for ``ttl_seconds``.

    Entries are kept in last-seen order so expiry only has to look at the
    front of the mapping.
    """

    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._seen: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def is_new(self, key: str, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        self._expire(now)
        fresh = key not in self._seen
        self._seen.pop(key, None)
        self._seen[key] = now
        return fresh

    def _expire(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if seen_at >= cutoff:
                break
            del self._seen[key]


def dedupe_key(trade: TradeEvent) -> str:
    # createTrade and updateTrade may both report the same transition.
    return f"{trade.id}:{(trade.status or '').upper()}"
