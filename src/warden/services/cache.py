from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")


class RecordCache(Generic[V]):
    """Row cache for a store: entries expire after `ttl_seconds` and the oldest are evicted past `max_entries`.

    Stores drop a key whenever they write it, so a hit is never older than the last local write.
    """

    def __init__(
        self,
        ttl_seconds: int = 120,
        max_entries: int = 5_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = max(1, int(ttl_seconds))
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._rows: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()

    def get(self, key: Hashable) -> Optional[V]:
        hit = self._rows.get(key)
        if hit is None:
            return None
        expires_at, value = hit
        if expires_at <= self._clock():
            del self._rows[key]
            return None
        self._rows.move_to_end(key)
        return value

    def put(self, key: Hashable, value: V) -> None:
        self._rows[key] = (self._clock() + self.ttl, value)
        self._rows.move_to_end(key)
        while len(self._rows) > self.max_entries:
            self._rows.popitem(last=False)

    def discard(self, key: Hashable) -> None:
        self._rows.pop(key, None)

    def __len__(self) -> int:
        return len(self._rows)
