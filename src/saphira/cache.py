"""Single-slot-per-engine search result cache.

每个搜索引擎只有一个缓存槽 {results, query, timestamp}：
查询完全相同且未过期才命中；未命中时重新获取并无条件覆盖。
"""

import threading
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel


class CacheSlot(BaseModel):
    results: list[Any] = []
    query: str = ""
    timestamp: float = 0.0


class ResultCache:
    """In-memory result cache, never persisted.

    Args:
        ttl: Seconds an entry stays valid. Fixed for the cache's lifetime.
        clock: Monotonic seconds source; injectable for tests.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._slots: dict[str, CacheSlot] = {}
        self._lock = threading.Lock()

    def get(self, engine: str, query: str) -> list[Any] | None:
        """Cached results on a hit (exact query, age < ttl), else None."""
        with self._lock:
            slot = self._slots.get(engine)
            if slot is None or slot.query != query:
                return None
            if self._clock() - slot.timestamp >= self.ttl:
                return None
            return list(slot.results)

    def peek(self, engine: str) -> CacheSlot | None:
        """Current slot for an engine regardless of age."""
        with self._lock:
            slot = self._slots.get(engine)
            return slot.model_copy() if slot is not None else None

    def set(self, engine: str, query: str, results: list[Any]) -> None:
        with self._lock:
            self._slots[engine] = CacheSlot(
                results=list(results), query=query, timestamp=self._clock()
            )

    def clear(self, engine: str | None = None) -> None:
        """Reset one slot, or every slot when engine is None."""
        with self._lock:
            if engine is None:
                self._slots.clear()
            else:
                self._slots.pop(engine, None)
