"""In-process store with TTL and LRU eviction (default single-instance backend)."""

import asyncio
import copy
import fnmatch
import time
from collections import OrderedDict
from typing import Any, Callable, Optional

from .base import BaseStore


class InMemoryStore(BaseStore):
    """Event-loop-safe in-memory store with TTL support and LRU eviction.

    State is process-local and lost on restart; multi-instance deployments
    should use :class:`RedisStore` instead.
    """

    def __init__(
        self,
        max_size: int = 100_000,
        clock: Callable[[], float] = time.time,
    ):
        self._max_size = max_size
        self._clock = clock
        self._store: OrderedDict[str, tuple[dict[str, Any], float]] = OrderedDict()
        self._lock = asyncio.Lock()

    def _expired(self, expires_at: float, now: float) -> bool:
        return expires_at > 0 and now > expires_at

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if self._expired(expires_at, self._clock()):
                del self._store[key]
                return None

            self._store.move_to_end(key)
            # Callers mutate what they get back; never hand out the stored dict.
            return copy.deepcopy(value)

    async def set(self, key: str, value: dict[str, Any], ttl: Optional[int] = None) -> None:
        async with self._lock:
            expires_at = self._clock() + ttl if ttl else 0
            self._store[key] = (copy.deepcopy(value), expires_at)
            self._store.move_to_end(key)
            self._evict_if_needed()

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def keys(self, pattern: str = "*") -> list[str]:
        async with self._lock:
            now = self._clock()
            return [
                k
                for k, (_, exp) in self._store.items()
                if not self._expired(exp, now) and fnmatch.fnmatchcase(k, pattern)
            ]

    def _evict_if_needed(self) -> None:
        """Drop expired entries, then least-recently-used ones over capacity.

        Must be called while holding self._lock.
        """
        if len(self._store) <= self._max_size:
            return

        now = self._clock()
        expired_keys = [k for k, (_, exp) in self._store.items() if self._expired(exp, now)]
        for k in expired_keys:
            del self._store[k]

        while len(self._store) > self._max_size:
            self._store.popitem(last=False)

    @property
    def size(self) -> int:
        """Current number of entries (including potentially expired)."""
        return len(self._store)
