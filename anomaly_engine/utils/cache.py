"""Expiring LRU cache used for per-source baselines."""

import asyncio
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from .logging import get_logger

logger = get_logger("utils.cache")


class _Entry(NamedTuple):
    value: Any
    expires_at: float


class TTLCache:
    """Bounded in-memory cache; entries expire after a TTL, the least recently
    used entry goes first when the cache is full.

    Values are replaced wholesale, never mutated in place, so a reader always
    sees either the previous or the new value for a key.
    """

    def __init__(self, default_ttl: float = 3600.0, max_entries: int = 1000):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._compute_locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if time.monotonic() > entry.expires_at:
            self._drop(key)
            logger.debug("cache_entry_expired", key=key)
            return None
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        lifetime = self._default_ttl if ttl is None else ttl
        self._entries[key] = _Entry(value, time.monotonic() + lifetime)
        self._entries.move_to_end(key)
        if len(self._entries) > self._max_entries:
            self._shrink()

    def invalidate(self, key: str) -> None:
        self._drop(key)

    def clear(self) -> None:
        self._entries.clear()
        self._compute_locks.clear()

    async def get_or_compute(
        self,
        key: str,
        compute_fn: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value, running ``compute_fn`` on a miss.

        Concurrent misses on one key share a single computation; other keys
        are not blocked. A failed computation caches nothing.
        """
        value = self.get(key)
        if value is not None:
            return value

        lock = self._compute_locks.get(key)
        if lock is None:
            lock = self._compute_locks[key] = asyncio.Lock()
        async with lock:
            value = self.get(key)
            if value is None:
                value = await compute_fn()
                self.set(key, value, ttl)
        return value

    def _drop(self, key: str) -> None:
        self._entries.pop(key, None)
        self._compute_locks.pop(key, None)

    def _shrink(self) -> None:
        now = time.monotonic()
        for key in [k for k, e in self._entries.items() if now > e.expires_at]:
            self._drop(key)
        while len(self._entries) > self._max_entries:
            key = next(iter(self._entries))
            self._drop(key)
            logger.debug("cache_entry_evicted", key=key)
