"""Cache abstraction shared by the cargo and vehicle sources.

Sources only see the Cache protocol, so an in-process TTL map can be swapped
for a distributed cache without touching business logic.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

_MISSING = object()


class Cache(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def invalidate(self, key: str) -> None: ...

    def invalidate_prefix(self, prefix: str) -> int: ...

    def clear(self) -> None: ...


class InMemoryTTLCache:
    """Thread-safe dict cache with per-entry expiry on a monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("cache: invalidated %d entries under %r", len(stale), prefix)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)


def cached(cache: Cache, key: str, ttl: float, loader: Callable[[], Any]) -> Any:
    """Return the cached value for key, loading and storing it on a miss.

    None is a legitimate cached value (e.g. "no such vehicle"), so misses are
    detected with a sentinel.
    """
    value = cache.get(key, _MISSING)
    if value is not _MISSING:
        return value
    value = loader()
    cache.set(key, value, ttl)
    return value
