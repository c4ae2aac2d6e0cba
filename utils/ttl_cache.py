"""Bounded in-memory cache with per-entry expiry.

Used by the search and extraction stages to avoid re-resolving the same
episode page or stream URL within a short window. Expired entries are
dropped lazily when read; when the entry count exceeds ``max_entries``
the oldest-inserted entries are evicted first (FIFO, not LRU).
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Thread-safe TTL cache with insertion-order capacity eviction."""

    def __init__(self, max_entries: int = 1000, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if self._clock() > entry.expires_at:
                del self._entries[key]
                return default
            return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds.

        Overwriting a key keeps its original insertion position. May evict
        unrelated keys when the cache is over capacity.
        """
        with self._lock:
            expires_at = self._clock() + ttl
            entry = self._entries.get(key)
            if entry is not None:
                entry.value = value
                entry.expires_at = expires_at
            else:
                self._entries[key] = CacheEntry(value, expires_at)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)


_MISSING = object()
