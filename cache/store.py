"""
cache/store.py -- In-memory cache for resolved (method, path) -> action lookups.

The permission catalog pattern-matches every stored route for a method when
an exact lookup misses. Caching the outcome (including misses, stored as "")
keeps that scan off the hot path. Entries expire after a TTL and the oldest
entry is evicted once maxsize is reached.

ActionCache is the interface the catalog depends on. MemoryActionCache is the
process-local implementation; a distributed cache can be dropped in behind
the same four methods without touching the catalog.

Usage:
    cache = MemoryActionCache(maxsize=4096, ttl=300)
    cache.set("GET", "/users", "user:list")
    cache.get("GET", "/users")          # "user:list", "" for a cached miss, None if absent
    cache.invalidate_method("GET")      # after registering a GET permission
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Optional, Protocol

_DEFAULT_MAXSIZE = 4096
_DEFAULT_TTL = 300  # seconds


class ActionCache(Protocol):
    def get(self, method: str, path: str) -> Optional[str]: ...

    def set(self, method: str, path: str, action: str) -> None: ...

    def invalidate_method(self, method: str) -> int: ...

    def purge_expired(self) -> int: ...

    def clear(self) -> None: ...


class MemoryActionCache:
    """Bounded, TTL'd, thread-safe LRU map keyed by (method, path).

    Readers racing an invalidation may see the pre- or post-invalidation
    value; the next lookup after invalidate_method() always misses.
    """

    def __init__(self, maxsize: int = _DEFAULT_MAXSIZE, ttl: float = _DEFAULT_TTL) -> None:
        self.maxsize = maxsize
        self.ttl = ttl
        self._lock = threading.RLock()
        self._data: OrderedDict[tuple[str, str], tuple[float, str]] = OrderedDict()

    def get(self, method: str, path: str) -> Optional[str]:
        """Return the cached action ("" for a cached miss) or None if absent/expired."""
        key = (method.upper(), path)
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            stored_at, action = entry
            if self.ttl > 0 and time.monotonic() - stored_at > self.ttl:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return action

    def set(self, method: str, path: str, action: str) -> None:
        key = (method.upper(), path)
        with self._lock:
            self._data[key] = (time.monotonic(), action)
            self._data.move_to_end(key)
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def invalidate_method(self, method: str) -> int:
        """Drop every entry for method. Returns number of entries removed."""
        method = method.upper()
        with self._lock:
            stale = [key for key in self._data if key[0] == method]
            for key in stale:
                del self._data[key]
        return len(stale)

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of entries removed."""
        if self.ttl <= 0:
            return 0
        cutoff = time.monotonic() - self.ttl
        with self._lock:
            stale = [key for key, (stored_at, _) in self._data.items() if stored_at < cutoff]
            for key in stale:
                del self._data[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
