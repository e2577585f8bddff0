#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Bounded in-memory cache with TTL expiry and LRU eviction."""

import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional, Tuple


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    dependencies: Tuple[str, ...] = ()
    hits: int = 0


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def lookups(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Hits as a percentage of lookups."""
        return self.hits / self.lookups * 100 if self.lookups else 0.0


class LRUCache:
    """Thread-safe key/value store.

    Entries older than ``ttl`` seconds are dropped on access (``ttl <= 0``
    disables expiry). When ``max_entries`` is reached, expired entries are
    purged first and then the least recently read entry is evicted.
    Subclasses can keep side indexes in sync through ``_on_remove``.
    """

    def __init__(self, name: str, ttl: float, max_entries: int,
                 clock: Callable[[], float] = time.time):
        self.name = name
        self.ttl = ttl
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self.stats = CacheStats()

    def _expired(self, entry: CacheEntry) -> bool:
        return self.ttl > 0 and self._clock() - entry.stored_at > self.ttl

    def _on_remove(self, key: str, entry: CacheEntry) -> None:
        pass

    def _pop(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._on_remove(key, entry)
        return entry

    def purge_expired(self) -> int:
        with self._lock:
            stale = [k for k, e in self._entries.items() if self._expired(e)]
            for key in stale:
                self._pop(key)
            self.stats.expirations += len(stale)
            return len(stale)

    def _make_room(self) -> None:
        if len(self._entries) < self.max_entries:
            return
        self.purge_expired()
        while len(self._entries) >= self.max_entries:
            # least recently read entry sits at the front
            self._pop(next(iter(self._entries)))
            self.stats.evictions += 1

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._expired(entry):
                self._pop(key)
                self.stats.expirations += 1
                entry = None
            if entry is None:
                self.stats.misses += 1
                return default
            entry.hits += 1
            self._entries.move_to_end(key)
            self.stats.hits += 1
            return entry.value

    def has(self, key: str) -> bool:
        """Live-entry check that leaves statistics and recency alone."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._expired(entry)

    def set(self, key: str, value: Any, dependencies: Tuple[str, ...] = ()) -> CacheEntry:
        with self._lock:
            self._pop(key)
            self._make_room()
            entry = CacheEntry(value=value, stored_at=self._clock(), dependencies=tuple(dependencies))
            self._entries[key] = entry
            return entry

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._pop(key) is not None

    def clear(self) -> None:
        with self._lock:
            for key in list(self._entries):
                self._pop(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = asdict(self.stats)
            stats.update(
                name=self.name,
                entries=len(self._entries),
                hit_rate=round(self.stats.hit_rate, 2),
                ttl_seconds=self.ttl,
                max_entries=self.max_entries,
            )
            return stats
