#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Memoization of idempotent tool results with path-dependency invalidation."""

import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from revloop import config
from revloop.debug_logger import get_logger

from .base import CacheEntry, LRUCache


logger = get_logger()

# Tools whose results depend only on workspace state and can be replayed.
CACHEABLE_TOOLS = {
    "readFile",
    "listDirectory",
    "fileStats",
    "getFileTree",
    "searchFiles",
    "searchRelevantContext",
}

# Marker dependency for results that depend on the whole workspace (searches).
ANY_PATH = "*"


def normalize_path(path: str) -> str:
    """Canonical form used for dependency bookkeeping."""
    p = str(path).replace("\\", "/").strip()
    while p.startswith("./"):
        p = p[2:]
    p = p.rstrip("/")
    return p or "."


def make_key(tool: str, params: Optional[Dict[str, Any]]) -> str:
    """Build ``tool(k1:v1|k2:v2)`` with keys sorted and values JSON-encoded."""
    params = params or {}
    parts = [
        f"{k}:{json.dumps(params[k], sort_keys=True, default=str)}"
        for k in sorted(params)
    ]
    return f"{tool}({'|'.join(parts)})"


def default_dependencies(tool: str, params: Optional[Dict[str, Any]]) -> List[str]:
    """Infer which paths a cached result depends on."""
    params = params or {}
    if tool in {"searchFiles", "searchRelevantContext"}:
        return [ANY_PATH]
    path = params.get("path")
    if isinstance(path, str) and path:
        return [normalize_path(path)]
    if tool in {"listDirectory", "getFileTree"}:
        return ["."]
    return []


def _is_within(path: str, directory: str) -> bool:
    if directory == ".":
        return True
    return path == directory or path.startswith(directory + "/")


class ToolResultCache(LRUCache):
    """LRU + TTL cache of tool results keyed by ``make_key``.

    Each entry registers the paths it was derived from. Modifying a file
    invalidates the entries for that file, for any directory containing it,
    for anything beneath it when it is a directory, and for workspace-wide
    searches, without flushing unrelated entries.
    """

    def __init__(self, max_entries: int = None, ttl: float = None, **kwargs):
        super().__init__(
            name="tool_results",
            ttl=config.TOOL_CACHE_TTL_SECONDS if ttl is None else ttl,
            max_entries=config.TOOL_CACHE_MAX_ENTRIES if max_entries is None else max_entries,
            **kwargs,
        )
        self._dependencies: Dict[str, Set[str]] = {}

    def _on_remove(self, key: str, entry: CacheEntry) -> None:
        for dep in entry.dependencies:
            keys = self._dependencies.get(dep)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._dependencies[dep]

    def is_cacheable(self, tool: str) -> bool:
        return tool in CACHEABLE_TOOLS

    def set(self, key: str, value: Any, dependencies: Optional[Iterable[str]] = None) -> CacheEntry:
        """Store a value and register its path dependencies."""
        deps = tuple(sorted({normalize_path(d) if d != ANY_PATH else ANY_PATH for d in (dependencies or [])}))
        with self._lock:
            entry = super().set(key, value, deps)
            for dep in deps:
                self._dependencies.setdefault(dep, set()).add(key)
            return entry

    def get_result(self, tool: str, params: Optional[Dict[str, Any]]) -> Any:
        return self.get(make_key(tool, params))

    def set_result(self, tool: str, params: Optional[Dict[str, Any]], value: Any,
                   dependencies: Optional[Iterable[str]] = None) -> str:
        key = make_key(tool, params)
        if dependencies is None:
            dependencies = default_dependencies(tool, params)
        self.set(key, value, dependencies)
        return key

    def invalidate_file(self, path: str) -> int:
        """Drop every entry depending on ``path``, its ancestors or its contents.

        Returns how many entries were removed.
        """
        target = normalize_path(path)
        with self._lock:
            doomed: Set[str] = set()
            for dep, keys in self._dependencies.items():
                if dep == ANY_PATH or _is_within(target, dep) or _is_within(dep, target):
                    doomed.update(keys)
            for key in doomed:
                self._pop(key)

        if doomed:
            logger.log("cache", "INVALIDATE_FILE", {"path": target, "entries": len(doomed)}, "DEBUG")
        return len(doomed)

    def clear(self):
        with self._lock:
            super().clear()
            self._dependencies.clear()

    def wrap(self, tool: str, params: Optional[Dict[str, Any]], compute: Callable[[], Any],
             dependencies: Optional[Iterable[str]] = None) -> Any:
        """Return the cached value or compute, store and return it."""
        key = make_key(tool, params)
        sentinel = object()
        value = self.get(key, sentinel)
        if value is not sentinel:
            return value
        value = compute()
        if dependencies is None:
            dependencies = default_dependencies(tool, params)
        self.set(key, value, dependencies)
        return value

    def preload(self, entries: Iterable[Tuple[str, Dict[str, Any], Any]]) -> int:
        """Seed the cache with ``(tool, params, value)`` triples."""
        count = 0
        for tool, params, value in entries:
            self.set_result(tool, params, value)
            count += 1
        return count

    def get_hit_rate(self) -> float:
        """Hit rate as a percentage."""
        with self._lock:
            return self.stats.hit_rate

    def get_summary(self) -> str:
        stats = self.get_stats()
        return (
            f"Tool cache: {stats['entries']}/{stats['max_entries']} entries, "
            f"{stats['hits']} hits, {stats['misses']} misses "
            f"({self.get_hit_rate():.1f}% hit rate), {stats['evictions']} evictions"
        )
