#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Caching system for revloop."""

from .base import CacheEntry, CacheStats, LRUCache
from .tool_cache import CACHEABLE_TOOLS, ToolResultCache, make_key, normalize_path

__all__ = [
    "CACHEABLE_TOOLS",
    "CacheEntry",
    "CacheStats",
    "LRUCache",
    "ToolResultCache",
    "make_key",
    "normalize_path",
]
