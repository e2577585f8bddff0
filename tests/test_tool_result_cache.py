#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for the tool result cache."""

import pytest

from revloop.cache import ToolResultCache, make_key, normalize_path


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ToolResultCache(max_entries=10, ttl=60, clock=clock)


def test_make_key_sorts_params():
    assert make_key("readFile", {"path": "a.ts", "limit": 5}) == 'readFile(limit:5|path:"a.ts")'
    assert make_key("gitStatus", None) == "gitStatus()"


def test_normalize_path():
    assert normalize_path("./src/app.py") == "src/app.py"
    assert normalize_path("src\\lib\\") == "src/lib"
    assert normalize_path("./") == "."


class TestLookups:
    def test_hit_and_miss(self, cache):
        assert cache.get_result("readFile", {"path": "a.ts"}) is None

        cache.set_result("readFile", {"path": "a.ts"}, "content")

        assert cache.get_result("readFile", {"path": "a.ts"}) == "content"
        stats = cache.get_stats()
        assert (stats["hits"], stats["misses"]) == (1, 1)
        assert cache.get_hit_rate() == 50.0

    def test_param_order_does_not_matter(self, cache):
        cache.set_result("searchFiles", {"pattern": "x", "path": "."}, "hits")
        assert cache.get_result("searchFiles", {"path": ".", "pattern": "x"}) == "hits"

    def test_entries_expire(self, cache, clock):
        cache.set_result("readFile", {"path": "a.ts"}, "content")
        clock.now += 61

        assert cache.get_result("readFile", {"path": "a.ts"}) is None
        assert cache.get_stats()["expirations"] == 1

    def test_lru_eviction(self, clock):
        cache = ToolResultCache(max_entries=2, ttl=60, clock=clock)
        cache.set_result("readFile", {"path": "a"}, 1)
        cache.set_result("readFile", {"path": "b"}, 2)
        cache.get_result("readFile", {"path": "a"})

        cache.set_result("readFile", {"path": "c"}, 3)

        assert cache.get_result("readFile", {"path": "b"}) is None
        assert cache.get_result("readFile", {"path": "a"}) == 1
        assert cache.get_stats()["evictions"] == 1

    def test_cacheable_tools(self, cache):
        assert cache.is_cacheable("readFile")
        assert cache.is_cacheable("searchRelevantContext")
        assert not cache.is_cacheable("writeFile")
        assert not cache.is_cacheable("runCommand")


class TestInvalidation:
    def test_file_change_drops_dependent_entries_only(self, cache):
        cache.set_result("readFile", {"path": "src/app.py"}, "app")
        cache.set_result("readFile", {"path": "a.ts"}, "a")
        cache.set_result("listDirectory", {"path": "src"}, ["app.py"])
        cache.set_result("searchFiles", {"pattern": "main"}, "src/app.py:1")
        cache.set_result("getFileTree", {}, "tree")

        removed = cache.invalidate_file("./src/app.py")

        assert removed == 4
        assert cache.get_result("readFile", {"path": "a.ts"}) == "a"
        assert cache.get_result("readFile", {"path": "src/app.py"}) is None
        assert cache.get_result("listDirectory", {"path": "src"}) is None
        assert cache.get_result("searchFiles", {"pattern": "main"}) is None

    def test_sibling_directory_untouched(self, cache):
        cache.set_result("listDirectory", {"path": "docs"}, ["x.md"])
        assert cache.invalidate_file("src/app.py") == 0

    def test_directory_change_drops_entries_beneath_it(self, cache):
        cache.set_result("readFile", {"path": "pkg/mod.py"}, "mod")
        cache.set_result("readFile", {"path": "pkgs.txt"}, "other")

        assert cache.invalidate_file("pkg") == 1
        assert cache.get_result("readFile", {"path": "pkgs.txt"}) == "other"

    def test_explicit_dependencies(self, cache):
        cache.set_result("readFile", {"path": "bundle.js"}, "js", dependencies=["src/a.ts"])

        assert cache.invalidate_file("src/a.ts") == 1

    def test_clear(self, cache):
        cache.set_result("readFile", {"path": "a.ts"}, "a")
        cache.clear()

        assert len(cache) == 0
        assert cache.invalidate_file("a.ts") == 0


class TestHelpers:
    def test_wrap_computes_once(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return "computed"

        assert cache.wrap("fileStats", {"path": "a.ts"}, compute) == "computed"
        assert cache.wrap("fileStats", {"path": "a.ts"}, compute) == "computed"
        assert len(calls) == 1

    def test_preload_and_summary(self, cache):
        count = cache.preload([
            ("readFile", {"path": "a.ts"}, "a"),
            ("readFile", {"path": "b.ts"}, "b"),
        ])

        assert count == 2
        assert cache.get_result("readFile", {"path": "b.ts"}) == "b"
        assert cache.get_summary().startswith("Tool cache: 2/10 entries, 1 hits, 0 misses")
