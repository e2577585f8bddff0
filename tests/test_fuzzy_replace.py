#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for fuzzy block matching and the fuzzyReplace tool."""

from revloop.tools import (
    PermissionManager,
    PermissionMode,
    ToolContext,
    build_default_registry,
    fuzzy_find,
    levenshtein,
)


SOURCE = "def add(a, b):\n    return a + b\n\n\ndef sub(a, b):\n    return a - b\n"


class TestFuzzyFind:
    """Strategy order: exact, line-trimmed, then edit distance."""

    def test_exact_substring_has_zero_distance_and_exact_offsets(self):
        search = "return a - b"
        match = fuzzy_find(SOURCE, search)

        start = SOURCE.index(search)
        assert match.strategy == "exact"
        assert match.distance == 0
        assert (match.start, match.end) == (start, start + len(search))

    def test_whitespace_differences_match_normalized(self):
        match = fuzzy_find(SOURCE, "def sub(a, b):\n        return a - b")

        assert match.strategy == "normalized"
        assert match.distance == 0
        assert SOURCE[match.start:match.end] == "def sub(a, b):\n    return a - b"

    def test_small_edits_match_by_distance(self):
        match = fuzzy_find(SOURCE, "def add(a, b):\n    return a+b")

        assert match.strategy == "levenshtein"
        assert 0 < match.distance < 0.15
        assert SOURCE[match.start:match.end] == "def add(a, b):\n    return a + b"

    def test_distant_block_does_not_match(self):
        assert fuzzy_find(SOURCE, "class Calculator:\n    pass") is None

    def test_empty_search(self):
        assert fuzzy_find(SOURCE, "") is None

    def test_apply_replaces_only_the_match(self):
        match = fuzzy_find(SOURCE, "return a - b")
        updated = match.apply(SOURCE, "return b - a")
        assert "return b - a" in updated
        assert "return a + b" in updated


def test_levenshtein():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0


class TestFuzzyReplaceTool:
    """The tool never applies a partial edit."""

    def _run(self, workspace, params):
        registry = build_default_registry(PermissionManager(mode=PermissionMode.TRUSTED))
        return registry.execute_tool("fuzzyReplace", params, ToolContext(workspace_root=workspace))

    def test_replaces_best_window(self, workspace):
        (workspace / "calc.py").write_text(SOURCE, encoding="utf-8")

        result = self._run(workspace, {
            "path": "calc.py",
            "search": "def add(a, b):\n    return a+b",
            "replace": "def add(a, b):\n    return sum((a, b))",
        })

        assert result.success
        assert result.data["strategy"] == "levenshtein"
        content = (workspace / "calc.py").read_text(encoding="utf-8")
        assert "return sum((a, b))" in content
        assert "return a - b" in content

    def test_no_match_leaves_file_untouched(self, workspace):
        (workspace / "calc.py").write_text(SOURCE, encoding="utf-8")

        result = self._run(workspace, {
            "path": "calc.py",
            "search": "something else entirely",
            "replace": "x",
        })

        assert not result.success
        assert (workspace / "calc.py").read_text(encoding="utf-8") == SOURCE
