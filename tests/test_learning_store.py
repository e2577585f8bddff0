#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for correction history and adaptive tool selection."""

import pytest

from revloop import config
from revloop.execution.learner import (
    AttemptedFix,
    CorrectionContext,
    CorrectionRecord,
    ErrorInfo,
    LearningStore,
    Outcome,
    classify_tool_error,
    normalize_error,
    similarity,
)


def _record(tool, outcome, message="Text not found in config.json", error_type="not_found",
            language=None, timestamp=None, description=""):
    record = CorrectionRecord(
        error=ErrorInfo(type=error_type, message=message, file_path="config.json"),
        attempted_fix=AttemptedFix(tool_name=tool, params={"path": "config.json"}, description=description),
        outcome=outcome,
        context=CorrectionContext(language=language),
    )
    if timestamp is not None:
        record.timestamp = timestamp
    return record


@pytest.fixture
def store():
    return LearningStore(max_history=50)


class TestNormalization:
    def test_normalize_error(self):
        signature = normalize_error("SyntaxError", 'Unexpected token "}" at line 42,   col 7')
        assert signature == "syntaxerror:unexpected token } at line #, col #"

    def test_signature_is_capped(self):
        signature = normalize_error("x", "a" * 500)
        assert signature == "x:" + "a" * 100

    def test_similarity(self):
        assert similarity("abc", "abc") == 1.0
        assert similarity("", "") == 1.0
        assert similarity("abcd", "abce") == 0.75

    @pytest.mark.parametrize("message,expected", [
        ('Permission denied: User rejected tool "writeFile"', "permission"),
        ("Tool not found: teleport. Available tools: echo", "unknown_tool"),
        ('Missing required parameters for "writeFile": content', "validation"),
        ("Text not found in a.py", "not_found"),
        ("Command timed out after 120s", "timeout"),
        ("ValueError: Path escapes workspace: ../x", "valueerror"),
        ("something odd happened", "tool_error"),
    ])
    def test_classify_tool_error(self, message, expected):
        assert classify_tool_error(message) == expected


class TestRecording:
    def test_records_cluster_into_patterns(self, store):
        store.record_correction(_record("replaceInFile", Outcome.FAILURE))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))

        patterns = store.get_error_patterns()

        assert len(store) == 2
        assert len(patterns) == 1
        assert patterns[0].frequency == 2
        assert patterns[0].success_rate == 0.5
        assert patterns[0].recommended_tools[0] == "fuzzyReplace"

    def test_history_is_bounded(self):
        store = LearningStore(max_history=3)
        for _ in range(5):
            store.record_correction(_record("readFile", Outcome.FAILURE))
        assert len(store) == 3

    def test_find_similar_respects_language(self, store):
        store.record_correction(_record("replaceInFile", Outcome.FAILURE, language="python"))
        store.record_correction(_record("replaceInFile", Outcome.FAILURE, language="typescript"))
        store.record_correction(_record("readFile", Outcome.FAILURE, message="completely different problem"))

        similar = store.find_similar_corrections("not_found", "Text not found in config.json", language="python")

        assert len(similar) == 1
        assert similar[0].context.language == "python"

    def test_find_similar_is_most_recent_first(self, store):
        store.record_correction(_record("a", Outcome.FAILURE, timestamp=1.0))
        store.record_correction(_record("b", Outcome.FAILURE, timestamp=3.0))
        store.record_correction(_record("c", Outcome.FAILURE, timestamp=2.0))

        similar = store.find_similar_corrections("not_found", "Text not found in config.json")

        assert [r.attempted_fix.tool_name for r in similar] == ["b", "c", "a"]


class TestRecommendations:
    def test_needs_two_occurrences(self, store):
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))

        approach = store.get_recommended_approach("not_found", "Text not found in config.json")

        assert approach.tool is None
        assert approach.similar_cases == 0

    def test_recommended_approach(self, store):
        store.record_correction(_record("replaceInFile", Outcome.FAILURE, description="exact replace"))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS, description="fuzzy replace"))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS, description="fuzzy replace"))

        approach = store.get_recommended_approach("not_found", "Text not found in config.json")

        assert approach.tool == "fuzzyReplace"
        assert approach.similar_cases == 3
        assert approach.confidence == pytest.approx(2 / 3)
        assert approach.solution == "fuzzy replace"

    def test_adaptive_selection(self, store):
        store.record_correction(_record("replaceInFile", Outcome.FAILURE))
        store.record_correction(_record("replaceInFile", Outcome.FAILURE))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))

        suggestion = store.get_adaptive_tool_selection(
            "replaceInFile", "not_found", "Text not found in config.json",
        )

        assert suggestion.suggested_tool == "fuzzyReplace"
        assert suggestion.confidence == 1.0
        assert suggestion.based_on_records == 4

    def test_adaptive_selection_needs_three_cases(self, store):
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))

        assert store.get_adaptive_tool_selection(
            "replaceInFile", "not_found", "Text not found in config.json",
        ) is None

    def test_no_adaptation_when_alternative_is_weak(self, store):
        store.record_correction(_record("replaceInFile", Outcome.FAILURE))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))
        store.record_correction(_record("fuzzyReplace", Outcome.FAILURE))

        assert store.get_adaptive_tool_selection(
            "replaceInFile", "not_found", "Text not found in config.json",
        ) is None


class TestPersistence:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "learning.json"
        store = LearningStore(storage_path=path)
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))

        assert store.save() == path

        restored = LearningStore(storage_path=path)
        assert restored.load()
        assert len(restored) == 2
        assert restored.records[0].outcome == Outcome.SUCCESS
        assert restored.get_recommended_approach("not_found", "Text not found in config.json").tool == "fuzzyReplace"

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "learning.json"
        path.write_text("[1, 2", encoding="utf-8")

        assert not LearningStore(storage_path=path).load()

    def test_persistent_uses_memory_dir(self):
        assert LearningStore.persistent().storage_path == config.MEMORY_DIR / "learning.json"

    def test_statistics_and_reset(self, store):
        store.record_correction(_record("replaceInFile", Outcome.FAILURE))
        store.record_correction(_record("fuzzyReplace", Outcome.SUCCESS))

        stats = store.get_statistics()

        assert stats["total_corrections"] == 2
        assert stats["success_rate"] == 0.5
        assert stats["patterns_learned"] == 1
        assert stats["most_common_errors"] == [{"type": "not_found", "count": 2}]
        assert stats["most_successful_tools"][0] == {"tool": "fuzzyReplace", "success_rate": 1.0}

        store.reset()
        assert len(store) == 0
        assert store.get_error_patterns() == []
