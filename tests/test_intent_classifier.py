#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for rule-based intent classification."""

import pytest

from revloop.execution.intent import (
    ClassificationRule,
    ComplexityTier,
    IntentClassifier,
    TaskCategory,
    extract_keywords,
    round_half_up,
)


@pytest.fixture
def classifier():
    return IntentClassifier()


class TestClassify:
    def test_config_typo_is_simple_configuration(self, classifier):
        result = classifier.classify("fix the typo in config.json")

        assert result.category == TaskCategory.CONFIGURATION
        assert result.complexity == ComplexityTier.SIMPLE
        assert result.estimated_iterations == 2
        assert result.requires_confirmation

    def test_git_commit(self, classifier):
        result = classifier.classify("git commit the changes")

        assert result.category == TaskCategory.GIT_OPERATION
        assert result.complexity == ComplexityTier.SIMPLE
        assert result.estimated_iterations == 2
        assert result.confidence == pytest.approx(3.6 / 4.6)
        assert result.preferred_tools[0] == "gitStatus"
        assert result.requires_confirmation

    def test_no_match_defaults_to_complex_task(self, classifier):
        result = classifier.classify("hello")

        assert result.category == TaskCategory.COMPLEX_TASK
        assert result.confidence == 0.5
        assert result.complexity == ComplexityTier.COMPLEX
        assert result.estimated_iterations == 23
        assert result.preferred_tools == ["readFile", "writeFile", "executeCode"]

    def test_complex_indicator_overrides_rule_tier(self, classifier):
        result = classifier.classify("refactor the entire architecture")

        assert result.category == TaskCategory.REFACTORING
        assert result.complexity == ComplexityTier.COMPLEX

    def test_confidence_is_capped(self):
        only_git = IntentClassifier(rules=[
            ClassificationRule(TaskCategory.GIT_OPERATION, [r"\bgit\b"], ["git"], 1.0,
                               ComplexityTier.SIMPLE, ["gitStatus"], False),
        ])

        assert only_git.classify("git status").confidence == 0.95


class TestHistory:
    def test_history_and_stats(self, classifier):
        classifier.classify("git commit the changes")
        classifier.classify("git push")
        classifier.classify("hello")

        assert len(classifier.get_history()) == 3
        assert classifier.get_category_stats() == {"git_operation": 2, "complex_task": 1}

        classifier.clear_history()
        assert classifier.get_history() == []

    def test_registered_rule_participates(self, classifier):
        classifier.register_rule(ClassificationRule(
            TaskCategory.TESTING, [r"\bpytest\b"], ["pytest"], 5.0,
            ComplexityTier.MEDIUM, ["runCommand"], False,
        ))

        assert classifier.classify("pytest please").category == TaskCategory.TESTING


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2
    assert round_half_up(0.5) == 1


def test_extract_keywords_drops_short_and_stop_words():
    assert extract_keywords("Please fix the broken login flow!") == ["please", "broken", "login", "flow"]
