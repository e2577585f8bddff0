#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for task complexity estimation."""

import pytest

from revloop.execution.complexity import (
    Approach,
    ComplexityEstimator,
    ComplexityLevel,
    score_to_level,
)
from revloop.execution.intent import IntentClassifier, TaskCategory


@pytest.fixture
def estimator():
    return ComplexityEstimator()


class TestEstimate:
    def test_small_covered_change_is_simple_and_direct(self, estimator):
        estimate = estimator.estimate("rename variable", has_tests=True)

        assert estimate.score == 30
        assert estimate.level == ComplexityLevel.SIMPLE
        assert estimate.estimated_iterations == 5
        assert estimate.approach == Approach.DIRECT
        assert estimate.confidence == pytest.approx(0.7)
        assert estimate.factors.to_dict() == {
            "scope": 1, "uncertainty": 5, "dependencies": 3, "risk": 3, "novelty": 3,
        }

    def test_missing_tests_raise_risk(self, estimator):
        estimate = estimator.estimate("rename variable")

        assert estimate.factors.risk == 5
        assert estimate.score == 34
        assert estimate.level == ComplexityLevel.SIMPLE
        assert "no test coverage known" in estimate.reasoning

    def test_uncertain_risky_work_is_exploratory(self, estimator):
        estimate = estimator.estimate("investigate the production database error and debug")

        assert estimate.level == ComplexityLevel.COMPLEX
        assert estimate.factors.uncertainty == 10
        assert estimate.factors.risk == 10
        assert estimate.approach == Approach.EXPLORATORY
        assert estimate.estimated_iterations == 28

    def test_many_files_lower_confidence(self, estimator):
        files = ["f%d.py" % i for i in range(6)]

        estimate = estimator.estimate("rename variable", files=files, has_tests=True)

        assert estimate.factors.scope == 6
        assert estimate.confidence == pytest.approx(0.6)

    def test_vague_wording_lowers_confidence(self, estimator):
        estimate = estimator.estimate("improve things", has_tests=True)
        assert estimate.confidence == pytest.approx(0.6)

    def test_no_existing_code_adds_uncertainty(self, estimator):
        estimate = estimator.estimate("rename variable", existing_code=False, has_tests=True)
        assert estimate.factors.uncertainty == 7

    def test_classifier_attaches_intent(self):
        estimator = ComplexityEstimator(classifier=IntentClassifier())

        estimate = estimator.estimate("git commit the changes")

        assert estimate.intent.category == TaskCategory.GIT_OPERATION
        assert estimate.to_dict()["category"] == "git_operation"

    def test_iterations_are_capped(self, estimator):
        estimate = estimator.estimate(
            "research a new technology algorithm to refactor the architecture of the "
            "production database security api module and investigate the error, debug it",
            files=["f%d" % i for i in range(12)],
            existing_code=False,
        )

        assert estimate.level == ComplexityLevel.VERY_COMPLEX
        assert estimate.estimated_iterations <= 50
        assert estimate.confidence == pytest.approx(0.5)


class TestCompare:
    def test_compare_names_largest_factor(self, estimator):
        easy = estimator.estimate("rename variable", has_tests=True)
        hard = estimator.estimate("investigate the production database error and debug")

        comparison = estimator.compare(easy, hard)

        assert comparison.harder is hard
        assert comparison.difference == hard.score - easy.score
        assert comparison.factor == "risk"


@pytest.mark.parametrize("score,level", [
    (1, ComplexityLevel.TRIVIAL),
    (15, ComplexityLevel.TRIVIAL),
    (16, ComplexityLevel.SIMPLE),
    (55, ComplexityLevel.MODERATE),
    (75, ComplexityLevel.COMPLEX),
    (76, ComplexityLevel.VERY_COMPLEX),
])
def test_score_to_level(score, level):
    assert score_to_level(score) == level
