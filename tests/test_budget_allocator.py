#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for dynamic iteration budgets."""

from revloop.execution.budget import (
    AllocationConfig,
    IterationBudgetAllocator,
    ProgressMetrics,
)


def _allocator(**overrides):
    return IterationBudgetAllocator(allocation_config=AllocationConfig(**overrides))


class TestAllocate:
    def test_budget_follows_estimate_within_bounds(self):
        allocator = _allocator(min_iterations=5, max_iterations=50)

        budget = allocator.allocate("run-1", "rename variable")

        assert budget.total == 5
        assert budget.remaining == 5
        assert budget.allocated == 5

    def test_minimum_applies(self):
        budget = _allocator(min_iterations=20).allocate("run-1", "rename variable")
        assert budget.total == 20

    def test_maximum_applies(self):
        budget = _allocator(max_iterations=10).allocate(
            "run-1", "investigate the production database error and debug",
        )
        assert budget.total == 10


class TestCheckAndAdjust:
    def test_unknown_run_stops(self):
        decision = _allocator().check_and_adjust("missing", ProgressMetrics(iteration=1))

        assert not decision.should_continue
        assert decision.reason == "No budget found for run"

    def test_normal_progress_continues(self):
        allocator = _allocator(min_iterations=10)
        allocator.allocate("run-1", "rename variable")

        decision = allocator.check_and_adjust("run-1", ProgressMetrics(iteration=2, success_rate=0.5))

        assert decision.should_continue
        assert decision.new_budget == 10
        assert decision.reason == "Continuing with 8 iterations remaining"

    def test_compression_when_progressing_well(self):
        allocator = _allocator(min_iterations=20)
        allocator.allocate("run-1", "rename variable")

        decision = allocator.check_and_adjust("run-1", ProgressMetrics(iteration=11, success_rate=0.9))

        assert decision.should_continue
        assert decision.new_budget == 16
        assert decision.reason == "Budget compressed - task progressing well"
        assert allocator.get_budget("run-1").remaining == 5

    def test_compression_keeps_slack(self):
        allocator = _allocator(min_iterations=20)
        allocator.allocate("run-1", "rename variable")

        decision = allocator.check_and_adjust("run-1", ProgressMetrics(iteration=15, success_rate=0.9))

        assert decision.new_budget == 20

    def test_one_bonus_then_exhausted(self):
        allocator = _allocator(min_iterations=5)
        allocator.allocate("run-1", "rename variable")

        first = allocator.check_and_adjust(
            "run-1", ProgressMetrics(iteration=5, success_rate=0.9, confidence=0.8),
        )
        assert first.should_continue
        assert first.new_budget == 10
        assert first.reason.startswith("Bonus iterations granted")

        second = allocator.check_and_adjust(
            "run-1", ProgressMetrics(iteration=10, success_rate=0.9, confidence=0.8),
        )
        assert not second.should_continue
        assert second.reason == "Budget exhausted"

    def test_moderate_progress_small_bonus(self):
        allocator = _allocator(min_iterations=5)
        allocator.allocate("run-1", "rename variable")

        decision = allocator.check_and_adjust(
            "run-1", ProgressMetrics(iteration=5, success_rate=0.5, confidence=0.5),
        )

        assert decision.should_continue
        assert decision.new_budget == 8

    def test_stagnation_denies_bonus(self):
        allocator = _allocator(min_iterations=5)
        allocator.allocate("run-1", "rename variable")

        decision = allocator.check_and_adjust(
            "run-1", ProgressMetrics(iteration=5, success_rate=0.9, confidence=0.9, stagnation_count=4),
        )

        assert not decision.should_continue
        assert decision.reason == "Budget exhausted: Too much stagnation"

    def test_excessive_stagnation_stops_early(self):
        allocator = _allocator(min_iterations=20)
        allocator.allocate("run-1", "rename variable")

        decision = allocator.check_and_adjust("run-1", ProgressMetrics(iteration=3, stagnation_count=6))

        assert not decision.should_continue
        assert decision.reason == "Excessive stagnation detected"

    def test_low_confidence_stops_after_ten_iterations(self):
        allocator = _allocator(min_iterations=30)
        allocator.allocate("run-1", "rename variable")

        decision = allocator.check_and_adjust(
            "run-1", ProgressMetrics(iteration=11, success_rate=0.5, confidence=0.1),
        )

        assert not decision.should_continue
        assert decision.reason == "Very low confidence after significant iterations"


class TestBookkeeping:
    def test_additional_budget_is_capped(self):
        allocator = _allocator(min_iterations=5, max_iterations=50)
        allocator.allocate("run-1", "rename variable")

        grant = allocator.request_additional_budget("run-1", "user asked", 100)

        assert grant.granted
        assert grant.amount == 25
        assert grant.new_total == 30

    def test_additional_budget_for_unknown_run(self):
        grant = _allocator().request_additional_budget("missing", "x", 3)
        assert not grant.granted

    def test_utilization_and_release(self):
        allocator = _allocator(min_iterations=10)
        allocator.allocate("run-1", "rename variable")
        allocator.check_and_adjust("run-1", ProgressMetrics(iteration=5, success_rate=0.5))

        utilization = allocator.get_utilization("run-1")
        assert utilization["used"] == 5
        assert utilization["utilization_rate"] == 0.5
        assert utilization["efficiency"] == 2.0
        assert [b["run_id"] for b in allocator.active_budgets()] == ["run-1"]

        allocator.release("run-1")
        assert allocator.get_budget("run-1") is None
        assert allocator.get_utilization("run-1") is None
