#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for hierarchical goal tracking."""

import time

import pytest

from revloop.execution.goal_stack import (
    DecompositionStrategy,
    GoalStackManager,
    estimate_goal_complexity,
)
from revloop.models.goal import Goal, GoalStatus, GoalType


@pytest.fixture
def manager():
    return GoalStackManager()


def _run_through(manager, run_id):
    """Start and complete goals until nothing is startable."""
    order = []
    goal = manager.get_next_goal(run_id)
    while goal is not None:
        assert manager.start_goal(run_id, goal.id)
        assert manager.complete_goal(run_id, goal.id, result="ok")
        order.append(goal.description)
        goal = manager.get_next_goal(run_id)
    return order


class TestDecomposition:
    def test_modification_strategy(self, manager):
        stack = manager.create_stack("run-1", "update the port in config.json")

        subgoals = manager.decompose_goal("run-1", stack.root_id)

        assert [g.description for g in subgoals] == [
            "Read and understand current implementation",
            "Apply modifications: update the port in config.json",
            "Verify changes work correctly",
        ]
        assert subgoals[1].dependencies == [subgoals[0].id]
        assert subgoals[2].dependencies == [subgoals[1].id]

    def test_refactor_strategy(self, manager):
        stack = manager.create_stack("run-1", "refactor logging across multiple files")

        subgoals = manager.decompose_goal("run-1", stack.root_id)

        assert subgoals[0].description == "Identify all files to be modified"

    def test_generic_fallback(self, manager):
        stack = manager.create_stack("run-1", "implement a cache layer")

        subgoals = manager.decompose_goal("run-1", stack.root_id)

        assert [g.estimated_complexity for g in subgoals] == [2, 7, 2]
        assert subgoals[1].description == "Implement: implement a cache layer"

    def test_registered_strategy(self, manager):
        manager.register_decomposition_strategy(DecompositionStrategy(
            "docs", lambda goal: "docs" in goal.description,
            lambda goal: [("Write the docs", 2)],
        ))
        stack = manager.create_stack("run-1", "write docs")

        subgoals = manager.decompose_goal("run-1", stack.root_id)

        assert [g.description for g in subgoals] == ["Write the docs"]

    def test_cannot_decompose_twice(self, manager):
        stack = manager.create_stack("run-1", "update readme")
        manager.decompose_goal("run-1", stack.root_id)

        assert manager.decompose_goal("run-1", stack.root_id) is None

    def test_subgoal_inherits_relevant_files(self, manager):
        stack = manager.create_stack("run-1", "edit files")
        stack.root.context.relevant_files.append("a.ts")

        goal = manager.add_subgoal("run-1", stack.root_id, "step")

        assert goal.context.relevant_files == ["a.ts"]
        assert manager.add_subgoal("missing", stack.root_id, "x") is None


class TestExecutionOrder:
    def test_dependencies_gate_order_and_root_completes(self, manager):
        stack = manager.create_stack("run-1", "update the port in config.json")
        manager.decompose_goal("run-1", stack.root_id)

        order = _run_through(manager, "run-1")

        assert order[0] == "Read and understand current implementation"
        assert len(order) == 3
        assert stack.root.status == GoalStatus.COMPLETED
        assert stack.is_finished()

    def test_only_one_active_goal(self, manager):
        stack = manager.create_stack("run-1", "root")
        a = manager.add_subgoal("run-1", stack.root_id, "a")
        b = manager.add_subgoal("run-1", stack.root_id, "b")

        assert manager.start_goal("run-1", a.id)
        assert not manager.start_goal("run-1", b.id)
        assert manager.get_next_goal("run-1") is a

    def test_composite_goal_is_never_started(self, manager):
        stack = manager.create_stack("run-1", "root")
        manager.add_subgoal("run-1", stack.root_id, "a")

        assert not manager.start_goal("run-1", stack.root_id)

    def test_priority_then_creation_order(self, manager):
        stack = manager.create_stack("run-1", "root")
        manager.add_subgoal("run-1", stack.root_id, "later", priority=5)
        urgent = manager.add_subgoal("run-1", stack.root_id, "urgent", priority=1)
        manager.add_subgoal("run-1", stack.root_id, "also urgent", priority=1)

        assert manager.get_next_goal("run-1") is urgent

    def test_complete_requires_active(self, manager):
        stack = manager.create_stack("run-1", "root")
        goal = manager.add_subgoal("run-1", stack.root_id, "a")

        assert not manager.complete_goal("run-1", goal.id)

    def test_skip_completes_parent(self, manager):
        stack = manager.create_stack("run-1", "root")
        goal = manager.add_subgoal("run-1", stack.root_id, "only")

        assert manager.skip_goal("run-1", goal.id, "not needed")

        assert stack.root.status == GoalStatus.COMPLETED
        assert goal.context.notes == ["Skipped: not needed"]


class TestFailureAndRetry:
    def test_retry_is_queued_and_rewired(self, manager):
        stack = manager.create_stack("run-1", "update config")
        first, second, third = manager.decompose_goal("run-1", stack.root_id)

        manager.start_goal("run-1", first.id)
        assert manager.fail_goal("run-1", first.id, "file missing")

        retry = stack.retry_for(first.id)
        assert retry.type == GoalType.RETRY
        assert retry.description == "Retry: Read and understand current implementation"
        assert retry.retry_count == 1
        assert second.dependencies == [retry.id]
        assert manager.get_next_goal("run-1") is retry

    def test_retry_of_retry_keeps_base_description(self, manager):
        stack = manager.create_stack("run-1", "root")
        goal = manager.add_subgoal("run-1", stack.root_id, "flaky step")

        manager.fail_goal("run-1", goal.id)
        retry = stack.retry_for(goal.id)
        manager.fail_goal("run-1", retry.id)
        second_retry = stack.retry_for(retry.id)

        assert second_retry.description == "Retry: flaky step"
        assert second_retry.retry_count == 2

    def test_resolved_retry_completes_parent(self, manager):
        stack = manager.create_stack("run-1", "root")
        goal = manager.add_subgoal("run-1", stack.root_id, "step")

        manager.fail_goal("run-1", goal.id, "boom")
        _run_through(manager, "run-1")

        assert stack.root.status == GoalStatus.COMPLETED

    def test_permanent_failure_propagates(self, manager):
        stack = manager.create_stack("run-1", "update config")
        first, second, third = manager.decompose_goal("run-1", stack.root_id)

        manager.fail_goal("run-1", first.id, "fatal", allow_retry=False)

        assert stack.root.status == GoalStatus.FAILED
        assert stack.root.error == "Subgoal failed: Read and understand current implementation"
        assert second.status == GoalStatus.SKIPPED
        assert third.status == GoalStatus.SKIPPED
        assert stack.is_finished()
        assert manager.get_next_goal("run-1") is None

    def test_exhausted_retries_propagate(self, manager):
        stack = manager.create_stack("run-1", "root")
        goal = manager.add_subgoal("run-1", stack.root_id, "step")
        goal.max_retries = 0

        manager.fail_goal("run-1", goal.id)

        assert stack.root.status == GoalStatus.FAILED

    def test_terminal_goal_cannot_fail_again(self, manager):
        stack = manager.create_stack("run-1", "root")
        goal = manager.add_subgoal("run-1", stack.root_id, "step")
        manager.skip_goal("run-1", goal.id)

        assert not manager.fail_goal("run-1", goal.id)


class TestReporting:
    def test_stats_and_hierarchy(self, manager):
        stack = manager.create_stack("run-1", "update config")
        first, _, _ = manager.decompose_goal("run-1", stack.root_id)
        manager.start_goal("run-1", first.id)
        manager.complete_goal("run-1", first.id)

        stats = manager.get_stats("run-1")
        hierarchy = manager.get_hierarchy("run-1")

        assert stats["total"] == 4
        assert stats["completed"] == 1
        assert stats["pending"] == 3
        assert stats["progress"] == 25
        assert hierarchy["type"] == "root"
        assert [c["status"] for c in hierarchy["children"]] == ["completed", "pending", "pending"]

    def test_cleanup_drops_old_stacks(self, manager):
        stack = manager.create_stack("run-1", "root")
        manager.create_stack("run-2", "root")
        stack.root.created_at = time.time() - 7200

        assert manager.cleanup(max_age=3600) == 1
        assert manager.get_stack("run-1") is None
        assert manager.get_stack("run-2") is not None

    def test_goal_round_trips_through_dict(self):
        goal = Goal(description="x", type=GoalType.COMPOSITE, dependencies=["a"])
        restored = Goal.from_dict(goal.to_dict())
        assert restored == goal


@pytest.mark.parametrize("description,expected", [
    ("fix typo in README", 2),
    ("rename the helper", 3),
    ("implement caching", 7),
    ("refactor the parser", 8),
    ("migrate to postgres", 10),
    ("look around", 5),
])
def test_estimate_goal_complexity(description, expected):
    assert estimate_goal_complexity(description) == expected
