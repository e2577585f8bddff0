#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Goal stack for hierarchical task decomposition.

One stack per run. The root goal holds the user's instruction; decomposition
strategies split it into atomic subgoals chained by dependencies. Only leaf
goals are ever started, and at most one goal is active per stack. Parents
complete themselves once every child is completed or skipped, where a failed
child counts as done if a retry of it completed.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from revloop.debug_logger import get_logger
from revloop.execution.intent import round_half_up
from revloop.models.goal import Goal, GoalContext, GoalStatus, GoalType


logger = get_logger()

DEFAULT_MAX_AGE_SECONDS = 3600.0

# (substrings, complexity); first match wins
_COMPLEXITY_HINTS: Sequence[Tuple[Tuple[str, ...], int]] = (
    (("fix typo", "add comment"), 2),
    (("rename", "extract"), 3),
    (("implement", "create"), 7),
    (("refactor", "redesign"), 8),
    (("architecture", "migrate"), 10),
)


def estimate_goal_complexity(description: str) -> int:
    """Rough 1-10 complexity for a goal description; 5 when nothing matches."""
    desc = description.lower()
    for needles, complexity in _COMPLEXITY_HINTS:
        if any(needle in desc for needle in needles):
            return complexity
    return 5


@dataclass
class GoalStack:
    """All goals of one run, keyed by id in insertion order."""
    run_id: str
    root_id: str
    goals: Dict[str, Goal] = field(default_factory=dict)
    current_goal_id: Optional[str] = None
    completed_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)

    @property
    def root(self) -> Goal:
        return self.goals[self.root_id]

    @property
    def current_goal(self) -> Optional[Goal]:
        if self.current_goal_id is None:
            return None
        return self.goals.get(self.current_goal_id)

    def get(self, goal_id: str) -> Optional[Goal]:
        return self.goals.get(goal_id)

    def retry_for(self, goal_id: str) -> Optional[Goal]:
        for goal in self.goals.values():
            if goal.retry_of == goal_id:
                return goal
        return None

    def is_resolved(self, goal: Goal) -> bool:
        """Completed or skipped, or failed with a retry chain that resolved."""
        if goal.status in (GoalStatus.COMPLETED, GoalStatus.SKIPPED):
            return True
        if goal.status == GoalStatus.FAILED:
            retry = self.retry_for(goal.id)
            return retry is not None and self.is_resolved(retry)
        return False

    def is_finished(self) -> bool:
        """True once the root can make no further progress."""
        root = self.root
        if self.is_resolved(root):
            return True
        return root.status == GoalStatus.FAILED and self.retry_for(root.id) is None

    def descendants(self, goal_id: str) -> List[Goal]:
        found = []
        goal = self.goals.get(goal_id)
        for child_id in (goal.children if goal else []):
            child = self.goals.get(child_id)
            if child is not None:
                found.append(child)
                found.extend(self.descendants(child_id))
        return found


@dataclass
class DecompositionStrategy:
    """Splits a goal into ordered subgoal descriptions.

    ``decompose`` returns ``(description, complexity)`` pairs; each subgoal
    depends on the one before it.
    """
    name: str
    can_handle: Callable[[Goal], bool]
    decompose: Callable[[Goal], List[Tuple[str, int]]]


def _file_modification_strategy() -> DecompositionStrategy:
    def can_handle(goal: Goal) -> bool:
        desc = goal.description.lower()
        return any(word in desc for word in ("modify", "edit", "update", "change"))

    def decompose(goal: Goal) -> List[Tuple[str, int]]:
        return [
            ("Read and understand current implementation", 2),
            (f"Apply modifications: {goal.description}", goal.estimated_complexity),
            ("Verify changes work correctly", 2),
        ]

    return DecompositionStrategy("file_modification", can_handle, decompose)


def _multi_file_refactor_strategy() -> DecompositionStrategy:
    def can_handle(goal: Goal) -> bool:
        desc = goal.description.lower()
        return (("refactor" in desc or "rename" in desc)
                and ("files" in desc or "multiple" in desc))

    def decompose(goal: Goal) -> List[Tuple[str, int]]:
        return [
            ("Identify all files to be modified", 3),
            ("Apply changes to each file", 5),
            ("Run tests to verify nothing broke", 3),
        ]

    return DecompositionStrategy("multi_file_refactor", can_handle, decompose)


def _generic_strategy() -> DecompositionStrategy:
    def decompose(goal: Goal) -> List[Tuple[str, int]]:
        return [
            ("Explore the workspace and gather the relevant context", 2),
            (f"Implement: {goal.description}", goal.estimated_complexity),
            ("Verify the result", 2),
        ]

    return DecompositionStrategy("generic", lambda goal: True, decompose)


class GoalStackManager:
    """Owns the goal stacks of active runs and every status transition on them."""

    def __init__(self):
        self._stacks: Dict[str, GoalStack] = {}
        self._strategies: List[DecompositionStrategy] = [
            _file_modification_strategy(),
            _multi_file_refactor_strategy(),
        ]
        self._fallback = _generic_strategy()
        self._lock = threading.RLock()

    def register_decomposition_strategy(self, strategy: DecompositionStrategy):
        """Register a strategy; it is tried after the ones already registered."""
        with self._lock:
            self._strategies.append(strategy)

    def create_stack(self, run_id: str, root_description: str) -> GoalStack:
        """Create (or replace) the stack for ``run_id`` with a pending root goal."""
        root = Goal(
            description=root_description,
            type=GoalType.ROOT,
            estimated_complexity=estimate_goal_complexity(root_description),
        )
        stack = GoalStack(run_id=run_id, root_id=root.id, goals={root.id: root})
        with self._lock:
            self._stacks[run_id] = stack
        logger.log("goal_stack", "STACK_CREATED", {"run_id": run_id, "root_id": root.id}, "DEBUG")
        return stack

    def get_stack(self, run_id: str) -> Optional[GoalStack]:
        return self._stacks.get(run_id)

    def remove_stack(self, run_id: str) -> bool:
        with self._lock:
            return self._stacks.pop(run_id, None) is not None

    def add_subgoal(
        self,
        run_id: str,
        parent_id: str,
        description: str,
        goal_type: GoalType = GoalType.ATOMIC,
        dependencies: Optional[List[str]] = None,
        priority: int = 5,
        estimated_complexity: Optional[int] = None,
    ) -> Optional[Goal]:
        """Attach a pending subgoal to ``parent_id``.

        Returns None when the stack or parent is missing, or the parent is
        already terminal.
        """
        with self._lock:
            stack = self._stacks.get(run_id)
            parent = stack.get(parent_id) if stack else None
            if parent is None or parent.status.is_terminal:
                return None
            if parent.status == GoalStatus.ACTIVE:
                # an active leaf that gains children goes back to waiting on them
                parent.status = GoalStatus.PENDING
                stack.current_goal_id = None

            goal = Goal(
                description=description,
                type=goal_type,
                parent_id=parent_id,
                priority=priority,
                dependencies=list(dependencies or []),
                context=GoalContext(relevant_files=list(parent.context.relevant_files)),
                estimated_complexity=(estimated_complexity if estimated_complexity is not None
                                      else estimate_goal_complexity(description)),
            )
            stack.goals[goal.id] = goal
            parent.children.append(goal.id)
            if parent.type == GoalType.ATOMIC:
                parent.type = GoalType.COMPOSITE

        logger.log("goal_stack", "SUBGOAL_ADDED", {
            "run_id": run_id, "goal_id": goal.id, "parent_id": parent_id,
        }, "DEBUG")
        return goal

    def decompose_goal(self, run_id: str, goal_id: str) -> Optional[List[Goal]]:
        """Split a pending childless goal using the first strategy that applies.

        Falls back to a generic explore/implement/verify split. Returns the new
        subgoals, or None if the goal cannot be decomposed.
        """
        with self._lock:
            stack = self._stacks.get(run_id)
            goal = stack.get(goal_id) if stack else None
            if goal is None or goal.status != GoalStatus.PENDING or goal.children:
                return None

            strategy = next((s for s in self._strategies if s.can_handle(goal)), self._fallback)
            subgoals: List[Goal] = []
            previous: Optional[str] = None
            for description, complexity in strategy.decompose(goal):
                subgoal = self.add_subgoal(
                    run_id, goal_id, description,
                    dependencies=[previous] if previous else [],
                    estimated_complexity=complexity,
                )
                if subgoal is None:
                    break
                subgoals.append(subgoal)
                previous = subgoal.id

        logger.log("goal_stack", "GOAL_DECOMPOSED", {
            "run_id": run_id, "goal_id": goal_id,
            "strategy": strategy.name, "subgoals": len(subgoals),
        })
        return subgoals

    def _dependencies_met(self, stack: GoalStack, goal: Goal) -> bool:
        for dep_id in goal.dependencies:
            dep = stack.get(dep_id)
            if dep is None or not stack.is_resolved(dep):
                return False
        return True

    def get_next_goal(self, run_id: str) -> Optional[Goal]:
        """The active goal if any, else the best startable pending leaf.

        Candidates are ordered by priority (lower first) and then creation order.
        """
        with self._lock:
            stack = self._stacks.get(run_id)
            if stack is None:
                return None
            current = stack.current_goal
            if current is not None and current.status == GoalStatus.ACTIVE:
                return current

            best: Optional[Goal] = None
            for goal in stack.goals.values():
                if goal.status != GoalStatus.PENDING or goal.children:
                    continue
                if not self._dependencies_met(stack, goal):
                    continue
                if best is None or goal.priority < best.priority:
                    best = goal
            return best

    def start_goal(self, run_id: str, goal_id: str) -> bool:
        """Activate a pending leaf goal; refused while another goal is active."""
        with self._lock:
            stack = self._stacks.get(run_id)
            goal = stack.get(goal_id) if stack else None
            if goal is None or goal.status != GoalStatus.PENDING or goal.children:
                return False
            current = stack.current_goal
            if current is not None and current.status == GoalStatus.ACTIVE:
                return False
            if not self._dependencies_met(stack, goal):
                return False

            goal.status = GoalStatus.ACTIVE
            goal.started_at = time.time()
            stack.current_goal_id = goal_id

        logger.log("goal_stack", "GOAL_STARTED", {"run_id": run_id, "goal_id": goal_id}, "DEBUG")
        return True

    def complete_goal(self, run_id: str, goal_id: str, result: Any = None) -> bool:
        """Complete an active goal whose children are all terminal."""
        with self._lock:
            stack = self._stacks.get(run_id)
            goal = stack.get(goal_id) if stack else None
            if goal is None or goal.status != GoalStatus.ACTIVE:
                return False
            if any(not stack.goals[c].status.is_terminal for c in goal.children):
                return False
            self._mark_completed(stack, goal, result)
            self._update_parent(stack, goal.parent_id)
        return True

    def fail_goal(
        self,
        run_id: str,
        goal_id: str,
        error: Optional[str] = None,
        allow_retry: bool = True,
    ) -> bool:
        """Fail a non-terminal goal.

        While ``retry_count < max_retries`` (and ``allow_retry``) a retry goal is
        queued in its place and goals depending on the failed one are rewired to
        the retry. Otherwise the failure propagates to the parent.
        """
        with self._lock:
            stack = self._stacks.get(run_id)
            goal = stack.get(goal_id) if stack else None
            if goal is None or goal.status.is_terminal:
                return False

            self._mark_failed(stack, goal, error)
            retry = None
            if allow_retry and goal.retry_count < goal.max_retries:
                retry = self._create_retry_goal(stack, goal)
            else:
                self._propagate_failure(stack, goal)

        logger.log("goal_stack", "GOAL_FAILED", {
            "run_id": run_id, "goal_id": goal_id, "error": error,
            "retry_id": retry.id if retry else None,
        }, "WARNING")
        return True

    def skip_goal(self, run_id: str, goal_id: str, reason: Optional[str] = None) -> bool:
        """Skip a pending goal; the parent may complete as a result."""
        with self._lock:
            stack = self._stacks.get(run_id)
            goal = stack.get(goal_id) if stack else None
            if goal is None or goal.status != GoalStatus.PENDING:
                return False
            goal.status = GoalStatus.SKIPPED
            goal.completed_at = time.time()
            if reason:
                goal.context.notes.append(f"Skipped: {reason}")
            self._update_parent(stack, goal.parent_id)

        logger.log("goal_stack", "GOAL_SKIPPED", {"run_id": run_id, "goal_id": goal_id, "reason": reason}, "DEBUG")
        return True

    def get_hierarchy(self, run_id: str, goal_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Nested dict view of a goal (the root by default) and its subtree."""
        stack = self._stacks.get(run_id)
        if stack is None:
            return None
        goal = stack.get(goal_id or stack.root_id)
        if goal is None:
            return None
        node = goal.to_dict()
        node["children"] = [self.get_hierarchy(run_id, child_id) for child_id in goal.children]
        return node

    def get_stats(self, run_id: str) -> Optional[Dict[str, int]]:
        """Goal counts per status plus completion progress in percent."""
        stack = self._stacks.get(run_id)
        if stack is None:
            return None
        stats = {"total": len(stack.goals)}
        for status in GoalStatus:
            stats[status.value] = 0
        for goal in stack.goals.values():
            stats[goal.status.value] += 1
        stats["progress"] = (round_half_up(stats["completed"] / stats["total"] * 100)
                             if stats["total"] else 0)
        return stats

    def cleanup(self, max_age: float = DEFAULT_MAX_AGE_SECONDS) -> int:
        """Drop stacks whose root goal is older than ``max_age`` seconds."""
        cutoff = time.time() - max_age
        with self._lock:
            stale = [run_id for run_id, stack in self._stacks.items()
                     if stack.root.created_at < cutoff]
            for run_id in stale:
                del self._stacks[run_id]
        if stale:
            logger.log("goal_stack", "CLEANUP", {"removed": len(stale)}, "DEBUG")
        return len(stale)

    # --- transitions ---

    def _mark_completed(self, stack: GoalStack, goal: Goal, result: Any = None):
        goal.status = GoalStatus.COMPLETED
        goal.completed_at = time.time()
        if result is not None:
            goal.result = str(result)
            goal.context.partial_results.append(result)
        stack.completed_ids.append(goal.id)
        if stack.current_goal_id == goal.id:
            stack.current_goal_id = None
        logger.log("goal_stack", "GOAL_COMPLETED", {"run_id": stack.run_id, "goal_id": goal.id}, "DEBUG")

    def _mark_failed(self, stack: GoalStack, goal: Goal, error: Optional[str]):
        goal.status = GoalStatus.FAILED
        goal.completed_at = time.time()
        goal.error = error
        if error:
            goal.context.notes.append(f"Error: {error}")
        stack.failed_ids.append(goal.id)
        if stack.current_goal_id == goal.id:
            stack.current_goal_id = None

    def _update_parent(self, stack: GoalStack, parent_id: Optional[str]):
        parent = stack.get(parent_id) if parent_id else None
        if parent is None or parent.status.is_terminal:
            return
        children = [stack.goals[c] for c in parent.children]
        if all(stack.is_resolved(child) for child in children):
            self._mark_completed(stack, parent)
            self._update_parent(stack, parent.parent_id)

    def _create_retry_goal(self, stack: GoalStack, failed: Goal) -> Goal:
        attempt = failed.retry_count + 1
        base = stack.get(failed.retry_of) if failed.retry_of else None
        while base is not None and base.retry_of:
            base = stack.get(base.retry_of)
        description = (base or failed).description

        retry = Goal(
            description=f"Retry: {description}",
            type=GoalType.RETRY,
            parent_id=failed.parent_id,
            priority=failed.priority,
            dependencies=list(failed.dependencies),
            context=GoalContext(
                relevant_files=list(failed.context.relevant_files),
                notes=failed.context.notes + [f"Retry attempt {attempt}"],
                partial_results=list(failed.context.partial_results),
            ),
            estimated_complexity=failed.estimated_complexity,
            retry_count=attempt,
            max_retries=failed.max_retries,
            suggested_tools=list(failed.suggested_tools),
            retry_of=failed.id,
        )
        stack.goals[retry.id] = retry
        parent = stack.get(failed.parent_id) if failed.parent_id else None
        if parent is not None:
            parent.children.append(retry.id)

        for goal in stack.goals.values():
            if failed.id in goal.dependencies:
                goal.dependencies = [retry.id if d == failed.id else d for d in goal.dependencies]
        return retry

    def _propagate_failure(self, stack: GoalStack, goal: Goal):
        parent = stack.get(goal.parent_id) if goal.parent_id else None
        if parent is None or parent.status.is_terminal:
            return
        for pending in stack.descendants(parent.id):
            if pending.status == GoalStatus.PENDING:
                pending.status = GoalStatus.SKIPPED
                pending.context.notes.append("Skipped: parent goal failed")
        self._mark_failed(stack, parent, f"Subgoal failed: {goal.description}")
        self._propagate_failure(stack, parent)
