#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Goal-driven controller.

``GoalDrivenAgent`` wraps an ``AgentLoop`` with intent classification and a
goal stack: the instruction becomes a root goal, medium and complex tasks are
decomposed, and each startable goal is handed to the loop in turn. Tool
approval goes through confidence scoring first; only calls the scorer will
not auto-approve reach the host's approval callback.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from revloop import config
from revloop.cache import ToolResultCache
from revloop.debug_logger import get_logger
from revloop.events import AgentEvent, EventEmitter, EventType
from revloop.execution.budget import IterationBudgetAllocator
from revloop.execution.confidence import (
    ConfidenceScore,
    ConfidenceScorer,
    ToolSuggestion,
    UsageContext,
)
from revloop.execution.cycles import CycleDetector, DetectedCycle, Severity, cycle_statistics
from revloop.execution.goal_stack import GoalStack, GoalStackManager
from revloop.execution.intent import ComplexityTier, IntentClassification, IntentClassifier
from revloop.execution.learner import LearningStore, classify_tool_error
from revloop.execution.loop import ALREADY_RUNNING, AgentLoop, LoopOutcome, RunOptions
from revloop.llm.providers.base import InferenceBackend
from revloop.llm.retry import RetryConfig
from revloop.models.goal import Goal, GoalType
from revloop.models.step import RunStatus
from revloop.tools.permissions import ApprovalDecision, PendingToolCall
from revloop.tools.registry import ToolRegistry


logger = get_logger()

ALTERNATIVES_BELOW = 0.7


@dataclass
class AgentConfig:
    max_iterations: int = config.MAX_ITERATIONS
    auto_approve_threshold: float = config.AUTO_APPROVE_THRESHOLD
    enable_cycle_detection: bool = True
    enable_learning: bool = True
    enable_caching: bool = True


class AgentStepType(Enum):
    PLAN = "plan"
    EXECUTE = "execute"
    REFLECT = "reflect"
    CORRECT = "correct"
    COMPLETE = "complete"


@dataclass
class AgentStep:
    type: AgentStepType
    action: str
    confidence: float
    reasoning: str
    params: Dict[str, Any] = field(default_factory=dict)
    goal_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "action": self.action,
            "confidence": round(self.confidence, 3),
            "reasoning": self.reasoning,
            "params": dict(self.params),
            "goal_id": self.goal_id,
        }


@dataclass
class AgentState:
    run_id: str = ""
    iteration: int = 0
    current_goal: Optional[Goal] = None
    intent: Optional[IntentClassification] = None
    last_action: Optional[str] = None
    last_result: Optional[str] = None
    confidence: float = 0.5
    cycle_detected: Optional[DetectedCycle] = None


@dataclass
class ToolCallRequest:
    tool: str
    params: Dict[str, Any]
    confidence: ConfidenceScore
    should_auto_approve: bool
    alternatives: List[ToolSuggestion] = field(default_factory=list)


@dataclass
class AgentExecutionResult:
    success: bool
    steps: List[AgentStep]
    iterations_used: int
    final_state: AgentState
    cycles_detected: List[DetectedCycle]
    cache_hits: int
    adaptations_applied: int
    final_text: str = ""


class GoalDrivenAgent:
    """Runs an instruction goal by goal on top of a shared ``AgentLoop``."""

    def __init__(
        self,
        registry: ToolRegistry,
        backend: InferenceBackend,
        *,
        scorer: Optional[ConfidenceScorer] = None,
        learning: Optional[LearningStore] = None,
        cache: Optional[ToolResultCache] = None,
        cycle_detector: Optional[CycleDetector] = None,
        allocator: Optional[IterationBudgetAllocator] = None,
        classifier: Optional[IntentClassifier] = None,
        goals: Optional[GoalStackManager] = None,
        events: Optional[EventEmitter] = None,
        agent_config: Optional[AgentConfig] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.config = agent_config or AgentConfig()
        self.scorer = scorer or ConfidenceScorer()
        self.learning = learning or LearningStore()
        self.cache = cache or ToolResultCache()
        self.cycle_detector = cycle_detector or CycleDetector()
        self.classifier = classifier or IntentClassifier()
        self.goals = goals or GoalStackManager()
        self.registry = registry

        self.loop = AgentLoop(
            registry,
            backend,
            scorer=self.scorer,
            cycle_detector=self.cycle_detector if self.config.enable_cycle_detection else None,
            learning=self.learning if self.config.enable_learning else None,
            cache=self.cache if self.config.enable_caching else None,
            allocator=allocator,
            events=events,
            retry_config=retry_config,
        )

        self.state = AgentState()
        self.steps: List[AgentStep] = []
        self._last_stack: Optional[GoalStack] = None
        self._cycles: List[DetectedCycle] = []
        self._cache_hits = 0
        self._adaptations = 0

    @property
    def events(self) -> EventEmitter:
        return self.loop.events

    def abort(self, reason: str = "Aborted by user") -> bool:
        return self.loop.abort(reason)

    # --- confidence ---

    def prepare_tool_call(self, tool: str, params: Optional[Dict[str, Any]] = None) -> ToolCallRequest:
        """Score a prospective call, decide auto-approval, list alternatives when weak."""
        params = dict(params or {})
        category = self.state.intent.category.value if self.state.intent else None
        context = UsageContext.from_params(params, category)
        confidence = self.scorer.calculate_confidence(tool, context)
        approval = self.scorer.should_auto_approve(tool, params, self.config.auto_approve_threshold)

        alternatives: List[ToolSuggestion] = []
        if confidence.score < ALTERNATIVES_BELOW:
            alternatives = self.scorer.get_adaptive_suggestions(tool, context, self.registry.names)

        return ToolCallRequest(
            tool=tool,
            params=params,
            confidence=confidence,
            should_auto_approve=approval.approved,
            alternatives=alternatives,
        )

    def _approval_callback(self, host_callback):
        def approve(pending: PendingToolCall):
            request = self.prepare_tool_call(pending.tool_name, pending.params)
            if request.should_auto_approve:
                logger.log("agent", "AUTO_APPROVED", {
                    "tool": pending.tool_name, "confidence": round(request.confidence.score, 2),
                }, "DEBUG")
                return ApprovalDecision(approved=True)
            if host_callback is None:
                return ApprovalDecision(approved=False)
            return host_callback(pending)

        return approve

    def _on_event(self, event: AgentEvent):
        if event.type != EventType.TOOL_EXECUTING:
            return
        tool = event.data.get("tool", "")
        params = event.data.get("params") or {}
        request = self.prepare_tool_call(tool, params)
        self.state.last_action = tool
        self.state.confidence = request.confidence.score
        reasoning = request.confidence.reason
        if request.alternatives:
            reasoning += ". Alternatives: " + ", ".join(a.tool for a in request.alternatives)
        self.steps.append(AgentStep(
            type=AgentStepType.EXECUTE,
            action=tool,
            confidence=request.confidence.score,
            reasoning=reasoning,
            params=dict(params),
            goal_id=self.state.current_goal.id if self.state.current_goal else None,
        ))

    # --- execution ---

    def process_task(
        self,
        instruction: str,
        history: Optional[List[Dict[str, str]]] = None,
        options: Optional[RunOptions] = None,
    ) -> AgentExecutionResult:
        """Classify, decompose and execute ``instruction`` goal by goal."""
        run_id = f"agent_{uuid.uuid4().hex[:12]}"
        self.state = AgentState(run_id=run_id)
        self.steps = []
        self._cycles = []
        self._cache_hits = 0
        self._adaptations = 0
        if self.config.enable_caching:
            self.cache.clear()

        intent = self.classifier.classify(instruction)
        self.state.intent = intent
        stack = self.goals.create_stack(run_id, instruction)
        stack.root.suggested_tools = list(intent.preferred_tools)
        self._last_stack = stack

        logger.log("agent", "TASK_STARTED", {
            "run_id": run_id,
            "category": intent.category.value,
            "complexity": intent.complexity.value,
        })

        if intent.complexity in (ComplexityTier.MEDIUM, ComplexityTier.COMPLEX):
            subgoals = self.goals.decompose_goal(run_id, stack.root_id) or []
            for subgoal in subgoals:
                subgoal.suggested_tools = list(intent.preferred_tools)
            self.steps.append(AgentStep(
                type=AgentStepType.PLAN,
                action="decompose",
                confidence=intent.confidence,
                reasoning=f"Decomposed into {len(subgoals)} subgoals",
                goal_id=stack.root_id,
            ))

        permissions = self.registry.permissions
        host_callback = permissions.approval_callback
        permissions.approval_callback = self._approval_callback(host_callback)
        unsubscribe = self.events.subscribe(self._on_event)
        try:
            final_text = self._execute_stack(stack, instruction, history, options or RunOptions())
        finally:
            unsubscribe()
            permissions.approval_callback = host_callback

        success = stack.is_resolved(stack.root)
        cycles = list(self._cycles)
        result = AgentExecutionResult(
            success=success,
            steps=list(self.steps),
            iterations_used=self.state.iteration,
            final_state=self.state,
            cycles_detected=cycles,
            cache_hits=self._cache_hits,
            adaptations_applied=self._adaptations,
            final_text=final_text,
        )
        logger.log("agent", "TASK_FINISHED", {
            "run_id": run_id,
            "success": success,
            "iterations": self.state.iteration,
            "cycles": len(cycles),
            "goal_stats": self.goals.get_stats(run_id),
        })
        return result

    def _execute_stack(self, stack: GoalStack, instruction: str,
                       history: Optional[List[Dict[str, str]]], options: RunOptions) -> str:
        run_id = stack.run_id
        transcript = list(history or [])
        remaining = self.config.max_iterations
        final_text = ""

        while remaining > 0:
            goal = self.goals.get_next_goal(run_id)
            if goal is None:
                break
            if not self.goals.start_goal(run_id, goal.id):
                logger.log("agent", "GOAL_NOT_STARTABLE", {"goal_id": goal.id}, "WARNING")
                break
            self.state.current_goal = goal

            prompt = self._goal_prompt(stack, goal, instruction)
            text = self.loop.run(prompt, transcript, RunOptions(
                max_iterations=remaining,
                max_duration_seconds=options.max_duration_seconds,
                trusted=options.trusted,
                workspace_root=options.workspace_root,
                system_prompt=options.system_prompt,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                goal=goal.description,
                task_category=self.state.intent.category.value,
            ))
            if text == ALREADY_RUNNING:
                # another caller holds the loop
                self.goals.fail_goal(run_id, goal.id, text, allow_retry=False)
                return text

            outcome = self.loop.last_outcome
            remaining -= max(outcome.iterations, 1)
            self._absorb(outcome)
            final_text = text
            self.state.last_result = text

            if not self._settle_goal(run_id, goal, outcome, text):
                break
            if outcome.success:
                transcript += [{"role": "user", "content": prompt},
                               {"role": "assistant", "content": text}]

        return final_text

    def _settle_goal(self, run_id: str, goal: Goal, outcome: LoopOutcome, text: str) -> bool:
        """Complete or fail ``goal`` from the loop outcome; False stops the task."""
        if outcome.stop_reason == "cycle":
            self.goals.fail_goal(run_id, goal.id, "Cycle detected - high severity", allow_retry=False)
            return True
        if outcome.stop_reason == "aborted":
            self.goals.fail_goal(run_id, goal.id, text, allow_retry=False)
            return False
        if outcome.status == RunStatus.ERROR:
            self.goals.fail_goal(run_id, goal.id, text, allow_retry=False)
            return False
        if outcome.success:
            self.goals.complete_goal(run_id, goal.id, text)
            self.steps.append(AgentStep(
                type=AgentStepType.COMPLETE,
                action="complete",
                confidence=self.state.confidence,
                reasoning=text[:200],
                goal_id=goal.id,
            ))
            return True

        self.steps.append(AgentStep(
            type=AgentStepType.REFLECT,
            action="retry",
            confidence=self.state.confidence,
            reasoning=f"Goal ended without an answer ({outcome.stop_reason})",
            goal_id=goal.id,
        ))
        self.goals.fail_goal(run_id, goal.id, text)
        return True

    def _absorb(self, outcome: LoopOutcome):
        self.state.iteration += outcome.iterations
        self._cache_hits += outcome.cache_hits
        self._adaptations += outcome.adaptations
        for cycle in outcome.cycles:
            self.state.cycle_detected = cycle
            self._cycles.append(cycle)
            self.steps.append(AgentStep(
                type=AgentStepType.CORRECT,
                action="cycle_break",
                confidence=0.3 if cycle.severity == Severity.HIGH else 0.5,
                reasoning=(f"Cycle detected: {cycle.type.value} at iterations "
                           f"{','.join(str(i) for i in cycle.iterations)}. "
                           f"Suggested action: {cycle.suggested_action.type.value}"),
                params=cycle.suggested_action.to_dict(),
                goal_id=self.state.current_goal.id if self.state.current_goal else None,
            ))

    def _goal_prompt(self, stack: GoalStack, goal: Goal, instruction: str) -> str:
        if goal.type == GoalType.ROOT:
            return instruction

        lines = [f"Overall task: {instruction}", "", f"Current goal: {goal.description}"]
        done = [g for g in stack.goals.values() if g.parent_id == goal.parent_id and g.result]
        if done:
            lines.append("")
            lines.append("Completed so far:")
            lines.extend(f"- {g.description}: {g.result[:300]}" for g in done)

        hint = self._retry_hint(stack, goal)
        if hint:
            lines.extend(["", hint])
        if goal.suggested_tools:
            lines.extend(["", "Suggested tools: " + ", ".join(self._rank_tools(goal.suggested_tools))])
        lines.extend(["", "Work only on the current goal. When it is done, reply with a short "
                          "summary and no tool calls."])
        return "\n".join(lines)

    def _retry_hint(self, stack: GoalStack, goal: Goal) -> Optional[str]:
        if not self.config.enable_learning or goal.retry_of is None:
            return None
        failed = stack.get(goal.retry_of)
        if failed is None or not failed.error:
            return None
        hint = f"The previous attempt failed: {failed.error[:300]}"
        approach = self.learning.get_recommended_approach(classify_tool_error(failed.error), failed.error)
        if approach.tool:
            self._adaptations += 1
            hint += f"\nPast fixes for this error used {approach.tool}"
            if approach.solution:
                hint += f": {approach.solution}"
        return hint

    def _rank_tools(self, tools: List[str]) -> List[str]:
        category = self.state.intent.category.value if self.state.intent else ""
        available = [t for t in tools if t in self.registry]
        return [s.tool for s in self.scorer.get_recommendations(category, available, top_n=len(available))]

    # --- reporting ---

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of the shared components' statistics."""
        goal_stats = self.goals.get_stats(self._last_stack.run_id) if self._last_stack else None
        return {
            "iterations": self.state.iteration,
            "confidence": self.state.confidence,
            "tools": [p.to_dict() for p in self.scorer.get_performance()],
            "learning": self.learning.get_statistics(),
            "cache": self.cache.get_stats(),
            "cycles": cycle_statistics(self._cycles),
            "intents": self.classifier.get_category_stats(),
            "goals": goal_stats,
        }
