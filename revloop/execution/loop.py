#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""ReAct orchestration loop.

One ``AgentLoop`` runs one instruction at a time: generate a response,
parse it into plain text, a plan or tool calls, execute the calls in order
through the registry, fold the observations back into the conversation and
repeat until the model answers, the budget runs out, a cycle stalls the run,
or the run is aborted.

The auxiliary components (confidence scorer, cycle detector, learning store,
tool-result cache, budget allocator) are optional and injected; the loop
drives whichever ones it is given.
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from revloop import config
from revloop.cache import ToolResultCache, make_key
from revloop.cancellation import CancellationToken, CancelledError
from revloop.debug_logger import get_logger
from revloop.events import EventEmitter, EventType
from revloop.execution.budget import IterationBudgetAllocator, ProgressMetrics
from revloop.execution.confidence import ConfidenceScorer, ExecutionOutcome, UsageContext
from revloop.execution.context import (
    ContextBudget,
    build_messages,
    build_system_prompt,
    combine_tool_results,
    format_tool_result,
    trim_to_context_window,
)
from revloop.execution.cycles import CycleDetector, DetectedCycle, Severity
from revloop.execution.learner import (
    AttemptedFix,
    CorrectionContext,
    CorrectionRecord,
    ErrorInfo,
    LearningStore,
    Outcome,
    classify_tool_error,
)
from revloop.llm.providers.base import GenerationOptions, InferenceBackend, classify_error
from revloop.llm.response_parser import Plan, PlainText, extract_thinking, parse_response
from revloop.llm.retry import RetryConfig, RetryHandler
from revloop.models.step import Run, RunStatus, Step, StepType, ToolCall, ToolResult
from revloop.tools.base import ToolContext
from revloop.tools.normalization import normalize_params
from revloop.tools.permissions import PermissionManager
from revloop.tools.registry import ToolRegistry


logger = get_logger()

ALREADY_RUNNING = "Error: Agent loop is already running"

# Tools that start a process; what they write is unknown.
PROCESS_TOOLS = {"runCommand", "executeCode", "runFile"}


@dataclass
class RunOptions:
    """Per-run overrides."""
    max_iterations: int = config.MAX_ITERATIONS
    max_duration_seconds: float = config.MAX_DURATION_SECONDS
    plan_mode: bool = False
    trusted: Optional[bool] = None
    workspace_root: Optional[Path] = None
    system_prompt: Optional[str] = None
    temperature: float = config.GENERATION_TEMPERATURE
    max_tokens: int = config.GENERATION_MAX_TOKENS
    # goal description folded into cycle fingerprints
    goal: Optional[str] = None
    task_category: Optional[str] = None


@dataclass
class LoopOutcome:
    """Structured result of the last run, for callers that need more than text."""
    run_id: str
    status: RunStatus
    final_text: str
    stop_reason: str
    iterations: int = 0
    tool_calls: int = 0
    tool_failures: int = 0
    cache_hits: int = 0
    adaptations: int = 0
    cycles: List[DetectedCycle] = field(default_factory=list)
    modified_files: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED and self.stop_reason == "answer"


def _call_target(params: Dict[str, Any]) -> str:
    return str(params.get("path") or params.get("command") or params.get("query") or "")

class _RunStats:
    def __init__(self):
        self.tool_calls = 0
        self.tool_failures = 0
        self.cache_hits = 0
        self.adaptations = 0
        self.stagnation = 0
        self.scores: List[float] = []
        # target -> error of the last failed call on it, cleared by a later success
        self.open_failures: Dict[str, ErrorInfo] = {}

    @property
    def success_rate(self) -> float:
        if not self.tool_calls:
            return 1.0
        return (self.tool_calls - self.tool_failures) / self.tool_calls

    @property
    def confidence(self) -> float:
        recent = self.scores[-5:]
        return sum(recent) / len(recent) if recent else 0.5


class AgentLoop:
    """Reasoning/acting controller for a single logical task stream."""

    def __init__(
        self,
        registry: ToolRegistry,
        backend: InferenceBackend,
        *,
        scorer: Optional[ConfidenceScorer] = None,
        cycle_detector: Optional[CycleDetector] = None,
        learning: Optional[LearningStore] = None,
        cache: Optional[ToolResultCache] = None,
        allocator: Optional[IterationBudgetAllocator] = None,
        permissions: Optional[PermissionManager] = None,
        events: Optional[EventEmitter] = None,
        retry_config: Optional[RetryConfig] = None,
        context_budget: Optional[ContextBudget] = None,
        max_tool_result_chars: int = config.MAX_TOOL_RESULT_CHARS,
    ):
        self.registry = registry
        self.backend = backend
        self.scorer = scorer
        self.cycle_detector = cycle_detector
        self.learning = learning
        self.cache = cache
        self.allocator = allocator
        if permissions is not None:
            self.registry.permissions = permissions
        self.events = events or EventEmitter()
        self.retry = RetryHandler(retry_config)
        self.context_budget = context_budget or ContextBudget()
        self.max_tool_result_chars = max_tool_result_chars

        self._lock = threading.Lock()
        self._token = CancellationToken()
        self._run: Optional[Run] = None
        self._running = False
        self._pending_plan: Optional[Plan] = None
        self.last_outcome: Optional[LoopOutcome] = None

    # --- state ---

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def permissions(self) -> PermissionManager:
        return self.registry.permissions

    @property
    def steps(self) -> List[Step]:
        return list(self._run.steps) if self._run else []

    @property
    def modified_files(self) -> List[str]:
        return list(self._run.modified_files) if self._run else []

    @property
    def pending_plan(self) -> Optional[Plan]:
        return self._pending_plan

    @property
    def run_id(self) -> Optional[str]:
        return self._run.id if self._run else None

    def mission_history(self) -> List[Dict[str, str]]:
        """Steps of the last run rendered as a compact message transcript."""
        history = []
        for step in self.steps:
            if step.type == StepType.THINKING:
                history.append({"role": "assistant", "content": f"<think>\n{step.content}\n</think>"})
            elif step.type == StepType.TOOL_CALL and step.tool_call is not None:
                history.append({"role": "assistant", "content": f"Called {step.tool_call.name} "
                                f"with {step.tool_call.params}"})
            elif step.type == StepType.TOOL_RESULT:
                history.append({"role": "user", "content": f"Tool Result: {step.content}"})
            elif step.type == StepType.ANSWER:
                history.append({"role": "assistant", "content": step.content})
            else:
                history.append({"role": "user", "content": step.content})
        return history

    def abort(self, reason: str = "Aborted by user") -> bool:
        """Signal the active run to stop; in-flight inference and tools observe it."""
        if not self._running:
            return False
        self._token.cancel(reason)
        logger.log("loop", "ABORT_REQUESTED", {"run_id": self.run_id, "reason": reason})
        return True

    def reset(self) -> None:
        """Forget the last run, any pending plan and session approvals."""
        if self._running:
            raise RuntimeError("Cannot reset while a run is active")
        self._run = None
        self._pending_plan = None
        self.last_outcome = None
        self._token.reset()
        self.permissions.reset_session()

    # --- run ---

    def run(
        self,
        instruction: str,
        history: Optional[List[Dict[str, str]]] = None,
        options: Optional[RunOptions] = None,
    ) -> str:
        """Run the loop for one instruction and return the final text.

        Never raises for inference, tool, budget or cycle failures. Permanent
        inference errors come back as ``"Error: <message>"``.
        """
        if not self._lock.acquire(blocking=False):
            logger.log("loop", "RUN_REJECTED", {"reason": "already running"}, "WARNING")
            return ALREADY_RUNNING
        try:
            return self._run_locked(instruction, history, options or RunOptions())
        finally:
            self._lock.release()

    def _run_locked(self, instruction: str, history: Optional[List[Dict[str, str]]],
                    options: RunOptions) -> str:
        run = Run(instruction=instruction)
        self._run = run
        self._running = True
        self._pending_plan = None
        self._token.reset()
        stats = _RunStats()

        workspace = Path(options.workspace_root or config.ROOT)
        system_prompt = options.system_prompt or build_system_prompt(
            self.registry.describe_tools(), str(workspace), options.plan_mode,
        )
        run.messages = build_messages(system_prompt, history, instruction, self.context_budget)

        self.events.emit(EventType.STARTED, run.id, instruction=instruction)
        logger.log("loop", "RUN_STARTED", {
            "run_id": run.id,
            "instruction": instruction[:200],
            "max_iterations": options.max_iterations,
            "plan_mode": options.plan_mode,
        })

        if self.allocator is not None:
            self.allocator.allocate(run.id, instruction)
        if self.cycle_detector is not None:
            self.cycle_detector.start_run(run.id)

        stop_reason = "error"
        cycles: List[DetectedCycle] = []
        try:
            with logger.run_scope(run.id):
                final_text, stop_reason = self._iterate(run, options, workspace, stats)
        except Exception as e:
            logger.log_error("loop", e, {"run_id": run.id})
            run.status = RunStatus.ERROR
            self._add_step(run, StepType.ERROR, f"Agent loop failed: {e}")
            self.events.emit(EventType.ERROR, run.id, error=str(e))
            final_text = f"Error: {e}"
        finally:
            if self.allocator is not None:
                self.allocator.release(run.id)
            if self.cycle_detector is not None:
                cycles = self.cycle_detector.end_run()
            self._running = False

        self.last_outcome = LoopOutcome(
            run_id=run.id,
            status=run.status,
            final_text=final_text,
            stop_reason=stop_reason,
            iterations=run.iteration,
            tool_calls=stats.tool_calls,
            tool_failures=stats.tool_failures,
            cache_hits=stats.cache_hits,
            adaptations=stats.adaptations,
            cycles=cycles,
            modified_files=list(run.modified_files),
        )
        logger.log("loop", "RUN_FINISHED", {
            "run_id": run.id,
            "status": run.status.value,
            "stop_reason": stop_reason,
            "iterations": run.iteration,
            "elapsed": round(run.elapsed, 2),
        })
        return final_text

    def _iterate(self, run: Run, options: RunOptions, workspace: Path,
                 stats: _RunStats):
        for iteration in range(1, options.max_iterations + 1):
            if self._token.is_cancelled:
                return self._aborted(run), "aborted"

            if run.elapsed > options.max_duration_seconds:
                logger.log("loop", "TIME_BUDGET_EXCEEDED", {"run_id": run.id}, "WARNING")
                self._add_step(run, StepType.ERROR, "Time budget exceeded. Stopping agent loop.")
                return self._finish_with_summary(run), "time_budget"

            if self.allocator is not None and iteration > 1:
                decision = self.allocator.check_and_adjust(run.id, ProgressMetrics(
                    iteration=iteration - 1,
                    success_rate=stats.success_rate,
                    confidence=stats.confidence,
                    stagnation_count=stats.stagnation,
                ))
                if not decision.should_continue:
                    self._add_step(run, StepType.ERROR, f"Stopping: {decision.reason}")
                    return self._finish_with_summary(run), "budget"

            run.iteration = iteration
            self.events.emit(EventType.ITERATION, run.id, iteration=iteration,
                             max_iterations=options.max_iterations)
            run.messages = trim_to_context_window(run.messages, self.context_budget)

            try:
                response = self._generate(run, options)
            except CancelledError:
                return self._aborted(run), "aborted"
            except Exception as e:
                return self._generation_failed(run, e), "error"

            thinking = extract_thinking(response)
            if thinking:
                self._add_step(run, StepType.THINKING, thinking)

            parsed = parse_response(response, plan_mode=options.plan_mode)

            if isinstance(parsed, Plan):
                self._pending_plan = parsed
                self.events.emit(EventType.PLAN_PROPOSED, run.id, plan=parsed.to_dict())
                self._add_step(run, StepType.PLAN, "\n".join(s.description for s in parsed.steps))
                run.status = RunStatus.COMPLETED
                return self._format_plan(parsed), "plan"

            if isinstance(parsed, PlainText):
                if parsed.text:
                    self._add_step(run, StepType.ANSWER, parsed.text)
                run.status = RunStatus.COMPLETED
                self.events.emit(EventType.COMPLETED, run.id, final_text=parsed.text,
                                 steps=len(run.steps))
                return parsed.text, "answer"

            self._add_step(run, StepType.THINKING,
                           parsed.text or f"Executing {len(parsed.calls)} tool(s)...")

            rendered: List[str] = []
            executed: List[ToolCall] = []
            any_success = False
            for call in parsed.calls:
                if self._token.is_cancelled:
                    break
                text, result = self._execute_call(run, call, options, workspace, stats)
                rendered.append(text)
                executed.append(call)
                any_success = any_success or result.success

            if rendered:
                run.messages.append({"role": "assistant", "content": response})
                run.messages.append({"role": "user", "content": combine_tool_results(rendered)})

            cycle = self._check_cycle(executed, options)
            stats.stagnation = 0 if any_success and cycle is None else stats.stagnation + 1
            if cycle is not None:
                if cycle.severity == Severity.HIGH:
                    self._add_step(run, StepType.ERROR,
                                   f"Stopping: {cycle.type.value} cycle detected. "
                                   f"{cycle.suggested_action.message}")
                    return self._finish_with_summary(run), "cycle"
                run.messages[-1]["content"] += f"\n\nNote: {cycle.suggested_action.message}"

            if self._token.is_cancelled:
                return self._aborted(run), "aborted"

        return self._finish_with_summary(run), "max_iterations"

    # --- inference ---

    def _generate(self, run: Run, options: RunOptions) -> str:
        gen_options = GenerationOptions(temperature=options.temperature, max_tokens=options.max_tokens)
        attempts = [0]

        def on_token(token: str):
            self.events.emit(EventType.STREAMING, run.id, token=token)

        def attempt() -> str:
            attempts[0] += 1
            logger.log_llm_request(self.backend.model, run.messages, gen_options.to_dict())
            text = self.backend.generate(list(run.messages), gen_options, self._token, on_token=on_token)
            logger.log_llm_response(self.backend.model, text, attempts[0])
            return text

        def on_retry(attempt_no: int, error: BaseException, delay: float):
            logger.log("loop", "GENERATION_RETRY", {
                "run_id": run.id, "attempt": attempt_no, "delay": delay, "error": str(error),
            }, "WARNING")

        return self.retry.execute(attempt, self._token, on_retry=on_retry)

    def _generation_failed(self, run: Run, error: Exception) -> str:
        message = str(error)
        run.status = RunStatus.ERROR
        self._add_step(run, StepType.ERROR, f"Generation failed: {message}")
        self.events.emit(EventType.ERROR, run.id, error=message)
        if self.learning is not None:
            self.learning.record_correction(CorrectionRecord(
                error=ErrorInfo(type=classify_error(error).error_class.value, message=message),
                attempted_fix=AttemptedFix(tool_name=f"inference:{self.backend.name}"),
                outcome=Outcome.FAILURE,
            ))
        return f"Error: {message}"

    # --- tools ---

    def _execute_call(self, run: Run, call: ToolCall, options: RunOptions, workspace: Path,
                      stats: _RunStats):
        params = normalize_params(call.name, call.params)
        self._add_step(run, StepType.TOOL_CALL, f"Calling {call.name}", tool_call=call)
        self.events.emit(EventType.TOOL_EXECUTING, run.id, tool=call.name, params=dict(call.params))
        stats.tool_calls += 1

        usage = UsageContext.from_params(params, options.task_category)
        if self.scorer is not None:
            stats.scores.append(self.scorer.calculate_confidence(call.name, usage).score)

        start = time.time()
        result, cached = self._cached_result(call.name, params)
        if cached:
            stats.cache_hits += 1
        else:
            context = ToolContext(workspace_root=workspace, cancellation=self._token, run_id=run.id)
            result = self.registry.execute_tool(call.name, call.params, context, trusted=options.trusted)
            duration = time.time() - start
            if self.scorer is not None:
                self.scorer.record_execution(call.name, ExecutionOutcome(
                    success=result.success,
                    duration=duration,
                    error=result.error,
                    cancelled=self._token.is_cancelled,
                ), usage)
            self._after_execution(run, call.name, params, result)

        text = format_tool_result(call.name, result, self.max_tool_result_chars)
        if not result.success:
            stats.tool_failures += 1
            hint = self._record_failure(call, params, result, usage, stats)
            if hint:
                stats.adaptations += 1
                text += f"\nHint: {hint}"
        elif not cached:
            self._record_recovery(call, params, usage, stats)

        self._add_step(run, StepType.TOOL_RESULT, text, tool_call=call, tool_result=result)
        self.events.emit(EventType.TOOL_RESULT, run.id, tool=call.name, success=result.success,
                         result=result.data if result.success else result.error, cached=cached)
        return text, result

    def _cached_result(self, tool: str, params: Dict[str, Any]):
        if self.cache is None or not self.cache.is_cacheable(tool):
            return None, False
        missing = object()
        value = self.cache.get(make_key(tool, params), missing)
        if value is missing:
            return None, False
        logger.log("loop", "CACHE_HIT", {"tool": tool, "params": params}, "DEBUG")
        return ToolResult.ok(value), True

    def _after_execution(self, run: Run, tool: str, params: Dict[str, Any], result: ToolResult):
        if not result.success:
            return
        path = params.get("path")
        if self.cache is not None:
            if self.cache.is_cacheable(tool):
                self.cache.set_result(tool, params, result.data)
            elif not self.registry.is_read_only(tool):
                if tool in PROCESS_TOOLS or not (isinstance(path, str) and path):
                    # processes and path-less writes can touch anything
                    self.cache.clear()
                else:
                    self.cache.invalidate_file(path)

        if self.registry.is_mutating(tool) and isinstance(path, str) and path:
            if run.add_modified(path):
                self.events.emit(EventType.FILE_MODIFIED, run.id, path=path)

    def _record_failure(self, call: ToolCall, params: Dict[str, Any], result: ToolResult,
                        usage: UsageContext, stats: _RunStats) -> Optional[str]:
        if self.learning is None:
            return None
        message = result.error or ""
        error_type = classify_tool_error(message)
        path = params.get("path") if isinstance(params.get("path"), str) else None
        error = ErrorInfo(type=error_type, message=message, file_path=path)
        target = _call_target(params)
        if target:
            stats.open_failures[target] = error
        self.learning.record_correction(CorrectionRecord(
            error=error,
            attempted_fix=AttemptedFix(tool_name=call.name, params=dict(params)),
            outcome=Outcome.FAILURE,
            context=CorrectionContext(file_type=usage.file_extension, task_category=usage.task_category),
        ))
        suggestion = self.learning.get_adaptive_tool_selection(call.name, error_type, message)
        if suggestion is None:
            return None
        return f"Consider {suggestion.suggested_tool} instead. {suggestion.reason}."

    def _record_recovery(self, call: ToolCall, params: Dict[str, Any], usage: UsageContext,
                         stats: _RunStats) -> None:
        """A success on a target that failed earlier in the run fixed that error."""
        if self.learning is None:
            return
        error = stats.open_failures.pop(_call_target(params), None)
        if error is None:
            return
        fix = AttemptedFix(tool_name=call.name, params=dict(params))
        self.learning.record_correction(CorrectionRecord(
            error=error,
            attempted_fix=fix,
            outcome=Outcome.SUCCESS,
            context=CorrectionContext(file_type=usage.file_extension, task_category=usage.task_category),
            final_solution=fix,
        ))

    def _check_cycle(self, executed: List[ToolCall], options: RunOptions) -> Optional[DetectedCycle]:
        if self.cycle_detector is None or not executed:
            return None
        targets = [_call_target(normalize_params(call.name, call.params)) for call in executed]
        return self.cycle_detector.record_state([c.name for c in executed], targets, options.goal)

    # --- helpers ---

    def _add_step(self, run: Run, step_type: StepType, content: str,
                  tool_call: Optional[ToolCall] = None,
                  tool_result: Optional[ToolResult] = None) -> Step:
        step = Step(type=step_type, content=content, tool_call=tool_call,
                    tool_result=tool_result, iteration=run.iteration)
        run.steps.append(step)
        self.events.emit(EventType.STEP_ADDED, run.id, step=step.to_dict())
        return step

    def _aborted(self, run: Run) -> str:
        run.status = RunStatus.ABORTED
        reason = self._token.reason or "Aborted"
        self.events.emit(EventType.ABORTED, run.id, reason=reason)
        logger.log("loop", "RUN_ABORTED", {"run_id": run.id, "reason": reason}, "WARNING")
        return f"Aborted: {reason}"

    def _finish_with_summary(self, run: Run) -> str:
        run.status = RunStatus.COMPLETED
        files = ", ".join(run.modified_files) or "none"
        summary = f"Completed {run.iteration} steps. Modified files: {files}"
        self.events.emit(EventType.COMPLETED, run.id, final_text=summary, steps=len(run.steps))
        return summary

    @staticmethod
    def _format_plan(plan: Plan) -> str:
        lines = [f"{i}. {step.description}" for i, step in enumerate(plan.steps, 1)]
        return "Plan proposed:\n" + "\n".join(lines)
