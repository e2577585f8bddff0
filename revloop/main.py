#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Main entry point for the revloop CLI."""

import argparse
import sys
from typing import Optional

from . import config
from .cache import ToolResultCache
from .debug_logger import DebugLogger, get_logger
from .events import AgentEvent, EventEmitter, EventType
from .execution import (
    AgentLoop,
    ConfidenceScorer,
    CycleDetector,
    GoalDrivenAgent,
    IterationBudgetAllocator,
    LearningStore,
    RunOptions,
)
from .llm import create_backend
from .tools import ApprovalDecision, PendingToolCall, PermissionManager, PermissionMode, build_default_registry
from ._version import REVLOOP_VERSION


def prompt_for_approval(call: PendingToolCall) -> ApprovalDecision:
    """Ask on the terminal whether a tool call may run."""
    print(f"\n[{call.risk_level.value}] {call.tool_name} {call.params}")
    try:
        answer = input("Allow? [y]es / [n]o / [a]lways: ").strip().lower()
    except EOFError:
        return ApprovalDecision(approved=False)
    if answer in ("a", "always"):
        return ApprovalDecision(approved=True, always_allow=True)
    return ApprovalDecision(approved=answer in ("y", "yes"))


class ConsoleReporter:
    """Prints streamed tokens and step progress."""

    def __init__(self, stream: bool = True):
        self.stream = stream
        self._streaming = False

    def __call__(self, event: AgentEvent) -> None:
        if event.type == EventType.STREAMING and self.stream:
            print(event.data.get("token", ""), end="", flush=True)
            self._streaming = True
            return
        if self._streaming:
            print()
            self._streaming = False
        if event.type == EventType.TOOL_EXECUTING:
            print(f"-> {event.data.get('tool')}")
        elif event.type == EventType.FILE_MODIFIED:
            print(f"   modified {event.data.get('path')}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="revloop - autonomous task execution with a reasoning/acting loop"
    )
    parser.add_argument("task", nargs="*", help="Instruction to execute")
    parser.add_argument(
        "--provider",
        choices=["ollama", "openai"],
        default=config.LLM_PROVIDER,
        help=f"Inference backend (default: {config.LLM_PROVIDER})"
    )
    parser.add_argument("--model", default=None, help="Model override for the selected backend")
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=config.MAX_ITERATIONS,
        help=f"Maximum loop iterations (default: {config.MAX_ITERATIONS})"
    )
    parser.add_argument(
        "--max-duration",
        type=float,
        default=config.MAX_DURATION_SECONDS,
        help=f"Wall-clock limit in seconds (default: {config.MAX_DURATION_SECONDS:g})"
    )
    parser.add_argument("--plan", action="store_true", help="Propose a plan before running any tool")
    access = parser.add_mutually_exclusive_group()
    access.add_argument("--trusted", action="store_true", help="Run every tool without confirmation")
    access.add_argument(
        "--read-only",
        action="store_true",
        help="Auto-approve read-only tools and confirm the rest"
    )
    parser.add_argument(
        "--goal-driven",
        action="store_true",
        help="Decompose the instruction into goals and execute them one at a time"
    )
    parser.add_argument("--no-stream", action="store_true", help="Do not print streamed tokens")
    parser.add_argument("--debug", action="store_true", help="Write a structured debug log under .revloop/logs")
    parser.add_argument("--version", action="version", version=f"revloop {REVLOOP_VERSION}")
    return parser


def build_permissions(args: argparse.Namespace) -> PermissionManager:
    permissions = PermissionManager.from_policy_file(
        config.PERMISSION_POLICY_FILE,
        approval_callback=prompt_for_approval,
    )
    if args.trusted:
        permissions.set_trusted(True)
    elif args.read_only:
        permissions.mode = PermissionMode.READ_ONLY_AUTO
    return permissions


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the revloop CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.task:
        parser.print_help()
        return 2
    instruction = " ".join(args.task)

    config.ensure_dirs()
    DebugLogger.initialize(enabled=args.debug, log_dir=config.LOGS_DIR)
    logger = get_logger()

    try:
        backend = create_backend(args.provider, args.model)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    permissions = build_permissions(args)
    registry = build_default_registry(permissions)
    scorer = ConfidenceScorer.persistent()
    learning = LearningStore.persistent()
    events = EventEmitter()
    events.subscribe(ConsoleReporter(stream=not args.no_stream))

    options = RunOptions(
        max_iterations=args.max_iterations,
        max_duration_seconds=args.max_duration,
        plan_mode=args.plan,
        trusted=args.trusted,
        workspace_root=str(config.ROOT),
    )

    logger.log("cli", "START", {
        "provider": args.provider,
        "model": backend.model,
        "goal_driven": args.goal_driven,
        "mode": permissions.mode.value,
    })

    exit_code = 0
    try:
        if args.goal_driven:
            agent = GoalDrivenAgent(
                registry,
                backend,
                scorer=scorer,
                learning=learning,
                cache=ToolResultCache(),
                cycle_detector=CycleDetector(),
                allocator=IterationBudgetAllocator(),
                events=events,
            )
            result = agent.process_task(instruction, options=options)
            print(f"\n{result.final_text}")
            print(f"\n[{'success' if result.success else 'incomplete'}] "
                  f"{result.iterations_used} iterations, {len(result.steps)} steps, "
                  f"{result.cache_hits} cache hits")
            exit_code = 0 if result.success else 1
        else:
            loop = AgentLoop(
                registry,
                backend,
                scorer=scorer,
                cycle_detector=CycleDetector(),
                learning=learning,
                cache=ToolResultCache(),
                allocator=IterationBudgetAllocator(),
                events=events,
            )
            final_text = loop.run(instruction, options=options)
            print(f"\n{final_text}")
            outcome = loop.last_outcome
            if outcome is not None and not outcome.success:
                exit_code = 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        exit_code = 130
    finally:
        scorer.save()
        learning.save()
        logger.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
