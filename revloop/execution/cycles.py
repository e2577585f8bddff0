#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Cycle detection for the agent loop.

Each iteration the loop records which tools it called, which files they
touched and which goal it was working on. Three patterns are recognised:

- repetition: the exact same state seen three or more times
- oscillation: a window of 2-4 states repeating back to back (A B A B)
- stagnation: the same tool on the same file in at least 3 of the last 5 iterations

A detected cycle carries a severity and a suggested way to break out of it.
"""

import hashlib
import json
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Sequence

from revloop.debug_logger import get_logger


logger = get_logger()

MAX_HISTORY = 50
STAGNATION_WINDOW = 5
STAGNATION_THRESHOLD = 3

ALTERNATIVE_TOOLS = {
    "readFile": ["searchFiles", "listDirectory"],
    "writeFile": ["replaceInFile", "fuzzyReplace"],
    "replaceInFile": ["fuzzyReplace", "writeFile"],
    "fuzzyReplace": ["replaceInFile", "writeFile"],
    "searchFiles": ["searchRelevantContext", "getFileTree"],
    "executeCode": ["runCommand"],
    "runCommand": ["executeCode"],
}


class CycleType(Enum):
    REPETITION = "repetition"
    OSCILLATION = "oscillation"
    STAGNATION = "stagnation"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def weight(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class StrategyType(Enum):
    ALTERNATIVE_TOOL = "alternative_tool"
    INCREASE_TEMPERATURE = "increase_temperature"
    SIMPLIFY_REQUEST = "simplify_request"
    ASK_CLARIFICATION = "ask_clarification"
    RESET_CONTEXT = "reset_context"
    ESCALATE_TO_USER = "escalate_to_user"


@dataclass
class BreakStrategy:
    type: StrategyType
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "message": self.message, **self.details}


@dataclass
class StateFingerprint:
    tool_calls: List[str]
    file_operations: List[str]
    goal: Optional[str]
    iteration: int

    @property
    def digest(self) -> str:
        payload = json.dumps({
            "tools": self.tool_calls,
            "files": self.file_operations,
            "goal": self.goal,
        }, sort_keys=True)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()

    @property
    def signature(self) -> str:
        return ",".join(self.tool_calls) + "@" + ",".join(self.file_operations)


@dataclass
class DetectedCycle:
    type: CycleType
    iterations: List[int]
    fingerprint: StateFingerprint
    severity: Severity
    suggested_action: BreakStrategy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "iterations": list(self.iterations),
            "severity": self.severity.value,
            "tools": list(self.fingerprint.tool_calls),
            "files": list(self.fingerprint.file_operations),
            "suggested_action": self.suggested_action.to_dict(),
        }


def severity_for_count(count: int) -> Severity:
    if count >= 4:
        return Severity.HIGH
    if count >= 3:
        return Severity.MEDIUM
    return Severity.LOW


def alternative_tool(tool: str) -> Optional[str]:
    options = ALTERNATIVE_TOOLS.get(tool)
    return options[0] if options else None


def cycle_statistics(cycles: Sequence[DetectedCycle]) -> Dict[str, Any]:
    by_type = {t.value: 0 for t in CycleType}
    for cycle in cycles:
        by_type[cycle.type.value] += 1
    total = len(cycles)
    return {
        "total_cycles": total,
        "by_type": by_type,
        "average_severity": sum(c.severity.weight for c in cycles) / total if total else 0.0,
    }


class CycleDetector:
    """Per-run cycle detection. One detector serves one run at a time."""

    def __init__(self, max_history: int = MAX_HISTORY):
        self.max_history = max_history
        self.run_id: Optional[str] = None
        self.iteration = 0
        self._occurrences: Dict[str, List[int]] = {}
        self._recent: Deque[StateFingerprint] = deque(maxlen=max_history)
        self._detected: List[DetectedCycle] = []

    def start_run(self, run_id: str) -> None:
        self.clear_history()
        self.run_id = run_id
        self.iteration = 0
        logger.log("cycles", "RUN_STARTED", {"run_id": run_id}, "DEBUG")

    def end_run(self) -> List[DetectedCycle]:
        cycles = list(self._detected)
        self.run_id = None
        self.iteration = 0
        self._detected = []
        return cycles

    def record_state(
        self,
        tool_calls: Sequence[str],
        file_operations: Sequence[str] = (),
        goal: Optional[str] = None,
    ) -> Optional[DetectedCycle]:
        """Record one iteration and return a cycle if this state completes one."""
        if self.run_id is None or not tool_calls:
            return None

        self.iteration += 1
        fingerprint = StateFingerprint(
            tool_calls=list(tool_calls),
            file_operations=list(file_operations),
            goal=goal,
            iteration=self.iteration,
        )

        seen = self._occurrences.setdefault(fingerprint.digest, [])
        seen.append(self.iteration)
        self._recent.append(fingerprint)
        if len(self._occurrences) > self.max_history:
            oldest = next(iter(self._occurrences))
            del self._occurrences[oldest]

        cycle = (
            self._detect_repetition(fingerprint, seen)
            or self._detect_oscillation(fingerprint)
            or self._detect_stagnation(fingerprint)
        )
        if cycle is not None:
            self._detected.append(cycle)
            logger.log("cycles", "CYCLE_DETECTED", cycle.to_dict(), "WARNING")
        return cycle

    def _detect_repetition(self, fingerprint: StateFingerprint, seen: List[int]) -> Optional[DetectedCycle]:
        if len(seen) < 3:
            return None
        return DetectedCycle(
            type=CycleType.REPETITION,
            iterations=list(seen),
            fingerprint=fingerprint,
            severity=severity_for_count(len(seen)),
            suggested_action=self._suggest(fingerprint, CycleType.REPETITION),
        )

    def _detect_oscillation(self, fingerprint: StateFingerprint) -> Optional[DetectedCycle]:
        signatures = [fp.signature for fp in self._recent]
        for window in range(2, 5):
            if len(signatures) < window * 2:
                break
            current = signatures[-window:]
            previous = signatures[-window * 2:-window]
            if current == previous and len(set(current)) > 1:
                return DetectedCycle(
                    type=CycleType.OSCILLATION,
                    iterations=list(range(self.iteration - window * 2 + 1, self.iteration + 1)),
                    fingerprint=fingerprint,
                    severity=Severity.HIGH,
                    suggested_action=self._suggest(fingerprint, CycleType.OSCILLATION),
                )
        return None

    def _detect_stagnation(self, fingerprint: StateFingerprint) -> Optional[DetectedCycle]:
        if not fingerprint.file_operations:
            return None
        tool = fingerprint.tool_calls[-1]
        target = fingerprint.file_operations[-1]

        previous = list(self._recent)[-STAGNATION_WINDOW - 1:-1]
        hits = [fp.iteration for fp in previous if tool in fp.tool_calls and target in fp.file_operations]
        if len(hits) < STAGNATION_THRESHOLD:
            return None
        return DetectedCycle(
            type=CycleType.STAGNATION,
            iterations=hits + [self.iteration],
            fingerprint=fingerprint,
            severity=Severity.MEDIUM,
            suggested_action=self._suggest(fingerprint, CycleType.STAGNATION),
        )

    @staticmethod
    def _suggest(fingerprint: StateFingerprint, cycle_type: CycleType) -> BreakStrategy:
        last_tool = fingerprint.tool_calls[-1]

        if cycle_type == CycleType.REPETITION:
            alternative = alternative_tool(last_tool)
            if alternative:
                return BreakStrategy(
                    StrategyType.ALTERNATIVE_TOOL,
                    f"You have repeated {last_tool} with the same arguments. Try {alternative} instead.",
                    {"current_tool": last_tool, "suggested_tool": alternative},
                )
            return BreakStrategy(
                StrategyType.INCREASE_TEMPERATURE,
                f"You have repeated {last_tool} with the same arguments. Take a different approach.",
                {"current": 0.3, "suggested": 0.7},
            )

        if cycle_type == CycleType.OSCILLATION:
            return BreakStrategy(
                StrategyType.RESET_CONTEXT,
                "You are alternating between the same actions without progress. "
                "Step back and summarize what you know before acting again.",
                {"preserve_files": list(fingerprint.file_operations)},
            )

        if fingerprint.file_operations:
            target = fingerprint.file_operations[0]
            return BreakStrategy(
                StrategyType.ASK_CLARIFICATION,
                f"I've tried {last_tool} on {target} multiple times. "
                "What specific change are you looking for?",
                {"question": f"What specific change is needed in {target}?"},
            )
        return BreakStrategy(
            StrategyType.ESCALATE_TO_USER,
            "The agent seems stuck in a loop. Please provide more specific guidance.",
        )

    @property
    def detected_cycles(self) -> List[DetectedCycle]:
        return list(self._detected)

    def is_in_cycle(self) -> bool:
        return bool(self._detected)

    def most_recent_cycle(self) -> Optional[DetectedCycle]:
        return self._detected[-1] if self._detected else None

    def get_statistics(self) -> Dict[str, Any]:
        """Statistics for the cycles detected in the current run."""
        return cycle_statistics(self._detected)

    def clear_history(self) -> None:
        self._occurrences.clear()
        self._recent.clear()
        self._detected = []
