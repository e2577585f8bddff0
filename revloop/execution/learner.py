#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Correction history and adaptive tool selection.

Every failed (and later recovered) tool call can be recorded as a
``CorrectionRecord``. Records are clustered into ``ErrorPattern`` objects by a
normalized error signature, and similar past errors are used to suggest a
different tool when the current one has a worse track record.
"""

import json
import re
import threading
import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from revloop import config
from revloop.debug_logger import get_logger
from revloop.tools.fuzzy import levenshtein


logger = get_logger()

SIGNATURE_LENGTH = 100
SIMILARITY_THRESHOLD = 0.7
MAX_SIMILAR = 10
MIN_SIMILAR_FOR_ADAPTATION = 3
ADAPTATION_MIN_SUCCESS = 0.6


class Outcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


@dataclass
class ErrorInfo:
    type: str
    message: str
    file_path: Optional[str] = None
    line_number: Optional[int] = None


@dataclass
class AttemptedFix:
    tool_name: str
    params: Dict[str, Any] = field(default_factory=dict)
    description: str = ""


@dataclass
class CorrectionContext:
    language: Optional[str] = None
    file_type: Optional[str] = None
    task_category: Optional[str] = None
    related_files: List[str] = field(default_factory=list)


@dataclass
class CorrectionRecord:
    error: ErrorInfo
    attempted_fix: AttemptedFix
    outcome: Outcome
    context: CorrectionContext = field(default_factory=CorrectionContext)
    final_solution: Optional[AttemptedFix] = None
    learning_tags: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: f"corr-{uuid.uuid4().hex[:12]}")
    timestamp: float = field(default_factory=time.time)

    @property
    def signature(self) -> str:
        return normalize_error(self.error.type, self.error.message)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CorrectionRecord':
        final = data.get("final_solution")
        return cls(
            error=ErrorInfo(**data["error"]),
            attempted_fix=AttemptedFix(**data["attempted_fix"]),
            outcome=Outcome(data["outcome"]),
            context=CorrectionContext(**data.get("context", {})),
            final_solution=AttemptedFix(**final) if final else None,
            learning_tags=list(data.get("learning_tags", [])),
            id=data.get("id") or f"corr-{uuid.uuid4().hex[:12]}",
            timestamp=data.get("timestamp", time.time()),
        )


@dataclass
class SolutionStats:
    description: str
    usage_count: int = 0
    successes: int = 0

    @property
    def success_rate(self) -> float:
        return self.successes / self.usage_count if self.usage_count else 0.0


@dataclass
class ErrorPattern:
    """Aggregate of every correction sharing one error signature."""
    signature: str
    frequency: int = 0
    successes: int = 0
    tool_outcomes: Dict[str, List[int]] = field(default_factory=dict)  # tool -> [successes, uses]
    solutions: Dict[str, SolutionStats] = field(default_factory=dict)
    last_occurred: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.frequency if self.frequency else 0.0

    @property
    def recommended_tools(self) -> List[str]:
        """Tools ordered by success rate, then by how often they were tried."""
        ranked = sorted(
            self.tool_outcomes.items(),
            key=lambda item: (item[1][0] / item[1][1] if item[1][1] else 0.0, item[1][1]),
            reverse=True,
        )
        return [tool for tool, _ in ranked]

    @property
    def common_solutions(self) -> List[SolutionStats]:
        return sorted(self.solutions.values(), key=lambda s: (s.success_rate, s.usage_count), reverse=True)

    def add(self, record: CorrectionRecord) -> None:
        success = record.outcome == Outcome.SUCCESS
        self.frequency += 1
        self.successes += success
        self.last_occurred = record.timestamp

        counts = self.tool_outcomes.setdefault(record.attempted_fix.tool_name, [0, 0])
        counts[0] += success
        counts[1] += 1

        desc = record.attempted_fix.description or record.attempted_fix.tool_name
        stats = self.solutions.setdefault(desc, SolutionStats(desc))
        stats.usage_count += 1
        stats.successes += success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "frequency": self.frequency,
            "successes": self.successes,
            "tool_outcomes": self.tool_outcomes,
            "solutions": [asdict(s) for s in self.solutions.values()],
            "last_occurred": self.last_occurred,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorPattern':
        solutions = [SolutionStats(**s) for s in data.get("solutions", [])]
        return cls(
            signature=data["signature"],
            frequency=data.get("frequency", 0),
            successes=data.get("successes", 0),
            tool_outcomes={k: list(v) for k, v in data.get("tool_outcomes", {}).items()},
            solutions={s.description: s for s in solutions},
            last_occurred=data.get("last_occurred", 0.0),
        )


@dataclass
class RecommendedApproach:
    tool: Optional[str]
    confidence: float
    similar_cases: int
    solution: Optional[str] = None


@dataclass
class AdaptationSuggestion:
    original_tool: str
    suggested_tool: str
    confidence: float
    reason: str
    based_on_records: int
    type: str = "tool_preference"


_QUOTES = re.compile(r"[\"'`]")
_DIGITS = re.compile(r"\d+")
_SPACES = re.compile(r"\s+")


def normalize_error(error_type: str, message: str) -> str:
    """Clustering key: lower-cased type and message, quotes stripped, digits collapsed."""
    text = _QUOTES.sub("", (message or "").lower())
    text = _DIGITS.sub("#", text)
    text = _SPACES.sub(" ", text).strip()
    return f"{(error_type or '').lower()}:{text[:SIGNATURE_LENGTH]}"


def similarity(a: str, b: str) -> float:
    """1 - edit distance normalized by the longer string."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein(a, b) / longest


def classify_tool_error(message: str) -> str:
    """Coarse error type for a failed tool result message."""
    lowered = (message or "").lower()
    if lowered.startswith("permission denied"):
        return "permission"
    if lowered.startswith("tool not found"):
        return "unknown_tool"
    if lowered.startswith("missing required"):
        return "validation"
    if "not found" in lowered or "no such file" in lowered or "does not exist" in lowered:
        return "not_found"
    if "timed out" in lowered or "timeout" in lowered:
        return "timeout"
    head = message.split(":", 1)[0] if message and ":" in message else ""
    return head.strip().lower() if head and " " not in head.strip() else "tool_error"


class LearningStore:
    """Bounded correction history plus aggregated error patterns."""

    def __init__(self, max_history: int = config.LEARNING_MAX_HISTORY,
                 storage_path: Optional[Path] = None):
        self.max_history = max_history
        self.storage_path = storage_path
        self._history: Deque[CorrectionRecord] = deque(maxlen=max_history)
        self._patterns: Dict[str, ErrorPattern] = {}
        self._lock = threading.RLock()

    @classmethod
    def persistent(cls) -> 'LearningStore':
        """Store backed by ``.revloop/memory/learning.json``."""
        store = cls(storage_path=config.MEMORY_DIR / "learning.json")
        store.load()
        return store

    def __len__(self) -> int:
        return len(self._history)

    @property
    def records(self) -> List[CorrectionRecord]:
        return list(self._history)

    def record_correction(self, record: CorrectionRecord) -> CorrectionRecord:
        with self._lock:
            self._history.append(record)
            signature = record.signature
            pattern = self._patterns.get(signature)
            if pattern is None:
                pattern = ErrorPattern(signature=signature)
                self._patterns[signature] = pattern
            pattern.add(record)

        logger.log("learning", "CORRECTION_RECORDED", {
            "error_type": record.error.type,
            "outcome": record.outcome.value,
            "tool": record.attempted_fix.tool_name,
        }, "DEBUG")
        return record

    def find_similar_corrections(self, error_type: str, message: str,
                                 language: Optional[str] = None,
                                 file_type: Optional[str] = None) -> List[CorrectionRecord]:
        """Most recent records whose signature is similar and whose context agrees."""
        signature = normalize_error(error_type, message)
        with self._lock:
            history = list(self._history)

        matches = []
        for record in history:
            if language and record.context.language and language != record.context.language:
                continue
            if file_type and record.context.file_type and file_type != record.context.file_type:
                continue
            if similarity(signature, record.signature) > SIMILARITY_THRESHOLD:
                matches.append(record)

        matches.sort(key=lambda r: r.timestamp, reverse=True)
        return matches[:MAX_SIMILAR]

    def get_recommended_approach(self, error_type: str, message: str) -> RecommendedApproach:
        """Best known tool for this exact error signature, once it has been seen twice."""
        pattern = self._patterns.get(normalize_error(error_type, message))
        if pattern is None or pattern.frequency < 2:
            return RecommendedApproach(tool=None, confidence=0.0, similar_cases=0)

        tools = pattern.recommended_tools
        solutions = pattern.common_solutions
        return RecommendedApproach(
            tool=tools[0] if tools else None,
            confidence=pattern.success_rate,
            similar_cases=pattern.frequency,
            solution=solutions[0].description if solutions else None,
        )

    def get_adaptive_tool_selection(self, current_tool: str, error_type: str,
                                    message: str) -> Optional[AdaptationSuggestion]:
        """Suggest a different tool when similar past errors favour one.

        Requires at least three similar corrections and an alternative whose
        success rate is above 0.6 and better than the current tool's.
        """
        similar = self.find_similar_corrections(error_type, message)
        if len(similar) < MIN_SIMILAR_FOR_ADAPTATION:
            return None

        outcomes: Dict[str, List[int]] = {}
        for record in similar:
            counts = outcomes.setdefault(record.attempted_fix.tool_name, [0, 0])
            counts[0] += record.outcome == Outcome.SUCCESS
            counts[1] += 1

        def rate(tool: str) -> float:
            successes, total = outcomes.get(tool, (0, 0))
            return successes / total if total else 0.0

        best_tool, best_rate = None, 0.0
        for tool in outcomes:
            if tool != current_tool and rate(tool) > best_rate:
                best_tool, best_rate = tool, rate(tool)

        if best_tool is None or best_rate <= ADAPTATION_MIN_SUCCESS or best_rate <= rate(current_tool):
            return None

        suggestion = AdaptationSuggestion(
            original_tool=current_tool,
            suggested_tool=best_tool,
            confidence=best_rate,
            reason=f"{best_tool} succeeded {best_rate * 100:.0f}% of the time for similar errors",
            based_on_records=len(similar),
        )
        logger.log("learning", "ADAPTATION_SUGGESTED", asdict(suggestion))
        return suggestion

    def get_error_patterns(self) -> List[ErrorPattern]:
        return sorted(self._patterns.values(), key=lambda p: p.frequency, reverse=True)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            history = list(self._history)
            pattern_count = len(self._patterns)

        total = len(history)
        successes = sum(1 for r in history if r.outcome == Outcome.SUCCESS)
        error_counts: Dict[str, int] = {}
        tool_stats: Dict[str, List[int]] = {}
        for record in history:
            error_counts[record.error.type] = error_counts.get(record.error.type, 0) + 1
            stats = tool_stats.setdefault(record.attempted_fix.tool_name, [0, 0])
            stats[0] += record.outcome == Outcome.SUCCESS
            stats[1] += 1

        common = sorted(error_counts.items(), key=lambda item: item[1], reverse=True)[:5]
        tool_rates = sorted(
            ((tool, s / n if n else 0.0) for tool, (s, n) in tool_stats.items()),
            key=lambda item: item[1],
            reverse=True,
        )[:5]
        return {
            "total_corrections": total,
            "success_rate": successes / total if total else 0.0,
            "patterns_learned": pattern_count,
            "most_common_errors": [{"type": t, "count": c} for t, c in common],
            "most_successful_tools": [{"tool": t, "success_rate": r} for t, r in tool_rates],
        }

    def export_data(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "corrections": [r.to_dict() for r in self._history],
                "patterns": [p.to_dict() for p in self._patterns.values()],
            }

    def import_data(self, data: Dict[str, Any]) -> None:
        records = [CorrectionRecord.from_dict(item) for item in data.get("corrections", [])]
        patterns = [ErrorPattern.from_dict(item) for item in data.get("patterns", [])]
        with self._lock:
            self._history = deque(records[-self.max_history:], maxlen=self.max_history)
            self._patterns = {p.signature: p for p in patterns}
        logger.log("learning", "IMPORTED", {"corrections": len(records), "patterns": len(patterns)})

    def save(self) -> Optional[Path]:
        if self.storage_path is None:
            return None
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self.storage_path.write_text(json.dumps(self.export_data(), indent=2, default=str),
                                         encoding="utf-8")
        except OSError as e:
            logger.log("learning", "SAVE_ERROR", {"error": str(e)}, "WARNING")
            return None
        return self.storage_path

    def load(self) -> bool:
        if self.storage_path is None or not self.storage_path.exists():
            return False
        try:
            self.import_data(json.loads(self.storage_path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.log("learning", "LOAD_ERROR", {"error": str(e)}, "WARNING")
            return False
        return True

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
            self._patterns.clear()
        logger.log("learning", "RESET", {})
