#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Per-tool performance tracking and confidence scoring.

Every tool execution updates a ``ToolPerformance`` record. Confidence for a
prospective call blends historical success, how well the call's context
matches recent uses, a duration penalty and a recency bonus. The scores feed
auto-approval and tool ranking.
"""

import json
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from revloop import config
from revloop.debug_logger import get_logger
from revloop.tools.permissions import DESTRUCTIVE_TOOLS


logger = get_logger()

FULL_CONFIDENCE_SAMPLES = 20
MIN_SAMPLES = 3
MAX_HISTORY_PER_TOOL = 100
CONTEXT_WINDOW = 20
# Average duration (seconds) at which the duration factor reaches zero.
SLOW_TOOL_SECONDS = 10.0

FACTOR_WEIGHTS = {
    "historical_success": 0.4,
    "context_match": 0.3,
    "complexity": 0.2,
    "recency": 0.1,
}

# (max hours since last use, score)
RECENCY_STEPS = [(1, 1.0), (24, 0.9), (168, 0.8), (720, 0.7)]


@dataclass
class ToolPerformance:
    tool_name: str
    total_uses: int = 0
    successes: int = 0
    failures: int = 0
    cancellations: int = 0
    average_duration: float = 0.0
    last_used: float = 0.0
    success_rate: float = 0.0
    confidence: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ToolPerformance':
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


@dataclass
class UsageContext:
    """Context a tool call is made in, used for similarity against history."""
    file_extension: Optional[str] = None
    task_category: Optional[str] = None

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]], task_category: Optional[str] = None) -> 'UsageContext':
        path = str((params or {}).get("path") or "")
        ext = (Path(path).suffix.lower() or None) if path else None
        return cls(file_extension=ext, task_category=task_category)


@dataclass
class ExecutionOutcome:
    success: bool
    duration: float = 0.0
    error: Optional[str] = None
    cancelled: bool = False


@dataclass
class ConfidenceScore:
    score: float
    factors: Dict[str, float]
    recommended: bool
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 3),
            "factors": {k: round(v, 3) for k, v in self.factors.items()},
            "recommended": self.recommended,
            "reason": self.reason,
        }


@dataclass
class AutoApproval:
    approved: bool
    reason: str


@dataclass
class ToolSuggestion:
    tool: str
    confidence: ConfidenceScore
    reason: str = ""


@dataclass
class _HistoryEntry:
    timestamp: float
    context: UsageContext
    outcome: ExecutionOutcome


def _neutral_score() -> ConfidenceScore:
    return ConfidenceScore(
        score=0.5,
        factors={name: 0.5 for name in FACTOR_WEIGHTS},
        recommended=True,
        reason="Insufficient data - neutral confidence",
    )


class ConfidenceScorer:
    """Tracks tool outcomes and scores prospective tool calls."""

    def __init__(self, storage_path: Optional[Path] = None,
                 clock: Callable[[], float] = time.time):
        self.storage_path = storage_path
        self._clock = clock
        self._performance: Dict[str, ToolPerformance] = {}
        self._history: Dict[str, Deque[_HistoryEntry]] = {}
        self._lock = threading.RLock()

    @classmethod
    def persistent(cls) -> 'ConfidenceScorer':
        """Scorer backed by ``.revloop/memory/tool_confidence.json``."""
        scorer = cls(storage_path=config.MEMORY_DIR / "tool_confidence.json")
        scorer.load()
        return scorer

    def record_execution(self, tool_name: str, outcome: ExecutionOutcome,
                         context: Optional[UsageContext] = None) -> ToolPerformance:
        """Fold one execution outcome into the tool's statistics."""
        now = self._clock()
        with self._lock:
            perf = self._performance.get(tool_name)
            if perf is None:
                perf = ToolPerformance(tool_name=tool_name)
                self._performance[tool_name] = perf

            perf.total_uses += 1
            perf.last_used = now
            if outcome.cancelled:
                perf.cancellations += 1
            elif outcome.success:
                perf.successes += 1
            else:
                perf.failures += 1

            perf.average_duration = (
                perf.average_duration * (perf.total_uses - 1) + outcome.duration
            ) / perf.total_uses

            completed = perf.successes + perf.failures
            if completed:
                perf.success_rate = perf.successes / completed
            perf.confidence = self._tool_confidence(perf)

            history = self._history.setdefault(tool_name, deque(maxlen=MAX_HISTORY_PER_TOOL))
            history.append(_HistoryEntry(now, context or UsageContext(), outcome))

        logger.log("confidence", "EXECUTION_RECORDED", {
            "tool": tool_name,
            "success": outcome.success,
            "success_rate": round(perf.success_rate, 2),
            "confidence": round(perf.confidence, 2),
        }, "DEBUG")
        return perf

    @staticmethod
    def _tool_confidence(perf: ToolPerformance) -> float:
        sample_factor = min(perf.total_uses / FULL_CONFIDENCE_SAMPLES, 1.0)
        confidence = perf.success_rate * sample_factor + 0.5 * (1 - sample_factor)
        if perf.cancellations:
            confidence *= 1 - (perf.cancellations / perf.total_uses) * 0.3
        return max(0.1, min(0.95, confidence))

    def calculate_confidence(self, tool_name: str,
                             context: Optional[UsageContext] = None) -> ConfidenceScore:
        """Score a prospective call of ``tool_name``.

        Tools with fewer than three recorded uses get a neutral 0.5 score.
        """
        with self._lock:
            perf = self._performance.get(tool_name)
            if perf is None or perf.total_uses < MIN_SAMPLES:
                return _neutral_score()

            factors = {
                "historical_success": perf.success_rate,
                "context_match": self._context_match(tool_name, context),
                "complexity": max(0.0, 1 - perf.average_duration / SLOW_TOOL_SECONDS),
                "recency": self._recency(perf.last_used),
            }

        score = sum(factors[name] * weight for name, weight in FACTOR_WEIGHTS.items())

        if score >= 0.8:
            recommended, reason = True, "High confidence based on strong historical performance"
        elif score >= 0.6:
            recommended, reason = True, "Moderate confidence - tool has performed well"
        elif score >= 0.4:
            recommended, reason = False, "Low confidence - mixed results or insufficient data"
        else:
            recommended, reason = False, "Very low confidence - tool has poor track record"

        return ConfidenceScore(score=score, factors=factors, recommended=recommended, reason=reason)

    def _context_match(self, tool_name: str, context: Optional[UsageContext]) -> float:
        if context is None:
            return 0.5
        history = self._history.get(tool_name)
        if not history:
            return 0.5

        recent = list(history)[-CONTEXT_WINDOW:]
        matching = 0
        for entry in recent:
            compared = 0
            matched = 0
            if context.file_extension and entry.context.file_extension:
                compared += 1
                matched += context.file_extension == entry.context.file_extension
            if context.task_category and entry.context.task_category:
                compared += 1
                matched += context.task_category == entry.context.task_category
            if compared and matched / compared >= 0.5:
                matching += 1
        return matching / len(recent)

    def _recency(self, last_used: float) -> float:
        hours = (self._clock() - last_used) / 3600
        for limit, score in RECENCY_STEPS:
            if hours < limit:
                return score
        return 0.6

    def get_best_tool(self, candidates: Sequence[str],
                      context: Optional[UsageContext] = None) -> Optional[ToolSuggestion]:
        """Highest-scoring candidate; ties keep the earliest."""
        best: Optional[ToolSuggestion] = None
        for tool in candidates:
            score = self.calculate_confidence(tool, context)
            if best is None or score.score > best.confidence.score:
                best = ToolSuggestion(tool, score)
        return best

    def get_recommendations(self, task_category: str, available_tools: Sequence[str],
                            top_n: int = 3) -> List[ToolSuggestion]:
        context = UsageContext(task_category=task_category)
        scored = [ToolSuggestion(tool, self.calculate_confidence(tool, context)) for tool in available_tools]
        scored.sort(key=lambda s: s.confidence.score, reverse=True)
        return scored[:top_n]

    def get_adaptive_suggestions(self, current_tool: str, context: Optional[UsageContext],
                                 alternatives: Sequence[str]) -> List[ToolSuggestion]:
        """Up to two alternatives that outscore ``current_tool`` when it scores below 0.7."""
        current = self.calculate_confidence(current_tool, context)
        if current.score >= 0.7:
            return []

        better = []
        for tool in alternatives:
            if tool == current_tool:
                continue
            score = self.calculate_confidence(tool, context)
            if score.score > current.score:
                better.append(ToolSuggestion(
                    tool, score,
                    f"Better historical success rate ({score.score * 100:.0f}% vs {current.score * 100:.0f}%)",
                ))
        better.sort(key=lambda s: s.confidence.score, reverse=True)
        return better[:2]

    def should_auto_approve(self, tool_name: str, params: Optional[Dict[str, Any]] = None,
                            threshold: float = config.AUTO_APPROVE_THRESHOLD) -> AutoApproval:
        if tool_name in DESTRUCTIVE_TOOLS:
            return AutoApproval(False, "Destructive operation requires manual approval")

        score = self.calculate_confidence(tool_name, UsageContext.from_params(params))
        if score.score >= threshold and score.recommended:
            return AutoApproval(True, f"High confidence ({score.score * 100:.0f}%) based on historical performance")
        return AutoApproval(False, f"Low confidence ({score.score * 100:.0f}%) - requires manual approval")

    def get_performance(self, tool_name: Optional[str] = None):
        """One tool's record, or all records sorted by confidence."""
        with self._lock:
            if tool_name is not None:
                return self._performance.get(tool_name)
            return sorted(self._performance.values(), key=lambda p: p.confidence, reverse=True)

    def export_data(self) -> Dict[str, Any]:
        performance = self.get_performance()
        total = sum(p.total_uses for p in performance)
        successes = sum(p.successes for p in performance)
        return {
            "performance": [p.to_dict() for p in performance],
            "summary": {
                "total_executions": total,
                "overall_success_rate": successes / total if total else 0.0,
                "top_performing_tools": [p.tool_name for p in performance if p.confidence >= 0.8],
                "problematic_tools": [
                    p.tool_name for p in performance if p.confidence < 0.5 and p.total_uses >= 5
                ],
            },
        }

    def import_data(self, data: Dict[str, Any]) -> int:
        records = [ToolPerformance.from_dict(item) for item in data.get("performance", [])]
        with self._lock:
            for perf in records:
                self._performance[perf.tool_name] = perf
        logger.log("confidence", "IMPORTED", {"tool_count": len(records)})
        return len(records)

    def save(self) -> Optional[Path]:
        if self.storage_path is None:
            return None
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self.storage_path.write_text(json.dumps(self.export_data(), indent=2), encoding="utf-8")
        except OSError as e:
            logger.log("confidence", "SAVE_ERROR", {"error": str(e)}, "WARNING")
            return None
        return self.storage_path

    def load(self) -> int:
        if self.storage_path is None or not self.storage_path.exists():
            return 0
        try:
            return self.import_data(json.loads(self.storage_path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.log("confidence", "LOAD_ERROR", {"error": str(e)}, "WARNING")
            return 0

    def reset(self) -> None:
        with self._lock:
            self._performance.clear()
            self._history.clear()
        logger.log("confidence", "RESET", {})
