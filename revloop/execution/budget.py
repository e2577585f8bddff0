#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Dynamic iteration budget allocation.

A run starts with a budget derived from the complexity estimate. The loop
calls ``check_and_adjust`` once per iteration with its progress metrics; the
allocator may grant a one-time bonus when the budget runs out, stop the run
early when progress has stalled, or compress the budget when things are
going well.
"""

import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from revloop import config
from revloop.debug_logger import get_logger
from revloop.execution.complexity import ComplexityEstimator, ComplexityLevel


logger = get_logger()

# Compression never leaves fewer than this many iterations.
MIN_CONTINUATION_SLACK = 3


@dataclass
class AllocationConfig:
    base_iterations: int = config.BUDGET_BASE
    min_iterations: int = config.BUDGET_MIN
    max_iterations: int = config.BUDGET_MAX
    bonus_threshold: float = config.BUDGET_BONUS_THRESHOLD
    compression_factor: float = config.BUDGET_COMPRESSION_FACTOR


@dataclass
class IterationBudget:
    total: int
    used: int = 0
    remaining: int = 0
    allocated: int = 0
    bonus: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "used": self.used,
            "remaining": self.remaining,
            "allocated": self.allocated,
            "bonus": self.bonus,
        }


@dataclass
class ProgressMetrics:
    iteration: int
    success_rate: float = 1.0
    confidence: float = 0.5
    stagnation_count: int = 0
    complexity: Optional[ComplexityLevel] = None


@dataclass
class AllocationDecision:
    should_continue: bool
    new_budget: int
    reason: str
    confidence: float


@dataclass
class BudgetGrant:
    granted: bool
    amount: int
    new_total: int


@dataclass
class _Verdict:
    grant: bool
    amount: int = 0
    reason: str = ""
    confidence: float = 0.0


class IterationBudgetAllocator:
    """Owns one ``IterationBudget`` per active run id."""

    def __init__(self, estimator: Optional[ComplexityEstimator] = None,
                 allocation_config: Optional[AllocationConfig] = None):
        self.estimator = estimator or ComplexityEstimator()
        self.config = allocation_config or AllocationConfig()
        self._budgets: Dict[str, IterationBudget] = {}
        self._lock = threading.Lock()

    def allocate(self, run_id: str, task_text: str,
                 files: Optional[Sequence[str]] = None) -> IterationBudget:
        """Allocate the initial budget for a run from its complexity estimate."""
        estimate = self.estimator.estimate(task_text, files=files)
        total = max(self.config.min_iterations,
                    min(self.config.max_iterations, estimate.estimated_iterations))
        budget = IterationBudget(total=total, remaining=total, allocated=total)
        with self._lock:
            self._budgets[run_id] = budget

        logger.log("budget", "ALLOCATED", {
            "run_id": run_id,
            "total": total,
            "complexity": estimate.level.value,
        })
        return budget

    def check_and_adjust(self, run_id: str, metrics: ProgressMetrics) -> AllocationDecision:
        """Decide whether the run may continue, adjusting its budget as needed."""
        with self._lock:
            budget = self._budgets.get(run_id)
            if budget is None:
                return AllocationDecision(False, 0, "No budget found for run", 0.0)

            budget.used = metrics.iteration
            budget.remaining = budget.total - budget.used

            if budget.remaining <= 0:
                decision = self._on_exhausted(budget, metrics)
                logger.log("budget", "EXHAUSTED", {
                    "run_id": run_id,
                    "continue": decision.should_continue,
                    "reason": decision.reason,
                    "total": budget.total,
                })
                return decision

            stop = self._check_early_termination(metrics)
            if stop is not None:
                logger.log("budget", "EARLY_STOP", {"run_id": run_id, "reason": stop.reason}, "WARNING")
                return AllocationDecision(False, budget.total, stop.reason, stop.confidence)

            if (metrics.success_rate > self.config.bonus_threshold
                    and metrics.iteration > budget.total * 0.5):
                compressed = math.floor(budget.total * self.config.compression_factor)
                if compressed >= budget.used + MIN_CONTINUATION_SLACK and compressed < budget.total:
                    budget.total = compressed
                    budget.remaining = compressed - budget.used
                    logger.log("budget", "COMPRESSED", {"run_id": run_id, "total": compressed})
                    return AllocationDecision(
                        True, budget.total, "Budget compressed - task progressing well",
                        metrics.success_rate,
                    )

            return AllocationDecision(
                True, budget.total,
                f"Continuing with {budget.remaining} iterations remaining",
                metrics.confidence,
            )

    def _on_exhausted(self, budget: IterationBudget, metrics: ProgressMetrics) -> AllocationDecision:
        if budget.bonus > 0:
            return AllocationDecision(False, budget.total, "Budget exhausted", 0.9)

        verdict = self._consider_bonus(metrics)
        if not verdict.grant:
            return AllocationDecision(False, budget.total, f"Budget exhausted: {verdict.reason}", 0.9)

        budget.bonus = verdict.amount
        budget.total += verdict.amount
        budget.remaining = budget.total - budget.used
        return AllocationDecision(
            True, budget.total, f"Bonus iterations granted: {verdict.reason}", verdict.confidence,
        )

    @staticmethod
    def _consider_bonus(metrics: ProgressMetrics) -> _Verdict:
        if metrics.stagnation_count > 3:
            return _Verdict(False, reason="Too much stagnation", confidence=0.3)
        if metrics.confidence > 0.7 and metrics.success_rate > 0.6:
            return _Verdict(True, 5, "High confidence and good success rate", metrics.confidence)
        if metrics.success_rate > 0.4:
            return _Verdict(True, 3, "Moderate progress, small extension granted", 0.5)
        return _Verdict(False, reason="Insufficient progress to justify bonus", confidence=0.2)

    @staticmethod
    def _check_early_termination(metrics: ProgressMetrics) -> Optional[_Verdict]:
        if metrics.stagnation_count > 5:
            return _Verdict(True, reason="Excessive stagnation detected", confidence=0.9)
        if metrics.confidence < 0.2 and metrics.iteration > 10:
            return _Verdict(True, reason="Very low confidence after significant iterations", confidence=0.8)
        if metrics.success_rate < 0.1 and metrics.iteration > 15:
            return _Verdict(True, reason="Extremely low success rate", confidence=0.85)
        return None

    def request_additional_budget(self, run_id: str, reason: str, amount: int) -> BudgetGrant:
        """Grant extra iterations, at most half of the configured maximum."""
        with self._lock:
            budget = self._budgets.get(run_id)
            if budget is None:
                return BudgetGrant(False, 0, 0)

            granted = max(0, min(amount, math.floor(self.config.max_iterations * 0.5)))
            budget.bonus += granted
            budget.total += granted
            budget.remaining += granted

        logger.log("budget", "ADDITIONAL_GRANTED", {
            "run_id": run_id,
            "amount": granted,
            "reason": reason,
            "total": budget.total,
        })
        return BudgetGrant(granted > 0, granted, budget.total)

    def get_budget(self, run_id: str) -> Optional[IterationBudget]:
        return self._budgets.get(run_id)

    def get_utilization(self, run_id: str) -> Optional[Dict[str, float]]:
        budget = self._budgets.get(run_id)
        if budget is None:
            return None
        return {
            "used": budget.used,
            "remaining": budget.remaining,
            "utilization_rate": budget.used / budget.total if budget.total else 0.0,
            "efficiency": budget.allocated / budget.used if budget.used else 0.0,
        }

    def release(self, run_id: str) -> None:
        with self._lock:
            self._budgets.pop(run_id, None)
        logger.log("budget", "RELEASED", {"run_id": run_id}, "DEBUG")

    def active_budgets(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [{"run_id": run_id, "budget": budget.to_dict()}
                    for run_id, budget in self._budgets.items()]
