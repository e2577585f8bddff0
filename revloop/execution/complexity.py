#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Task complexity estimation.

Five bounded sub-scores (scope, uncertainty, dependencies, risk, novelty) are
combined into a 1-100 score, bucketed into a level, and mapped to an
iteration budget, a duration estimate and a recommended approach.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from revloop.debug_logger import get_logger
from revloop.execution.intent import IntentClassification, IntentClassifier, round_half_up


logger = get_logger()


class ComplexityLevel(Enum):
    TRIVIAL = "trivial"
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    VERY_COMPLEX = "very_complex"


class Approach(Enum):
    DIRECT = "direct"
    STEP_BY_STEP = "step_by_step"
    EXPLORATORY = "exploratory"
    COLLABORATIVE = "collaborative"


FACTOR_WEIGHTS = {
    "scope": 0.25,
    "uncertainty": 0.25,
    "dependencies": 0.20,
    "risk": 0.20,
    "novelty": 0.10,
}

# (upper bound inclusive, level)
LEVEL_THRESHOLDS = [
    (15, ComplexityLevel.TRIVIAL),
    (35, ComplexityLevel.SIMPLE),
    (55, ComplexityLevel.MODERATE),
    (75, ComplexityLevel.COMPLEX),
]

BASE_ITERATIONS = {
    ComplexityLevel.TRIVIAL: 2,
    ComplexityLevel.SIMPLE: 5,
    ComplexityLevel.MODERATE: 10,
    ComplexityLevel.COMPLEX: 20,
    ComplexityLevel.VERY_COMPLEX: 35,
}

# minutes
BASE_DURATION = {
    ComplexityLevel.TRIVIAL: 5,
    ComplexityLevel.SIMPLE: 15,
    ComplexityLevel.MODERATE: 45,
    ComplexityLevel.COMPLEX: 120,
    ComplexityLevel.VERY_COMPLEX: 300,
}

MAX_ITERATIONS = 50

TRACKED_KEYWORDS = [
    "refactor", "create", "implement", "fix", "debug", "test", "document", "optimize",
    "research", "investigate", "architecture", "database", "api", "security", "performance",
    "import", "dependency", "component", "module", "function", "class", "interface",
    "error", "production", "external", "new technology", "algorithm",
]
DEPENDENCY_KEYWORDS = ["import", "dependency", "api", "database", "external"]
VAGUE_KEYWORDS = ["fix", "improve", "update", "clean"]

_FILE_WORDS = re.compile(r"\b(file|files|component|components|module|modules)\b", re.IGNORECASE)


@dataclass
class ComplexityFactors:
    scope: int
    uncertainty: int
    dependencies: int
    risk: int
    novelty: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "scope": self.scope,
            "uncertainty": self.uncertainty,
            "dependencies": self.dependencies,
            "risk": self.risk,
            "novelty": self.novelty,
        }


@dataclass
class ComplexityEstimate:
    level: ComplexityLevel
    score: int
    factors: ComplexityFactors
    estimated_iterations: int
    estimated_duration_minutes: int
    approach: Approach
    confidence: float
    intent: Optional[IntentClassification] = None
    reasoning: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "score": self.score,
            "factors": self.factors.to_dict(),
            "estimated_iterations": self.estimated_iterations,
            "estimated_duration_minutes": self.estimated_duration_minutes,
            "approach": self.approach.value,
            "confidence": round(self.confidence, 2),
            "category": self.intent.category.value if self.intent else None,
            "reasoning": list(self.reasoning),
        }


@dataclass
class ComplexityComparison:
    harder: ComplexityEstimate
    difference: int
    factor: str


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def score_to_level(score: int) -> ComplexityLevel:
    for bound, level in LEVEL_THRESHOLDS:
        if score <= bound:
            return level
    return ComplexityLevel.VERY_COMPLEX


class ComplexityEstimator:
    """Estimate how hard a task is from its text and a little context."""

    def __init__(self, classifier: Optional[IntentClassifier] = None):
        self.classifier = classifier

    def estimate(
        self,
        task: str,
        files: Optional[Sequence[str]] = None,
        existing_code: Optional[bool] = None,
        has_tests: Optional[bool] = None,
        intent: Optional[IntentClassification] = None,
    ) -> ComplexityEstimate:
        """Estimate complexity.

        Args:
            task: Free-text instruction
            files: Files known to be in scope; overrides the word-count guess
            existing_code: False when there is no prior code to build on
            has_tests: True when the affected code is covered by tests
            intent: Pre-computed classification (computed here if a classifier is set)
        """
        text = task.lower()
        if intent is None and self.classifier is not None:
            intent = self.classifier.classify(task)

        file_count = len(files) if files else (len(_FILE_WORDS.findall(task)) or 1)
        keywords = [k for k in TRACKED_KEYWORDS if k in text]
        reasoning: List[str] = []

        scope = _clamp(file_count, 1, 10)
        if "refactor" in keywords:
            scope += 2
            reasoning.append("refactoring widens scope")
        if "architecture" in keywords:
            scope += 3
            reasoning.append("architectural change widens scope")

        uncertainty = 5
        if "investigate" in keywords:
            uncertainty += 3
        if "debug" in keywords:
            uncertainty += 2
        if "error" in keywords:
            uncertainty += 2
        if existing_code is False:
            uncertainty += 2
            reasoning.append("no existing code to build on")

        dependencies = min(10, sum(1 for k in keywords if k in DEPENDENCY_KEYWORDS) * 2 + 3)

        risk = 3
        if "production" in keywords:
            risk += 4
        if "database" in keywords:
            risk += 3
        if "security" in keywords:
            risk += 4
        if not has_tests:
            risk += 2
            reasoning.append("no test coverage known")

        novelty = 3
        if "research" in keywords:
            novelty += 4
        if "new technology" in keywords:
            novelty += 3
        if "algorithm" in keywords:
            novelty += 2

        factors = ComplexityFactors(
            scope=int(min(10, scope)),
            uncertainty=min(10, uncertainty),
            dependencies=min(10, dependencies),
            risk=min(10, risk),
            novelty=min(10, novelty),
        )

        weighted = sum(getattr(factors, name) * weight for name, weight in FACTOR_WEIGHTS.items())
        score = int(_clamp(round_half_up(weighted * 10), 1, 100))
        level = score_to_level(score)

        iterations = BASE_ITERATIONS[level]
        duration = float(BASE_DURATION[level])
        if factors.uncertainty > 7:
            iterations += 5
            duration *= 1 + (factors.uncertainty - 5) * 0.1
            reasoning.append("high uncertainty adds iterations")
        if factors.risk > 7:
            iterations += 3
            duration *= 1.25
            reasoning.append("high risk adds iterations")
        iterations = min(iterations, MAX_ITERATIONS)

        if factors.uncertainty > 7:
            approach = Approach.EXPLORATORY
        elif factors.risk > 7:
            approach = Approach.COLLABORATIVE
        elif level in (ComplexityLevel.TRIVIAL, ComplexityLevel.SIMPLE):
            approach = Approach.DIRECT
        else:
            approach = Approach.STEP_BY_STEP

        confidence = 0.7
        if file_count > 5:
            confidence -= 0.1
        if file_count > 10:
            confidence -= 0.1
        if any(k in text for k in VAGUE_KEYWORDS):
            confidence -= 0.1

        estimate = ComplexityEstimate(
            level=level,
            score=score,
            factors=factors,
            estimated_iterations=iterations,
            estimated_duration_minutes=round_half_up(duration),
            approach=approach,
            confidence=_clamp(confidence, 0.4, 0.95),
            intent=intent,
            reasoning=reasoning,
        )
        logger.log("complexity", "ESTIMATED", estimate.to_dict(), "DEBUG")
        return estimate

    def compare(self, a: ComplexityEstimate, b: ComplexityEstimate) -> ComplexityComparison:
        """Which estimate is harder, by how much, and on which factor."""
        diff = b.score - a.score
        fa, fb = a.factors.to_dict(), b.factors.to_dict()
        factor = max(FACTOR_WEIGHTS, key=lambda name: abs(fb[name] - fa[name]))
        return ComplexityComparison(harder=b if diff > 0 else a, difference=abs(diff), factor=factor)
