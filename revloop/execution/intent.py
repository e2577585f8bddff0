#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Rule-based intent classification of user instructions.

Each category owns regex patterns (worth ``weight * 2`` per match) and
keywords (worth ``weight`` per substring hit). The highest aggregate score
wins. This is an approximate classifier: the weights and tables below are
tuning knobs, not ground truth.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from revloop.debug_logger import get_logger


logger = get_logger()

HISTORY_LIMIT = 100


class TaskCategory(Enum):
    CODE_GENERATION = "code_generation"
    CODE_MODIFICATION = "code_modification"
    CODE_REVIEW = "code_review"
    DEBUGGING = "debugging"
    REFACTORING = "refactoring"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    EXPLORATION = "exploration"
    QUESTION = "question"
    CONFIGURATION = "configuration"
    GIT_OPERATION = "git_operation"
    FILE_OPERATION = "file_operation"
    SEARCH = "search"
    COMPLEX_TASK = "complex_task"


class ComplexityTier(Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


@dataclass
class ClassificationRule:
    category: TaskCategory
    patterns: List[str]
    keywords: List[str]
    weight: float
    complexity: ComplexityTier
    preferred_tools: List[str]
    requires_confirmation: bool

    def __post_init__(self):
        self._compiled = [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def score(self, text: str) -> Tuple[float, bool]:
        total = 0.0
        matched = False
        for pattern in self._compiled:
            if pattern.search(text):
                total += self.weight * 2
                matched = True
        for keyword in self.keywords:
            if keyword.lower() in text:
                total += self.weight
                matched = True
        return total, matched


@dataclass
class IntentClassification:
    category: TaskCategory
    confidence: float
    complexity: ComplexityTier
    estimated_iterations: int
    preferred_tools: List[str]
    requires_confirmation: bool
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": round(self.confidence, 3),
            "complexity": self.complexity.value,
            "estimated_iterations": self.estimated_iterations,
            "preferred_tools": list(self.preferred_tools),
            "requires_confirmation": self.requires_confirmation,
            "keywords": list(self.keywords),
        }


C = TaskCategory
S, M, X = ComplexityTier.SIMPLE, ComplexityTier.MEDIUM, ComplexityTier.COMPLEX

DEFAULT_RULES: List[ClassificationRule] = [
    ClassificationRule(
        C.CODE_GENERATION,
        [r"\b(create|generate|implement|write|build)\b.*\b(function|class|component|module|api)\b",
         r"\badd\b.*\b(new|method|feature)\b",
         r"\bscaffold\b"],
        ["create", "generate", "implement", "write", "build", "add", "new", "function", "class"],
        1.0, M, ["writeFile", "createFile", "executeCode"], False),
    ClassificationRule(
        C.CODE_MODIFICATION,
        [r"\b(modify|update|change|edit|fix)\b.*\b(code|file|function|line)\b",
         r"\breplace\b.*\b(with|in)\b",
         r"\binsert\b.*\b(at|into)\b"],
        ["modify", "update", "change", "edit", "fix", "replace", "insert", "move"],
        1.0, M, ["readFile", "replaceInFile", "fuzzyReplace", "writeFile"], True),
    ClassificationRule(
        C.CODE_REVIEW,
        [r"\b(review|check|analyze|examine|inspect)\b.*\b(code|file|quality)\b",
         r"\b(find|identify)\b.*\b(issues|problems|bugs|smells)\b",
         r"\bcode\s+review\b"],
        ["review", "check", "analyze", "examine", "inspect", "find", "issues", "quality"],
        0.9, M, ["readFile", "searchFiles", "searchRelevantContext"], False),
    ClassificationRule(
        C.DEBUGGING,
        [r"\b(debug|trace|investigate|figure\s+out)\b.*\b(error|issue|bug|problem)\b",
         r"\bwhy\s+(is|does)\b",
         r"\bwhat.*\b(wrong|error|broken)\b"],
        ["debug", "trace", "investigate", "error", "bug", "issue", "problem", "fix"],
        1.1, X, ["readFile", "searchFiles", "executeCode", "runCommand"], False),
    ClassificationRule(
        C.REFACTORING,
        [r"\b(refactor|restructure|reorganize|clean\s+up)\b",
         r"\bextract\b.*\b(method|function|class|component)\b",
         r"\brename\b.*\b(variable|function|class)\b",
         r"\bmove\b.*\b(to|from)\b"],
        ["refactor", "restructure", "reorganize", "cleanup", "extract", "rename", "move"],
        1.0, X, ["readFile", "replaceInFile", "fuzzyReplace", "searchFiles", "writeFile"], True),
    ClassificationRule(
        C.TESTING,
        [r"\b(test|spec|unit\s+test|integration\s+test)\b",
         r"\bwrite\b.*\btest",
         r"\badd\b.*\b(test|coverage)\b"],
        ["test", "spec", "unit", "integration", "coverage", "mock", "assert"],
        0.9, M, ["readFile", "writeFile", "executeCode", "runCommand"], False),
    ClassificationRule(
        C.DOCUMENTATION,
        [r"\b(document|doc|comment|readme|changelog)\b",
         r"\badd\b.*\b(comment|docstring|jsdoc)\b",
         r"\bupdate\b.*\b(readme|docs)\b"],
        ["document", "doc", "comment", "readme", "changelog", "jsdoc", "docstring"],
        0.8, S, ["readFile", "writeFile", "replaceInFile"], False),
    ClassificationRule(
        C.EXPLORATION,
        [r"\b(explore|browse|look\s+at|see|show)\b.*\b(code|file|structure)\b",
         r"\bwhat.*\b(in|inside)\b",
         r"\bhow\s+is\b.*\b(organized|structured)\b"],
        ["explore", "browse", "look", "show", "see", "structure", "organization"],
        0.7, S, ["listDirectory", "getFileTree", "readFile", "searchFiles"], False),
    ClassificationRule(
        C.QUESTION,
        [r"^(what|how|why|when|where|who|can|could|would|will|is|are|does|do)\b",
         r"\?$"],
        ["what", "how", "why", "when", "where", "explain", "clarify"],
        0.8, S, ["searchRelevantContext", "readFile", "searchFiles"], False),
    ClassificationRule(
        C.CONFIGURATION,
        [r"\b(configure|setup|setting|config|environment|env)\b",
         r"\bupdate\b.*\b(config|setting|json|yaml|toml)\b",
         r"\bchange\b.*\b(port|host|url|endpoint)\b"],
        ["configure", "setup", "setting", "config", "environment", "port", "host"],
        0.9, S, ["readFile", "writeFile", "replaceInFile"], True),
    ClassificationRule(
        C.GIT_OPERATION,
        [r"\b(git|commit|push|pull|branch|merge|rebase|stash)\b",
         r"\bstage\b.*\b(file|change)\b",
         r"\bcheckout\b.*\b(branch)\b"],
        ["git", "commit", "push", "pull", "branch", "merge", "stage", "checkout"],
        0.9, S, ["gitStatus", "gitDiff", "gitAdd", "gitCommit", "gitLog"], True),
    ClassificationRule(
        C.FILE_OPERATION,
        [r"\b(create|delete|move|rename|copy)\b.*\b(file|folder|directory)\b",
         r"\bnew\s+(file|folder)\b",
         r"\bremove\b.*\b(file|directory)\b"],
        ["create", "delete", "move", "rename", "copy", "file", "folder", "directory"],
        0.8, S, ["createFile", "createDirectory", "delete", "listDirectory"], True),
    ClassificationRule(
        C.SEARCH,
        [r"\b(find|search|locate|look\s+for)\b",
         r"\bwhere\s+is\b",
         r"\b(find|search)\b.*\b(all|every)\b"],
        ["find", "search", "locate", "look for", "grep"],
        0.8, S, ["searchFiles", "searchRelevantContext", "getFileTree"], False),
    ClassificationRule(
        C.COMPLEX_TASK,
        [r"\b(and|then|after|before|while)\b.*\b(and|then|after|before|while)\b",
         r"\b(implement|create|build)\b.*\b(and|with)\b.*\b(test|doc|config)\b"],
        ["implement", "build", "create", "full", "complete", "end-to-end"],
        0.6, X, ["readFile", "writeFile", "replaceInFile", "executeCode"], True),
]

COMPLEX_INDICATORS = ["multiple", "many", "all", "entire", "refactor", "redesign", "architecture", "migrate"]
SIMPLE_INDICATORS = ["typo", "comment", "rename", "single", "one", "quick", "simple"]

CATEGORY_COMPLEXITY: Dict[TaskCategory, ComplexityTier] = {
    C.CODE_GENERATION: M,
    C.CODE_MODIFICATION: M,
    C.CODE_REVIEW: M,
    C.DEBUGGING: X,
    C.REFACTORING: X,
    C.TESTING: M,
    C.DOCUMENTATION: S,
    C.EXPLORATION: S,
    C.QUESTION: S,
    C.CONFIGURATION: S,
    C.GIT_OPERATION: S,
    C.FILE_OPERATION: S,
    C.SEARCH: S,
    C.COMPLEX_TASK: X,
}

BASE_ITERATIONS = {S: 3, M: 8, X: 15}

CATEGORY_MULTIPLIER: Dict[TaskCategory, float] = {
    C.CODE_GENERATION: 1.0,
    C.CODE_MODIFICATION: 1.2,
    C.CODE_REVIEW: 0.8,
    C.DEBUGGING: 1.5,
    C.REFACTORING: 1.3,
    C.TESTING: 1.0,
    C.DOCUMENTATION: 0.6,
    C.EXPLORATION: 0.7,
    C.QUESTION: 0.5,
    C.CONFIGURATION: 0.8,
    C.GIT_OPERATION: 0.6,
    C.FILE_OPERATION: 0.5,
    C.SEARCH: 0.7,
    C.COMPLEX_TASK: 1.5,
}

DEFAULT_TOOLS: Dict[TaskCategory, List[str]] = {
    C.CODE_GENERATION: ["writeFile", "createFile", "executeCode"],
    C.CODE_MODIFICATION: ["readFile", "replaceInFile", "writeFile"],
    C.CODE_REVIEW: ["readFile", "searchFiles"],
    C.DEBUGGING: ["readFile", "executeCode", "searchFiles"],
    C.REFACTORING: ["readFile", "replaceInFile", "searchFiles"],
    C.TESTING: ["executeCode", "runCommand"],
    C.DOCUMENTATION: ["readFile", "writeFile"],
    C.EXPLORATION: ["listDirectory", "readFile"],
    C.QUESTION: ["searchRelevantContext", "readFile"],
    C.CONFIGURATION: ["readFile", "writeFile"],
    C.GIT_OPERATION: ["gitStatus", "gitDiff"],
    C.FILE_OPERATION: ["listDirectory", "createFile"],
    C.SEARCH: ["searchFiles", "getFileTree"],
    C.COMPLEX_TASK: ["readFile", "writeFile", "executeCode"],
}

STOPWORDS = {
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "i", "you", "he", "she",
    "it", "we", "they", "this", "that", "these", "those",
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def extract_keywords(text: str, limit: int = 10) -> List[str]:
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [w for w in words if len(w) > 3 and w not in STOPWORDS][:limit]


class IntentClassifier:
    """Maps an instruction to a category, complexity tier and tool shortlist."""

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules: List[ClassificationRule] = list(rules if rules is not None else DEFAULT_RULES)
        self._history: List[Tuple[str, IntentClassification]] = []

    def register_rule(self, rule: ClassificationRule) -> None:
        self.rules.append(rule)

    def classify(self, instruction: str) -> IntentClassification:
        text = instruction.lower().strip()
        scores: Dict[TaskCategory, float] = {}
        matched_rules: Dict[TaskCategory, List[ClassificationRule]] = {}

        for rule in self.rules:
            score, matched = rule.score(text)
            if matched:
                scores[rule.category] = scores.get(rule.category, 0.0) + score
                matched_rules.setdefault(rule.category, []).append(rule)

        best_category = TaskCategory.COMPLEX_TASK
        best_score = 0.0
        for category, score in scores.items():
            if score > best_score:
                best_category, best_score = category, score
        rules = matched_rules.get(best_category, []) if best_score > 0 else []

        total = sum(scores.values())
        confidence = best_score / total if total > 0 else 0.5

        complexity = self._determine_complexity(text, best_category, rules)
        iterations = round_half_up(BASE_ITERATIONS[complexity] * CATEGORY_MULTIPLIER.get(best_category, 1.0))

        preferred: List[str] = []
        for rule in rules:
            for tool in rule.preferred_tools:
                if tool not in preferred:
                    preferred.append(tool)

        result = IntentClassification(
            category=best_category,
            confidence=min(confidence, 0.95),
            complexity=complexity,
            estimated_iterations=iterations,
            preferred_tools=preferred or list(DEFAULT_TOOLS.get(best_category, ["readFile", "writeFile"])),
            requires_confirmation=any(r.requires_confirmation for r in rules) or complexity == ComplexityTier.COMPLEX,
            keywords=extract_keywords(text),
        )

        self._history.append((instruction, result))
        if len(self._history) > HISTORY_LIMIT:
            self._history.pop(0)

        logger.log("intent", "CLASSIFIED", result.to_dict(), "DEBUG")
        return result

    def _determine_complexity(self, text: str, category: TaskCategory,
                              rules: List[ClassificationRule]) -> ComplexityTier:
        if any(word in text for word in COMPLEX_INDICATORS):
            return ComplexityTier.COMPLEX
        if any(word in text for word in SIMPLE_INDICATORS):
            return ComplexityTier.SIMPLE

        declared = {r.complexity for r in rules}
        if ComplexityTier.COMPLEX in declared:
            return ComplexityTier.COMPLEX
        if ComplexityTier.SIMPLE in declared:
            return ComplexityTier.SIMPLE

        return CATEGORY_COMPLEXITY.get(category, ComplexityTier.MEDIUM)

    def get_history(self) -> List[Tuple[str, IntentClassification]]:
        return list(self._history)

    def get_category_stats(self) -> Dict[str, int]:
        stats: Dict[str, int] = {}
        for _, classification in self._history:
            key = classification.category.value
            stats[key] = stats.get(key, 0) + 1
        return stats

    def clear_history(self) -> None:
        self._history.clear()
