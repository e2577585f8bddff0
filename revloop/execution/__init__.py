"""
Orchestration engine.

This package contains the reasoning/acting loop and the components it drives:
- Intent classification and complexity estimation of instructions
- Iteration budget allocation and adjustment
- Confidence scoring of tools and learning from past corrections
- Cycle detection and goal-stack decomposition
"""

from revloop.execution.budget import (
    AllocationConfig,
    AllocationDecision,
    IterationBudget,
    IterationBudgetAllocator,
    ProgressMetrics,
)
from revloop.execution.complexity import (
    Approach,
    ComplexityEstimate,
    ComplexityEstimator,
    ComplexityLevel,
)
from revloop.execution.confidence import (
    ConfidenceScore,
    ConfidenceScorer,
    ExecutionOutcome,
    UsageContext,
)
from revloop.execution.cycles import CycleDetector, CycleType, DetectedCycle, Severity
from revloop.execution.enhanced import AgentConfig, AgentExecutionResult, GoalDrivenAgent
from revloop.execution.goal_stack import GoalStack, GoalStackManager, estimate_goal_complexity
from revloop.execution.intent import (
    ComplexityTier,
    IntentClassification,
    IntentClassifier,
    TaskCategory,
)
from revloop.execution.learner import CorrectionRecord, LearningStore, normalize_error
from revloop.execution.loop import AgentLoop, LoopOutcome, RunOptions

__all__ = [
    # Loop
    "AgentLoop",
    "LoopOutcome",
    "RunOptions",
    "GoalDrivenAgent",
    "AgentConfig",
    "AgentExecutionResult",
    # Classification
    "IntentClassifier",
    "IntentClassification",
    "TaskCategory",
    "ComplexityTier",
    "ComplexityEstimator",
    "ComplexityEstimate",
    "ComplexityLevel",
    "Approach",
    # Budget
    "IterationBudgetAllocator",
    "IterationBudget",
    "AllocationConfig",
    "AllocationDecision",
    "ProgressMetrics",
    # Confidence and learning
    "ConfidenceScorer",
    "ConfidenceScore",
    "ExecutionOutcome",
    "UsageContext",
    "LearningStore",
    "CorrectionRecord",
    "normalize_error",
    # Cycles and goals
    "CycleDetector",
    "CycleType",
    "DetectedCycle",
    "Severity",
    "GoalStack",
    "GoalStackManager",
    "estimate_goal_complexity",
]
