"""Data models for revloop."""

from .goal import Goal, GoalContext, GoalStatus, GoalType
from .step import Run, RunStatus, Step, StepType, ToolCall, ToolResult

__all__ = [
    "Goal",
    "GoalContext",
    "GoalStatus",
    "GoalType",
    "Run",
    "RunStatus",
    "Step",
    "StepType",
    "ToolCall",
    "ToolResult",
]
