#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""revloop - Autonomous task-execution orchestrator built on a ReAct loop."""

from revloop._version import REVLOOP_VERSION

__version__ = REVLOOP_VERSION

# Configuration
from revloop.config import ROOT

# Cancellation and events
from revloop.cancellation import CancellationToken, CancelledError
from revloop.events import AgentEvent, EventEmitter, EventType

# Core models
from revloop.models import (
    Goal,
    GoalStatus,
    Run,
    RunStatus,
    Step,
    StepType,
    ToolCall,
    ToolResult,
)

# Tools
from revloop.tools import (
    PermissionManager,
    PermissionMode,
    ToolRegistry,
    build_default_registry,
)

# Inference
from revloop.llm import InferenceBackend, InferenceError, create_backend

# Orchestration
from revloop.execution import AgentLoop, GoalDrivenAgent, RunOptions

__all__ = [
    "__version__",
    "ROOT",
    "CancellationToken",
    "CancelledError",
    "AgentEvent",
    "EventEmitter",
    "EventType",
    "Goal",
    "GoalStatus",
    "Run",
    "RunStatus",
    "Step",
    "StepType",
    "ToolCall",
    "ToolResult",
    "PermissionManager",
    "PermissionMode",
    "ToolRegistry",
    "build_default_registry",
    "InferenceBackend",
    "InferenceError",
    "create_backend",
    "AgentLoop",
    "GoalDrivenAgent",
    "RunOptions",
]
