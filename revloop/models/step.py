#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Run, step and tool-call models for the orchestration loop."""

import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class StepType(Enum):
    """Kinds of observable loop activity."""
    THINKING = "thinking"
    PLAN = "plan"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ANSWER = "answer"
    ERROR = "error"


class RunStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass
class ToolCall:
    """A tool invocation parsed from model output."""
    name: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "params": dict(self.params)}


@dataclass
class ToolResult:
    """Outcome of a tool execution; ``success`` is the only branch point."""
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def as_text(self) -> str:
        if not self.success:
            return self.error or "Unknown error"
        if self.data is None:
            return "(no output)"
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, indent=2, default=str)


@dataclass(frozen=True)
class Step:
    """One immutable entry in a run's step log."""
    type: StepType
    content: str
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[ToolResult] = None
    iteration: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "iteration": self.iteration,
            "timestamp": self.timestamp,
        }
        if self.tool_call is not None:
            data["tool_call"] = self.tool_call.to_dict()
        if self.tool_result is not None:
            data["tool_result"] = {
                "success": self.tool_result.success,
                "error": self.tool_result.error,
            }
        return data


@dataclass
class Run:
    """State owned by the loop for one ``run()`` invocation."""
    instruction: str
    id: str = field(default_factory=lambda: f"run_{uuid.uuid4().hex[:12]}")
    iteration: int = 0
    status: RunStatus = RunStatus.RUNNING
    messages: List[Dict[str, str]] = field(default_factory=list)
    steps: List[Step] = field(default_factory=list)
    modified_files: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)

    def add_modified(self, path: str) -> bool:
        """Record a modified path once; return True when it is new."""
        if path in self.modified_files:
            return False
        self.modified_files.append(path)
        return True

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at
