#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Goal models for goal-stack driven execution.

A goal is a node in a hierarchy rooted at the user's instruction. Composite
goals are decomposed into children; atomic goals are handed to the loop one at
a time.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class GoalStatus(Enum):
    """Status of a goal."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in {GoalStatus.COMPLETED, GoalStatus.FAILED, GoalStatus.SKIPPED}


class GoalType(Enum):
    ROOT = "root"
    COMPOSITE = "composite"
    ATOMIC = "atomic"
    ALTERNATIVE = "alternative"
    RETRY = "retry"


@dataclass
class GoalContext:
    """Working context that travels with a goal."""
    relevant_files: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    partial_results: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relevant_files": list(self.relevant_files),
            "notes": list(self.notes),
            "partial_results": list(self.partial_results),
        }


@dataclass
class Goal:
    """A hierarchical objective with status transitions."""
    description: str
    type: GoalType = GoalType.ATOMIC
    parent_id: Optional[str] = None
    status: GoalStatus = GoalStatus.PENDING
    priority: int = 5
    children: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    context: GoalContext = field(default_factory=GoalContext)
    estimated_complexity: int = 5
    retry_count: int = 0
    max_retries: int = 2
    suggested_tools: List[str] = field(default_factory=list)
    retry_of: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None
    id: str = field(default_factory=lambda: f"goal_{uuid.uuid4().hex[:10]}")
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "description": self.description,
            "type": self.type.value,
            "parent_id": self.parent_id,
            "status": self.status.value,
            "priority": self.priority,
            "children": list(self.children),
            "dependencies": list(self.dependencies),
            "context": self.context.to_dict(),
            "estimated_complexity": self.estimated_complexity,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "suggested_tools": list(self.suggested_tools),
            "retry_of": self.retry_of,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Goal':
        """Create from dictionary."""
        ctx = data.get("context") or {}
        return cls(
            id=data["id"],
            description=data["description"],
            type=GoalType(data.get("type", "atomic")),
            parent_id=data.get("parent_id"),
            status=GoalStatus(data.get("status", "pending")),
            priority=data.get("priority", 5),
            children=list(data.get("children", [])),
            dependencies=list(data.get("dependencies", [])),
            context=GoalContext(
                relevant_files=list(ctx.get("relevant_files", [])),
                notes=list(ctx.get("notes", [])),
                partial_results=list(ctx.get("partial_results", [])),
            ),
            estimated_complexity=data.get("estimated_complexity", 5),
            retry_count=data.get("retry_count", 0),
            max_retries=data.get("max_retries", 2),
            suggested_tools=list(data.get("suggested_tools", [])),
            retry_of=data.get("retry_of"),
            result=data.get("result"),
            error=data.get("error"),
            created_at=data.get("created_at", time.time()),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
        )
