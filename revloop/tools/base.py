#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tool declarations: parameter schemas, execution context and the tool record."""

import pathlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from revloop.cancellation import CancellationToken
from revloop.models.step import ToolResult


PARAM_TYPES = ("string", "number", "boolean", "array")


@dataclass
class ToolParameter:
    """One entry in a tool's ordered parameter schema."""
    name: str
    type: str
    description: str
    required: bool = False

    def __post_init__(self):
        if self.type not in PARAM_TYPES:
            raise ValueError(f"Unsupported parameter type for {self.name}: {self.type}")


@dataclass
class ToolContext:
    """Per-call context handed to tool implementations."""
    workspace_root: pathlib.Path
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    run_id: Optional[str] = None


ToolFunction = Callable[[Dict[str, Any], ToolContext], ToolResult]


@dataclass
class Tool:
    """A named, schema-described side-effecting operation."""
    name: str
    description: str
    parameters: List[ToolParameter]
    execute: ToolFunction
    read_only: bool = False
    destructive: bool = False
    mutates_path: bool = False

    @property
    def required_params(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]

    def describe(self) -> str:
        lines = [f"{self.name}: {self.description}", "Parameters:"]
        for p in self.parameters:
            flag = ", required" if p.required else ""
            lines.append(f"  - {p.name} ({p.type}{flag}): {p.description}")
        return "\n".join(lines)

    def to_schema(self) -> Dict[str, Any]:
        """OpenAI function-calling schema for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        p.name: {"type": p.type, "description": p.description}
                        for p in self.parameters
                    },
                    "required": self.required_params,
                },
            },
        }
