#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tool registry, permission gate and built-in workspace tools."""

from revloop.tools.base import Tool, ToolContext, ToolParameter
from revloop.tools.fuzzy import FuzzyMatch, fuzzy_find, levenshtein
from revloop.tools.normalization import normalize_params
from revloop.tools.permissions import (
    DESTRUCTIVE_TOOLS,
    READ_ONLY_TOOLS,
    ApprovalDecision,
    PendingToolCall,
    PermissionManager,
    PermissionMode,
    PermissionPolicy,
)
from revloop.tools.registry import MUTATING_TOOLS, ToolRegistry, build_default_registry

__all__ = [
    "ApprovalDecision",
    "DESTRUCTIVE_TOOLS",
    "FuzzyMatch",
    "MUTATING_TOOLS",
    "PendingToolCall",
    "PermissionManager",
    "PermissionMode",
    "PermissionPolicy",
    "READ_ONLY_TOOLS",
    "Tool",
    "ToolContext",
    "ToolParameter",
    "ToolRegistry",
    "build_default_registry",
    "fuzzy_find",
    "levenshtein",
    "normalize_params",
]
