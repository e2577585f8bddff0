#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tool registry and dispatch.

``ToolRegistry.execute_tool`` is the single entry point the loop uses. It
resolves the tool by name, normalizes argument synonyms, validates required
parameters, consults the permission manager and finally runs the tool. It
never raises: every failure comes back as a failed ``ToolResult``.
"""

import time
from typing import Any, Dict, List, Optional

from revloop.debug_logger import get_logger
from revloop.models.step import ToolResult
from revloop.tools import file_ops, git_ops, shell
from revloop.tools.base import Tool, ToolContext, ToolParameter
from revloop.tools.normalization import normalize_params
from revloop.tools.permissions import (
    DESTRUCTIVE_TOOLS,
    READ_ONLY_TOOLS,
    PermissionManager,
    PermissionMode,
)


logger = get_logger()

# Successful calls of these tools modify the file named by their ``path`` param.
MUTATING_TOOLS = {"writeFile", "replaceInFile", "insertAtLine", "fuzzyReplace", "createFile"}


class ToolRegistry:
    """Holds tool declarations and executes them behind the permission gate."""

    def __init__(self, permissions: Optional[PermissionManager] = None):
        self._tools: Dict[str, Tool] = {}
        self.permissions = permissions or PermissionManager()

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> List[Tool]:
        return list(self._tools.values())

    @property
    def names(self) -> List[str]:
        return list(self._tools.keys())

    def is_mutating(self, name: str) -> bool:
        tool = self._tools.get(name)
        return tool is not None and tool.mutates_path

    def is_read_only(self, name: str) -> bool:
        tool = self._tools.get(name)
        return tool is not None and tool.read_only

    def describe_tools(self) -> str:
        """Plain-text tool listing for the system prompt."""
        return "\n\n".join(tool.describe() for tool in self._tools.values())

    def tools_for_prompt(self) -> List[Dict[str, Any]]:
        return [tool.to_schema() for tool in self._tools.values()]

    def suggest(self, name: str) -> Optional[str]:
        """Closest registered name by case-insensitive equality or containment."""
        lowered = (name or "").lower()
        if not lowered:
            return None
        for tool_name in self._tools:
            candidate = tool_name.lower()
            if candidate == lowered or lowered in candidate or candidate in lowered:
                return tool_name
        return None

    def execute_tool(
        self,
        name: str,
        params: Optional[Dict[str, Any]],
        context: ToolContext,
        trusted: Optional[bool] = None,
    ) -> ToolResult:
        """Execute a tool and return its result.

        Args:
            name: Tool name as emitted by the model
            params: Raw parameters (synonyms are normalized here)
            context: Workspace root and cancellation token
            trusted: Override the permission mode for this call
        """
        tool = self._tools.get(name)
        if tool is None:
            similar = self.suggest(name)
            if similar:
                error = f'Tool not found: "{name}". Did you mean "{similar}"?'
            else:
                error = f"Tool not found: {name}. Available tools: {', '.join(self._tools)}"
            logger.log_tool_execution(name, params or {}, error=error)
            return ToolResult.fail(error)

        normalized = normalize_params(name, params or {})

        missing = [p for p in tool.required_params if p not in normalized]
        if missing:
            error = (
                f'Missing required parameters for "{name}": {", ".join(missing)}. '
                f'Expected: {", ".join(tool.required_params)}'
            )
            logger.log_tool_execution(name, normalized, error=error)
            return ToolResult.fail(error)

        use_trusted = trusted if trusted is not None else self.permissions.mode == PermissionMode.TRUSTED
        if not use_trusted:
            permission = self.permissions.check_permission(name, normalized)
            if not permission.allowed:
                error = f'Permission denied: User rejected tool "{name}"'
                if not permission.requires_confirmation:
                    error = f'Permission denied for tool "{name}": {permission.reason}'
                logger.log_tool_execution(name, normalized, error=error)
                return ToolResult.fail(error)

        start_time = time.time()
        try:
            result = tool.execute(normalized, context)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.log_tool_execution(name, normalized, error=error,
                                      duration_ms=(time.time() - start_time) * 1000)
            return ToolResult.fail(error)

        if not isinstance(result, ToolResult):
            result = ToolResult.ok(result)
        logger.log_tool_execution(
            name,
            normalized,
            result=result.data if result.success else None,
            error=None if result.success else result.error,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return result


def _p(name: str, type_: str, description: str, required: bool = False) -> ToolParameter:
    return ToolParameter(name=name, type=type_, description=description, required=required)


def _tool(name: str, description: str, parameters: List[ToolParameter], execute) -> Tool:
    return Tool(
        name=name,
        description=description,
        parameters=parameters,
        execute=execute,
        read_only=name in READ_ONLY_TOOLS,
        destructive=name in DESTRUCTIVE_TOOLS,
        mutates_path=name in MUTATING_TOOLS,
    )


def builtin_tools() -> List[Tool]:
    """Declarations of the workspace tools shipped with revloop."""
    return [
        _tool("readFile", "Read the contents of a file at the given path", [
            _p("path", "string", "Path to the file to read (relative to the workspace)", True),
        ], file_ops.read_file),
        _tool("writeFile", "Write content to a file, creating it if it does not exist", [
            _p("path", "string", "Path to the file to write", True),
            _p("content", "string", "Content to write to the file", True),
        ], file_ops.write_file),
        _tool("listDirectory", "List files and folders in a directory", [
            _p("path", "string", "Path to the directory", True),
            _p("limit", "number", "Maximum entries to return (default: 100)"),
            _p("offset", "number", "Number of entries to skip (default: 0)"),
        ], file_ops.list_directory),
        _tool("createFile", "Create a new file, optionally with initial content", [
            _p("path", "string", "Path for the new file", True),
            _p("content", "string", "Initial content (default: empty)"),
        ], file_ops.create_file),
        _tool("createDirectory", "Create a new directory", [
            _p("path", "string", "Path for the new directory", True),
        ], file_ops.create_directory),
        _tool("delete", "Delete a file or empty directory", [
            _p("path", "string", "Path to delete", True),
        ], file_ops.delete_path),
        _tool("executeCode", "Execute a code snippet. To run an existing file use runFile instead.", [
            _p("code", "string", "The code to execute", True),
            _p("language", "string", "Language: python, javascript, typescript, bash, sh, ruby, perl, php"),
            _p("cwd", "string", "Working directory"),
        ], shell.execute_code),
        _tool("runFile", "Run an existing file in the workspace, detecting the interpreter from its extension", [
            _p("path", "string", "Path to the file to run", True),
        ], shell.run_file),
        _tool("runCommand", "Run a shell command in the workspace", [
            _p("command", "string", 'The full command to run (e.g., "pytest -q")', True),
            _p("cwd", "string", "Working directory"),
        ], shell.run_command),
        _tool("gitStatus", "Get the Git status of a repository", [
            _p("repoPath", "string", "Path to the Git repository (defaults to workspace)"),
        ], git_ops.git_status),
        _tool("searchFiles", "Search for a pattern in files (like grep). Returns matching lines with paths and line numbers.", [
            _p("pattern", "string", "Text pattern or regex to search for", True),
            _p("path", "string", "Directory to search in (defaults to workspace)"),
            _p("filePattern", "string", "Glob to filter file names, e.g. *.py"),
        ], file_ops.search_files),
        _tool("searchRelevantContext", "Find files relevant to a query by keyword scoring", [
            _p("query", "string", "Query or symbol name to search for", True),
        ], file_ops.search_relevant_context),
        _tool("getFileTree", "Get a recursive tree of the workspace, excluding build and dependency folders", [
            _p("path", "string", "Starting directory (defaults to workspace root)"),
            _p("depth", "number", "Maximum recursion depth (default: 3)"),
        ], file_ops.get_file_tree),
        _tool("replaceInFile", "Find and replace exact text in a file. Use this for precise edits.", [
            _p("path", "string", "Path to the file to edit", True),
            _p("find", "string", "The exact text to find (first occurrence unless replaceAll)", True),
            _p("replace", "string", "The replacement text", True),
            _p("replaceAll", "boolean", "Replace every occurrence (default: false)"),
        ], file_ops.replace_in_file),
        _tool("fuzzyReplace", "Replace a code block that may differ slightly in whitespace or content", [
            _p("path", "string", "Path to the file to edit", True),
            _p("search", "string", "The code block to find (fuzzy matched)", True),
            _p("replace", "string", "The code to replace it with", True),
        ], file_ops.fuzzy_replace),
        _tool("insertAtLine", "Insert content at a specific line number in a file", [
            _p("path", "string", "Path to the file", True),
            _p("line", "number", "Line number to insert at (1-indexed). Content goes BEFORE this line.", True),
            _p("content", "string", "Content to insert", True),
        ], file_ops.insert_at_line),
        _tool("fileStats", "Get metadata about a file or directory (size, modified date, type)", [
            _p("path", "string", "Path to the file or directory", True),
        ], file_ops.file_stats),
        _tool("gitDiff", "Show working tree or staged changes", [
            _p("staged", "boolean", "If true, show only staged changes (default: false)"),
            _p("path", "string", "Specific file to diff"),
        ], git_ops.git_diff),
        _tool("gitLog", "Show recent commits", [
            _p("count", "number", "Number of commits to show (default: 10)"),
        ], git_ops.git_log),
        _tool("gitAdd", "Stage files for commit", [
            _p("files", "string", 'File paths to stage (comma-separated), or "." for all', True),
        ], git_ops.git_add),
        _tool("gitCommit", "Commit staged changes", [
            _p("message", "string", "Commit message", True),
        ], git_ops.git_commit),
    ]


def build_default_registry(permissions: Optional[PermissionManager] = None) -> ToolRegistry:
    registry = ToolRegistry(permissions)
    for tool in builtin_tools():
        registry.register(tool)
    return registry
