#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Git tools. Arguments are passed as argv lists, never through a shell."""

import subprocess
from typing import Any, Dict, List

from revloop.models.step import ToolResult
from revloop.tools.base import ToolContext
from revloop.tools.file_ops import _safe_path
from revloop.tools.shell import run_process


def _git(args: List[str], context: ToolContext, cwd=None) -> ToolResult:
    try:
        result = run_process(["git"] + args, cwd or context.workspace_root, context.cancellation, timeout=60)
    except FileNotFoundError:
        return ToolResult.fail("git is not installed")
    except subprocess.TimeoutExpired:
        return ToolResult.fail(f"git {args[0]} timed out")
    if result.returncode != 0:
        return ToolResult.fail((result.stderr or result.stdout or "").strip() or f"git {args[0]} failed")
    return ToolResult.ok(result.stdout.strip() or "(no output)")


def git_status(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    repo = _safe_path(params["repoPath"], context) if params.get("repoPath") else None
    return _git(["status", "--short", "--branch"], context, cwd=repo)


def git_diff(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    args = ["diff"]
    staged = params.get("staged", False)
    if staged is True or str(staged).lower() == "true":
        args.append("--cached")
    if params.get("path"):
        _safe_path(params["path"], context)
        args += ["--", str(params["path"])]
    return _git(args, context)


def git_log(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    try:
        count = max(1, min(int(params.get("count", 10)), 100))
    except (TypeError, ValueError):
        count = 10
    return _git(["log", f"-{count}", "--oneline", "--decorate"], context)


def git_add(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    files = params["files"]
    if isinstance(files, str):
        files = [f.strip() for f in files.split(",") if f.strip()]
    if not files:
        return ToolResult.fail("No files given to stage")
    for f in files:
        _safe_path(f, context)
    return _git(["add", "--"] + [str(f) for f in files], context)


def git_commit(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    message = str(params["message"]).strip()
    if not message:
        return ToolResult.fail("Commit message cannot be empty")
    return _git(["commit", "-m", message], context)
