#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Command and code execution tools."""

import os
import pathlib
import subprocess
import sys
import tempfile
import time
from typing import Any, Dict, List, Optional, Union

from revloop import config
from revloop.cancellation import CancellationToken
from revloop.models.step import ToolResult
from revloop.tools.base import ToolContext
from revloop.tools.file_ops import _safe_path


MAX_OUTPUT_CHARS = 20000

# extension -> interpreter argv prefix
_RUNNERS = {
    ".py": [sys.executable],
    ".js": ["node"],
    ".mjs": ["node"],
    ".ts": ["npx", "tsx"],
    ".sh": ["bash"],
    ".rb": ["ruby"],
    ".pl": ["perl"],
    ".php": ["php"],
}

_LANGUAGES = {
    "python": (".py", [sys.executable]),
    "python3": (".py", [sys.executable]),
    "javascript": (".js", ["node"]),
    "node": (".js", ["node"]),
    "typescript": (".ts", ["npx", "tsx"]),
    "bash": (".sh", ["bash"]),
    "sh": (".sh", ["sh"]),
    "ruby": (".rb", ["ruby"]),
    "perl": (".pl", ["perl"]),
    "php": (".php", ["php"]),
}


def run_process(
    args: Union[str, List[str]],
    cwd: pathlib.Path,
    cancellation: CancellationToken,
    timeout: Optional[float] = None,
    shell: bool = False,
) -> subprocess.CompletedProcess:
    """Run a subprocess while polling the cancellation token.

    Raises:
        subprocess.TimeoutExpired: when ``timeout`` elapses
        revloop.cancellation.CancelledError: when the token fires
    """
    timeout = config.COMMAND_TIMEOUT_SECONDS if timeout is None else timeout
    proc = subprocess.Popen(
        args,
        shell=shell,
        cwd=str(cwd),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    deadline = time.monotonic() + timeout
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=0.2)
            return subprocess.CompletedProcess(args, proc.returncode, stdout, stderr)
        except subprocess.TimeoutExpired:
            if cancellation.is_cancelled:
                proc.kill()
                proc.communicate()
                cancellation.raise_if_cancelled()
            if time.monotonic() >= deadline:
                proc.kill()
                proc.communicate()
                raise


def _format_process(result: subprocess.CompletedProcess) -> Dict[str, Any]:
    return {
        "exit_code": result.returncode,
        "stdout": (result.stdout or "")[-MAX_OUTPUT_CHARS:],
        "stderr": (result.stderr or "")[-MAX_OUTPUT_CHARS:],
    }


def _process_result(result: subprocess.CompletedProcess) -> ToolResult:
    data = _format_process(result)
    if result.returncode != 0:
        detail = data["stderr"].strip() or data["stdout"].strip()
        return ToolResult(success=False, data=data, error=f"Exit code {result.returncode}: {detail[:2000]}")
    return ToolResult.ok(data)


def _cwd(params: Dict[str, Any], context: ToolContext) -> pathlib.Path:
    return _safe_path(params["cwd"], context) if params.get("cwd") else context.workspace_root


def run_command(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    command = str(params["command"]).strip()
    if not command:
        return ToolResult.fail("command cannot be empty")
    try:
        result = run_process(command, _cwd(params, context), context.cancellation, shell=True)
    except subprocess.TimeoutExpired:
        return ToolResult.fail(f"Command timed out after {config.COMMAND_TIMEOUT_SECONDS}s: {command}")
    return _process_result(result)


def execute_code(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    language = str(params.get("language") or "python").lower()
    if language not in _LANGUAGES:
        return ToolResult.fail(f"Unsupported language: {language}. Supported: {', '.join(sorted(_LANGUAGES))}")
    suffix, runner = _LANGUAGES[language]

    fd, script = tempfile.mkstemp(suffix=suffix, prefix="revloop_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(str(params["code"]))
        try:
            result = run_process(runner + [script], _cwd(params, context), context.cancellation)
        except FileNotFoundError:
            return ToolResult.fail(f"Interpreter not available for {language}: {runner[0]}")
        except subprocess.TimeoutExpired:
            return ToolResult.fail(f"Code execution timed out after {config.COMMAND_TIMEOUT_SECONDS}s")
        return _process_result(result)
    finally:
        try:
            os.unlink(script)
        except OSError:
            pass


def run_file(params: Dict[str, Any], context: ToolContext) -> ToolResult:
    p = _safe_path(params["path"], context)
    if not p.is_file():
        return ToolResult.fail(f"File not found: {params['path']}")
    runner = _RUNNERS.get(p.suffix.lower())
    if runner is None:
        return ToolResult.fail(f"Don't know how to run {p.suffix or 'extensionless'} files")
    try:
        result = run_process(runner + [str(p)], p.parent, context.cancellation)
    except FileNotFoundError:
        return ToolResult.fail(f"Interpreter not available: {runner[0]}")
    except subprocess.TimeoutExpired:
        return ToolResult.fail(f"Run timed out after {config.COMMAND_TIMEOUT_SECONDS}s: {params['path']}")
    return _process_result(result)
