#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Structured debug log for revloop runs.

Off by default: until ``--debug`` enables it, every method is a no-op. When on,
each event becomes one line in ``.revloop/logs/revloop_<timestamp>.log``::

    2024-05-01 12:00:00 | revloop.loop         | INFO     | run=run_1a2b [ITERATION] {"n": 3}

Events logged inside ``run_scope`` carry the run id, so interleaved runs from
several loops can be told apart.
"""

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from revloop import config


PREVIEW_CHARS = 500
ARG_PREVIEW_CHARS = 200


def prune_old_logs(log_dir: Path, keep: int) -> int:
    """Delete all but the ``keep`` newest log files. Returns how many went."""
    if keep < 1 or not log_dir.exists():
        return 0

    logs = sorted(
        (p for p in log_dir.glob("revloop_*.log") if p.is_file()),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    removed = 0
    for stale in logs[keep:]:
        try:
            stale.unlink()
            removed += 1
        except OSError:
            continue
    return removed


def _preview(value: Any, limit: int = PREVIEW_CHARS) -> str:
    text = str(value)
    if len(text) <= limit:
        return text
    return text[:limit] + f"...(+{len(text) - limit})"


class DebugLogger:
    """Process-wide structured logger, one file per debug session."""

    _instance: Optional['DebugLogger'] = None

    def __init__(self, enabled: bool = False, log_dir: Optional[Path] = None):
        self._enabled = False
        self._log_file: Optional[Path] = None
        self._handler: Optional[logging.Handler] = None
        self._scope = threading.local()
        if enabled:
            self.enable(log_dir)

    @classmethod
    def get_instance(cls) -> 'DebugLogger':
        if cls._instance is None:
            cls._instance = cls(enabled=False)
        return cls._instance

    @classmethod
    def initialize(cls, enabled: bool = False, log_dir: Optional[Path] = None) -> 'DebugLogger':
        """Return the shared instance, switching it on when ``enabled``.

        Modules keep the instance they got at import time, so it is enabled
        in place rather than replaced.
        """
        instance = cls.get_instance()
        if enabled:
            instance.enable(log_dir)
        return instance

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def log_file(self) -> Optional[Path]:
        return self._log_file

    def enable(self, log_dir: Optional[Path] = None) -> None:
        if self._enabled:
            return

        log_dir = log_dir or config.LOGS_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        self._log_file = log_dir / f"revloop_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.log"

        handler = logging.FileHandler(self._log_file, mode='w', encoding='utf-8')
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(name)-20s | %(levelname)-8s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        root = logging.getLogger('revloop')
        root.setLevel(logging.DEBUG)
        root.addHandler(handler)
        root.propagate = False
        self._handler = handler
        self._enabled = True

        pruned = prune_old_logs(log_dir, config.LOG_RETENTION_LIMIT)
        self.log("system", "SESSION_START", {
            "log_file": str(self._log_file),
            "cwd": str(Path.cwd()),
            "pruned_logs": pruned,
        })

    def close(self) -> None:
        """Write the end marker and detach the file handler."""
        if not self._enabled:
            return
        self.log("system", "SESSION_END", {"timestamp": datetime.now().isoformat()})
        root = logging.getLogger('revloop')
        if self._handler is not None:
            root.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
        self._enabled = False

    # --- run correlation ---

    @property
    def current_run(self) -> Optional[str]:
        stack = getattr(self._scope, "runs", None)
        return stack[-1] if stack else None

    @contextmanager
    def run_scope(self, run_id: str) -> Iterator[None]:
        """Tag every event logged on this thread with ``run_id``."""
        stack: List[str] = getattr(self._scope, "runs", None) or []
        stack.append(run_id)
        self._scope.runs = stack
        try:
            yield
        finally:
            stack.pop()

    # --- events ---

    def log(self, component: str, event: str, data: Optional[Dict[str, Any]] = None, level: str = "INFO"):
        """Write one ``[EVENT] {json}`` record under ``revloop.<component>``."""
        if not self._enabled:
            return

        parts = []
        run_id = self.current_run
        if run_id:
            parts.append(f"run={run_id}")
        parts.append(f"[{event}]")
        if data:
            parts.append(json.dumps(data, default=str, sort_keys=True))

        logging.getLogger(f'revloop.{component}').log(
            getattr(logging, level.upper(), logging.INFO), " ".join(parts)
        )

    def log_llm_request(self, model: str, messages: List[Dict[str, Any]],
                        options: Optional[Dict[str, Any]] = None):
        if not self._enabled:
            return
        self.log("llm", "REQUEST", {
            "model": model,
            "message_count": len(messages),
            "prompt_chars": sum(len(str(m.get("content", ""))) for m in messages),
            "last_message": _preview(messages[-1].get("content", "")) if messages else None,
            "options": options or {},
        }, "DEBUG")

    def log_llm_response(self, model: str, content: str, attempt: int = 1):
        if not self._enabled:
            return
        self.log("llm", "RESPONSE", {
            "model": model,
            "attempt": attempt,
            "chars": len(content),
            "preview": _preview(content),
        }, "DEBUG")

    def log_tool_execution(self, tool_name: str, arguments: Dict[str, Any], result: Any = None,
                           error: Optional[str] = None, duration_ms: Optional[float] = None):
        """Failed calls are logged at ERROR, successful ones at DEBUG."""
        if not self._enabled:
            return

        data: Dict[str, Any] = {
            "tool": tool_name,
            "arguments": {k: _preview(v, ARG_PREVIEW_CHARS) for k, v in (arguments or {}).items()},
            "success": error is None,
        }
        if duration_ms is not None:
            data["duration_ms"] = round(duration_ms, 1)
        if error is not None:
            data["error"] = str(error)
        elif result is not None:
            data["result"] = _preview(result)

        self.log("tools", "TOOL_EXECUTION", data, "DEBUG" if error is None else "ERROR")

    def log_error(self, component: str, error: BaseException, context: Optional[Dict[str, Any]] = None):
        if not self._enabled:
            return
        data: Dict[str, Any] = {"type": type(error).__name__, "message": str(error)}
        if context:
            data["context"] = context
        self.log(component, "ERROR", data, "ERROR")


def get_logger() -> DebugLogger:
    """The shared ``DebugLogger``."""
    return DebugLogger.get_instance()
