#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Typed event stream emitted by the orchestration loop."""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

from revloop.debug_logger import get_logger


logger = get_logger()


class EventType(Enum):
    """Kinds of events a presentation layer can subscribe to."""
    STARTED = "started"
    ITERATION = "iteration"
    STREAMING = "streaming"
    STEP_ADDED = "step_added"
    TOOL_EXECUTING = "tool_executing"
    TOOL_RESULT = "tool_result"
    PLAN_PROPOSED = "plan_proposed"
    FILE_MODIFIED = "file_modified"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass
class AgentEvent:
    type: EventType
    run_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[AgentEvent], None]


class EventEmitter:
    """Fan-out of loop events to subscribed listeners."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: EventType, run_id: str, **data: Any) -> AgentEvent:
        event = AgentEvent(type=event_type, run_id=run_id, data=data)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                # listener errors never reach the emitter
                logger.log_error("events", e, {"event": event_type.value})
        return event

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()
