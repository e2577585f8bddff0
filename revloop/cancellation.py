#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Cooperative cancellation shared by inference, tool execution and backoff timers."""

import threading
from typing import Optional


class CancelledError(Exception):
    """Raised when work observes a cancelled token."""


class CancellationToken:
    """A single abort signal for one run.

    Blocking operations poll ``is_cancelled`` at their suspension points or
    sleep through :meth:`wait`, which returns early as soon as the token fires.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError(self._reason or "Cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)

    def reset(self) -> None:
        self._event.clear()
        self._reason = None
