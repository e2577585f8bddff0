#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Retry logic for inference requests."""

from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from revloop import config
from revloop.cancellation import CancellationToken, CancelledError
from revloop.debug_logger import get_logger
from revloop.llm.providers.base import ErrorClass, InferenceError


logger = get_logger()

T = TypeVar("T")

RETRYABLE_KEYWORDS = (
    "fetch", "network", "429", "rate limit", "500", "502", "503", "timeout", "timed out",
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = config.INFERENCE_MAX_ATTEMPTS
    base_backoff: float = config.INFERENCE_BASE_BACKOFF  # seconds
    max_backoff: float = config.INFERENCE_MAX_BACKOFF  # seconds


class RetryHandler:
    """Runs a callable with exponential backoff between failed attempts.

    Backoff sleeps on the cancellation token, so an abort interrupts the wait
    and no further attempt is made.
    """

    def __init__(self, retry_config: Optional[RetryConfig] = None):
        self.config = retry_config or RetryConfig()

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """Transient failures (network, timeout, rate limit, 5xx) are retryable."""
        if isinstance(error, CancelledError):
            return False
        if isinstance(error, InferenceError) and error.error_class != ErrorClass.UNKNOWN:
            return error.retryable
        message = str(error).lower()
        return any(keyword in message for keyword in RETRYABLE_KEYWORDS)

    def get_backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt`` (1-indexed): base * 2^(attempt-1)."""
        delay = self.config.base_backoff * (2 ** (attempt - 1))
        return min(delay, self.config.max_backoff)

    def execute(
        self,
        func: Callable[[], T],
        cancellation: CancellationToken,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    ) -> T:
        """Execute ``func`` with automatic retry.

        Args:
            func: Zero-argument callable to execute
            cancellation: Token observed before each attempt and during backoff
            on_retry: Called with (attempt, error, delay) before sleeping

        Returns:
            Result from the first successful call

        Raises:
            CancelledError: If the token fires
            The last exception if the error is permanent or attempts run out
        """
        attempt = 1
        while True:
            cancellation.raise_if_cancelled()
            try:
                result = func()
                if attempt > 1:
                    logger.log("llm", "RETRY_SUCCEEDED", {"attempt": attempt})
                return result
            except CancelledError:
                raise
            except Exception as e:
                retryable = self.is_retryable(e)
                logger.log("llm", "ATTEMPT_FAILED", {
                    "attempt": attempt,
                    "error": str(e),
                    "retryable": retryable,
                }, "WARNING")

                if cancellation.is_cancelled:
                    raise CancelledError(cancellation.reason or "Cancelled") from e
                if not retryable or attempt >= self.config.max_attempts:
                    raise

                delay = self.get_backoff_delay(attempt)
                if on_retry:
                    on_retry(attempt, e, delay)
                if cancellation.wait(delay):
                    raise CancelledError(cancellation.reason or "Cancelled") from e
                attempt += 1
