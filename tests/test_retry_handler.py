#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for inference retry with exponential backoff."""

import pytest

from revloop.cancellation import CancellationToken, CancelledError
from revloop.llm import ErrorClass, InferenceError, RetryConfig, RetryHandler


class _Flaky:
    """Fails ``failures`` times, then returns "ok"."""

    def __init__(self, failures, error):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestRetryHandler:
    def test_succeeds_after_transient_failures(self):
        func = _Flaky(2, InferenceError("503 unavailable", ErrorClass.SERVER_ERROR))
        retries = []
        handler = RetryHandler(RetryConfig(max_attempts=3, base_backoff=0))

        result = handler.execute(func, CancellationToken(), on_retry=lambda a, e, d: retries.append(a))

        assert result == "ok"
        assert func.calls == 3
        assert retries == [1, 2]

    def test_gives_up_after_max_attempts(self):
        func = _Flaky(5, InferenceError("timed out", ErrorClass.TIMEOUT))
        handler = RetryHandler(RetryConfig(max_attempts=3, base_backoff=0))

        with pytest.raises(InferenceError):
            handler.execute(func, CancellationToken())

        assert func.calls == 3

    def test_permanent_error_is_not_retried(self):
        func = _Flaky(5, InferenceError("bad key", ErrorClass.AUTH_ERROR))
        handler = RetryHandler(RetryConfig(max_attempts=3, base_backoff=0))

        with pytest.raises(InferenceError):
            handler.execute(func, CancellationToken())

        assert func.calls == 1

    def test_cancel_during_backoff(self):
        token = CancellationToken()
        func = _Flaky(5, InferenceError("rate limited", ErrorClass.RATE_LIMIT))
        handler = RetryHandler(RetryConfig(max_attempts=3, base_backoff=30))

        with pytest.raises(CancelledError):
            handler.execute(func, token, on_retry=lambda a, e, d: token.cancel("stop"))

        assert func.calls == 1

    def test_cancelled_before_first_attempt(self):
        token = CancellationToken()
        token.cancel()
        func = _Flaky(0, None)

        with pytest.raises(CancelledError):
            RetryHandler().execute(func, token)

        assert func.calls == 0


class TestBackoff:
    def test_exponential_delays(self):
        handler = RetryHandler(RetryConfig(base_backoff=1.0, max_backoff=10.0))
        assert [handler.get_backoff_delay(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_delay_is_capped(self):
        handler = RetryHandler(RetryConfig(base_backoff=1.0, max_backoff=5.0))
        assert handler.get_backoff_delay(6) == 5.0


class TestRetryable:
    def test_classified_errors(self):
        assert RetryHandler.is_retryable(InferenceError("x", ErrorClass.NETWORK_ERROR))
        assert not RetryHandler.is_retryable(InferenceError("x", ErrorClass.CONTEXT_LENGTH_EXCEEDED))

    def test_keyword_fallback(self):
        assert RetryHandler.is_retryable(RuntimeError("HTTP 503 Service Unavailable"))
        assert RetryHandler.is_retryable(InferenceError("request timeout"))
        assert not RetryHandler.is_retryable(ValueError("bad params"))

    def test_cancellation_is_never_retryable(self):
        assert not RetryHandler.is_retryable(CancelledError("stop"))
