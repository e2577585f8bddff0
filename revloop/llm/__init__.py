"""Inference backends, retry policy and response parsing."""

from revloop.llm.provider_factory import create_backend
from revloop.llm.providers.base import (
    ErrorClass,
    GenerationOptions,
    InferenceBackend,
    InferenceError,
    classify_error,
)
from revloop.llm.response_parser import (
    PlainText,
    Plan,
    PlanStep,
    ToolCalls,
    clean_content,
    extract_thinking,
    parse_plan,
    parse_response,
    parse_tool_calls,
)
from revloop.llm.retry import RetryConfig, RetryHandler

__all__ = [
    "ErrorClass",
    "GenerationOptions",
    "InferenceBackend",
    "InferenceError",
    "PlainText",
    "Plan",
    "PlanStep",
    "RetryConfig",
    "RetryHandler",
    "ToolCalls",
    "classify_error",
    "clean_content",
    "create_backend",
    "extract_thinking",
    "parse_plan",
    "parse_response",
    "parse_tool_calls",
]
