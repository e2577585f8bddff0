"""Inference backend implementations."""

from .base import (
    ErrorClass,
    GenerationOptions,
    InferenceBackend,
    InferenceError,
    ProviderError,
    classify_error,
)
from .ollama import OllamaBackend
from .openai_provider import OpenAIBackend

__all__ = [
    "ErrorClass",
    "GenerationOptions",
    "InferenceBackend",
    "InferenceError",
    "OllamaBackend",
    "OpenAIBackend",
    "ProviderError",
    "classify_error",
]
