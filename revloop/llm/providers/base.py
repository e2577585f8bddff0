"""Base interface for inference backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from revloop.cancellation import CancellationToken


class ErrorClass(Enum):
    """Standardized error categories across all backends."""
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    AUTH_ERROR = "auth_error"
    MODEL_NOT_FOUND = "model_not_found"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


RETRYABLE_CLASSES = {
    ErrorClass.RATE_LIMIT,
    ErrorClass.TIMEOUT,
    ErrorClass.SERVER_ERROR,
    ErrorClass.NETWORK_ERROR,
}


@dataclass
class ProviderError:
    """Standardized error representation."""
    error_class: ErrorClass
    message: str
    retryable: bool
    original_error: Optional[Exception] = None


class InferenceError(Exception):
    """Raised by backends when a generation request fails."""

    def __init__(self, message: str, error_class: ErrorClass = ErrorClass.UNKNOWN,
                 retryable: Optional[bool] = None):
        super().__init__(message)
        self.error_class = error_class
        self.retryable = error_class in RETRYABLE_CLASSES if retryable is None else retryable


def classify_error(error: Exception) -> ProviderError:
    """Classify an exception into a standard ErrorClass by keyword heuristics.

    Args:
        error: The exception that occurred

    Returns:
        ProviderError with classification
    """
    if isinstance(error, InferenceError):
        return ProviderError(error.error_class, str(error), error.retryable, error)

    error_str = str(error).lower()
    error_type = type(error).__name__.lower()

    def make(error_class: ErrorClass) -> ProviderError:
        return ProviderError(error_class, str(error), error_class in RETRYABLE_CLASSES, error)

    if "timeout" in error_type or "timeout" in error_str or "timed out" in error_str:
        return make(ErrorClass.TIMEOUT)
    if "rate limit" in error_str or "too many requests" in error_str or "429" in error_str:
        return make(ErrorClass.RATE_LIMIT)
    if "401" in error_str or "unauthorized" in error_str or "authentication" in error_str \
            or "api key" in error_str:
        return make(ErrorClass.AUTH_ERROR)
    if "no model" in error_str or "model not found" in error_str or "404" in error_str:
        return make(ErrorClass.MODEL_NOT_FOUND)
    if "context length" in error_str or "maximum context" in error_str:
        return make(ErrorClass.CONTEXT_LENGTH_EXCEEDED)
    if any(code in error_str for code in ("500", "502", "503", "internal server", "server error")):
        return make(ErrorClass.SERVER_ERROR)
    if "connection" in error_type or any(k in error_str for k in ("connection", "network", "fetch", "unreachable")):
        return make(ErrorClass.NETWORK_ERROR)
    if "400" in error_str or "invalid" in error_str:
        return make(ErrorClass.INVALID_REQUEST)
    return make(ErrorClass.UNKNOWN)


@dataclass
class GenerationOptions:
    """Per-request generation settings."""
    temperature: float = 0.3
    max_tokens: int = 4096
    response_schema: Optional[Dict[str, Any]] = None
    stream: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_schema": bool(self.response_schema),
            "stream": self.stream,
        }


class InferenceBackend(ABC):
    """Abstract base class for text-completion backends.

    Backends take an ordered list of ``{"role", "content"}`` messages and
    return the full response text. When ``on_token`` is given and streaming is
    enabled, tokens are also delivered as they arrive. Implementations must
    check ``cancellation`` between chunks and raise ``CancelledError`` when it
    fires.
    """

    name = "base"

    @abstractmethod
    def generate(
        self,
        messages: List[Dict[str, str]],
        options: GenerationOptions,
        cancellation: CancellationToken,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Generate one response.

        Raises:
            InferenceError: If the request fails
            CancelledError: If the token fires mid-request
        """

    @property
    def model(self) -> str:
        return getattr(self, "_model", self.name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model='{self.model}')"
