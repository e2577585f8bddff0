"""OpenAI-compatible inference backend (official ``openai`` SDK)."""

import os
from typing import Callable, Dict, List, Optional

from revloop import config
from revloop.cancellation import CancellationToken, CancelledError
from revloop.debug_logger import get_logger
from .base import GenerationOptions, InferenceBackend, InferenceError, classify_error


logger = get_logger()


class OpenAIBackend(InferenceBackend):
    """Chat completions against OpenAI or any compatible server."""

    name = "openai"

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None,
                 base_url: Optional[str] = None):
        self._model = model or config.OPENAI_MODEL
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self.base_url = base_url or config.OPENAI_BASE_URL or None
        self._client = None

    def _get_client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            import openai
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=config.INFERENCE_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._client

    def generate(
        self,
        messages: List[Dict[str, str]],
        options: GenerationOptions,
        cancellation: CancellationToken,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> str:
        cancellation.raise_if_cancelled()
        client = self._get_client()
        stream = options.stream and on_token is not None

        request_params = {
            "model": self._model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.response_schema is not None:
            request_params["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": options.response_schema},
            }

        logger.log_llm_request(self._model, messages, options.to_dict())
        try:
            if not stream:
                response = client.chat.completions.create(**request_params)
                content = response.choices[0].message.content or ""
            else:
                content = self._stream(client, request_params, cancellation, on_token)
        except (CancelledError, InferenceError):
            raise
        except Exception as e:
            err = classify_error(e)
            logger.log("llm", "OPENAI_ERROR", {"error": str(e), "class": err.error_class.value}, "ERROR")
            raise InferenceError(f"OpenAI API error: {e}", err.error_class, err.retryable) from e

        logger.log_llm_response(self._model, content)
        return content

    @staticmethod
    def _stream(client, request_params: dict, cancellation: CancellationToken,
                on_token: Callable[[str], None]) -> str:
        accumulated = []
        stream = client.chat.completions.create(stream=True, **request_params)
        try:
            for chunk in stream:
                if cancellation.is_cancelled:
                    raise CancelledError(cancellation.reason or "Cancelled")
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                text = getattr(delta, "content", None)
                if text:
                    accumulated.append(text)
                    on_token(text)
        finally:
            stream.close()
        return "".join(accumulated)
