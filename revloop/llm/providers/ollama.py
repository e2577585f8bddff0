"""Ollama inference backend (``/api/chat`` over HTTP with NDJSON streaming)."""

import json
from typing import Callable, Dict, List, Optional

import requests

from revloop import config
from revloop.cancellation import CancellationToken, CancelledError
from revloop.debug_logger import get_logger
from .base import ErrorClass, GenerationOptions, InferenceBackend, InferenceError


logger = get_logger()


def _error_for_status(response: requests.Response) -> InferenceError:
    try:
        detail = response.json().get("error") or response.reason
    except ValueError:
        detail = response.reason
    message = f"Ollama API error: {response.status_code} {detail}"

    if response.status_code == 429:
        return InferenceError(message, ErrorClass.RATE_LIMIT)
    if response.status_code == 401:
        return InferenceError(message, ErrorClass.AUTH_ERROR)
    if response.status_code == 404:
        return InferenceError(f"No model loaded: {detail}", ErrorClass.MODEL_NOT_FOUND)
    if response.status_code >= 500:
        return InferenceError(message, ErrorClass.SERVER_ERROR)
    return InferenceError(message, ErrorClass.INVALID_REQUEST)


class OllamaBackend(InferenceBackend):
    """Talks to a local (or proxied) Ollama server."""

    name = "ollama"

    def __init__(self, model: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: float = config.INFERENCE_TIMEOUT_SECONDS):
        self._model = model or config.OLLAMA_MODEL
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout

    def _payload(self, messages: List[Dict[str, str]], options: GenerationOptions, stream: bool) -> dict:
        payload = {
            "model": self._model,
            "messages": messages,
            "stream": stream,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
            },
        }
        if options.response_schema is not None:
            payload["format"] = options.response_schema
        return payload

    def generate(
        self,
        messages: List[Dict[str, str]],
        options: GenerationOptions,
        cancellation: CancellationToken,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> str:
        cancellation.raise_if_cancelled()
        stream = options.stream and on_token is not None
        url = f"{self.base_url}/api/chat"
        logger.log_llm_request(self._model, messages, options.to_dict())

        try:
            response = requests.post(url, json=self._payload(messages, options, stream),
                                     timeout=self.timeout, stream=stream)
        except requests.exceptions.Timeout as e:
            raise InferenceError(f"Request timed out: {e}", ErrorClass.TIMEOUT) from e
        except requests.exceptions.ConnectionError as e:
            raise InferenceError(f"Network error: failed to fetch {url}: {e}", ErrorClass.NETWORK_ERROR) from e
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"Ollama request failed: {e}", ErrorClass.NETWORK_ERROR) from e

        try:
            if response.status_code >= 400:
                raise _error_for_status(response)
            if not stream:
                data = response.json()
                if "error" in data:
                    raise InferenceError(f"Ollama API error: {data['error']}", ErrorClass.SERVER_ERROR)
                content = (data.get("message") or {}).get("content", "")
            else:
                content = self._consume_stream(response, cancellation, on_token)
        finally:
            response.close()

        logger.log_llm_response(self._model, content)
        return content

    @staticmethod
    def _consume_stream(response: requests.Response, cancellation: CancellationToken,
                        on_token: Callable[[str], None]) -> str:
        accumulated = []
        try:
            for line in response.iter_lines():
                if cancellation.is_cancelled:
                    raise CancelledError(cancellation.reason or "Cancelled")
                if not line:
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError:
                    continue

                if "error" in chunk:
                    raise InferenceError(f"Ollama API error: {chunk['error']}", ErrorClass.SERVER_ERROR)

                content = (chunk.get("message") or {}).get("content", "")
                if content:
                    accumulated.append(content)
                    on_token(content)
                if chunk.get("done", False):
                    break
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"Streaming error: network interrupted: {e}", ErrorClass.NETWORK_ERROR) from e
        return "".join(accumulated)
