"""Backend factory for creating inference backend instances."""

from typing import Optional

from revloop import config
from revloop.llm.providers.base import InferenceBackend
from revloop.llm.providers.ollama import OllamaBackend
from revloop.llm.providers.openai_provider import OpenAIBackend


def create_backend(provider_name: Optional[str] = None, model: Optional[str] = None) -> InferenceBackend:
    """Create a backend by name.

    Args:
        provider_name: ``ollama`` or ``openai``. If None, uses REVLOOP_LLM_PROVIDER.
        model: Model override; each backend has its own configured default.

    Raises:
        ValueError: If the provider name is not recognized.
    """
    name = (provider_name or config.LLM_PROVIDER).lower().strip()
    if name == "ollama":
        return OllamaBackend(model=model)
    if name == "openai":
        return OpenAIBackend(model=model)
    raise ValueError(f"Unknown LLM provider: {provider_name!r} (expected 'ollama' or 'openai')")
