"""
LLM provider registry: map provider name -> build client from config dict.
"""
from __future__ import annotations

from typing import Any, Callable, Dict

from sessionrag.clients.llm.base import BaseLLMClient
from sessionrag.core.exceptions import ConfigurationError


class LLMRegistry:
    """Maps provider id to a builder that takes config dict and returns BaseLLMClient."""

    def __init__(self) -> None:
        self._builders: Dict[str, Callable[[Dict[str, Any]], BaseLLMClient]] = {}

    def register(self, provider: str, builder: Callable[[Dict[str, Any]], BaseLLMClient]) -> None:
        self._builders[provider] = builder

    def build(self, provider: str, config: Dict[str, Any]) -> BaseLLMClient:
        """Build a client for this provider. Raises ConfigurationError if unknown provider."""
        builder = self._builders.get(provider)
        if builder is None:
            raise ConfigurationError(f"Unknown LLM provider: {provider!r}. Registered: {list(self._builders)}")
        return builder(config)


default_registry = LLMRegistry()

from sessionrag.clients.llm.providers.openai import openai_builder  # noqa: E402

default_registry.register("openai", openai_builder)
