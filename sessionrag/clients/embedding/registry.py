"""
Embedding provider registry: map provider name -> build client from config dict.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List

from sessionrag.core.exceptions import ConfigurationError

from .base import BaseEmbeddingClient

Builder = Callable[[Dict[str, Any]], BaseEmbeddingClient]


class EmbeddingRegistry:
    """Maps provider id to a builder that takes config dict and returns BaseEmbeddingClient."""

    def __init__(self) -> None:
        self._builders: Dict[str, Builder] = {}

    def register(self, provider: str, builder: Builder) -> None:
        """Register a builder for this provider. builder(config_dict) -> BaseEmbeddingClient."""
        self._builders[provider] = builder

    def get(self, provider: str) -> Builder | None:
        """Return the builder for this provider, or None."""
        return self._builders.get(provider)

    def providers(self) -> List[str]:
        return sorted(self._builders)

    def build(self, provider: str, config: Dict[str, Any]) -> BaseEmbeddingClient:
        """Build a client for this provider. Raises ConfigurationError if unknown provider."""
        builder = self._builders.get(provider)
        if builder is None:
            raise ConfigurationError(
                f"Unknown embedding provider: {provider!r}. Registered: {self.providers()}"
            )
        return builder(config)


default_registry = EmbeddingRegistry()

from sessionrag.clients.embedding.providers.gemini import gemini_builder  # noqa: E402
from sessionrag.clients.embedding.providers.hashing import hashing_builder  # noqa: E402
from sessionrag.clients.embedding.providers.openai import openai_builder  # noqa: E402

default_registry.register("openai", openai_builder)
default_registry.register("gemini", gemini_builder)
default_registry.register("hashing", hashing_builder)
