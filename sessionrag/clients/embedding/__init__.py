"""
Embedding clients: base, config, registry.

Provider registration: default_registry.register(provider, builder).
Batching and retries on top of a client: sessionrag.rag.embedder.Embedder.
"""
from .base import BaseEmbeddingClient
from .config import EmbeddingConfig
from .registry import EmbeddingRegistry, default_registry

__all__ = [
    "BaseEmbeddingClient",
    "EmbeddingConfig",
    "EmbeddingRegistry",
    "default_registry",
]
