"""Embedding provider implementations – registered in registry.default_registry."""
from sessionrag.clients.embedding.providers.gemini import GeminiEmbeddingClient, gemini_builder
from sessionrag.clients.embedding.providers.hashing import HashingEmbeddingClient, hashing_builder
from sessionrag.clients.embedding.providers.openai import OpenAIEmbeddingClient, openai_builder

__all__ = [
    "GeminiEmbeddingClient",
    "HashingEmbeddingClient",
    "OpenAIEmbeddingClient",
    "gemini_builder",
    "hashing_builder",
    "openai_builder",
]
