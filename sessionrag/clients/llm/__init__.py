"""
LLM clients: base, registry. Used for contextual enrichment and LLM reranking.
"""
from sessionrag.clients.llm.base import BaseLLMClient, LLMMessage
from sessionrag.clients.llm.registry import LLMRegistry, default_registry

__all__ = [
    "BaseLLMClient",
    "LLMMessage",
    "LLMRegistry",
    "default_registry",
]
