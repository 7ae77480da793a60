"""LLM provider implementations – registered in registry.default_registry."""
from sessionrag.clients.llm.providers.openai import OpenAILLMClient, openai_builder

__all__ = ["OpenAILLMClient", "openai_builder"]
