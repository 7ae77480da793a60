"""
Rerank clients: hosted rerank API (httpx) and LLM-scored fallback.
"""
from sessionrag.clients.rerank.base import BaseRerankClient
from sessionrag.clients.rerank.http import HttpRerankClient
from sessionrag.clients.rerank.llm import LLMRerankClient

__all__ = ["BaseRerankClient", "HttpRerankClient", "LLMRerankClient"]
