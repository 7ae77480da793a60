"""
sessionrag.config.rag – chunking, embedding, reranking and indexing settings.

Read once at wiring time (see sessionrag.services). Per-search switches are
not here; they travel in ``SearchOptions`` with each call.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_VECTOR_STORES = frozenset({"memory", "qdrant", "sql"})
_RERANK_PROVIDERS = frozenset({"none", "http", "llm"})
_TRUTHY = ("1", "true", "yes")


def _positive(value: float, name: str) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value!r}")


@dataclass(frozen=True)
class RAGConfig:
    # Chunking
    chunk_max_tokens: int = 512
    chunk_overlap_tokens: int = 50
    tokenizer_model: str = "text-embedding-3-large"

    # Embedding
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = 1024
    embedding_api_key: Optional[str] = None
    embedding_batch_size: int = 128
    embedding_max_item_chars: int = 200_000
    embedding_max_batch_chars: int = 1_000_000
    embedding_max_retries: int = 3
    embedding_retry_base_delay: float = 1.0
    embedding_timeout: float = 60.0
    embedding_concurrency: int = 4

    # Storage
    vector_store: str = "memory"
    hierarchical_enabled: bool = False

    # Contextual retrieval
    contextual_retrieval_enabled: bool = True
    context_model: str = "gpt-4o-mini"
    llm_api_key: Optional[str] = None

    # Reranking
    rerank_provider: str = "none"
    rerank_api_url: str = "https://api.cohere.com/v2/rerank"
    rerank_api_key: Optional[str] = None
    rerank_model: str = "rerank-v3.5"

    # Background indexing
    index_queue_size: int = 100
    index_workers: int = 2

    def __post_init__(self) -> None:
        _positive(self.chunk_max_tokens, "chunk_max_tokens")
        if not 0 <= self.chunk_overlap_tokens < self.chunk_max_tokens:
            raise ValueError("chunk_overlap_tokens must be >= 0 and smaller than chunk_max_tokens")
        for name in (
            "embedding_dimensions", "embedding_batch_size", "embedding_max_item_chars",
            "embedding_max_batch_chars", "embedding_timeout", "embedding_concurrency",
            "index_queue_size", "index_workers",
        ):
            _positive(getattr(self, name), name)
        if self.embedding_max_retries < 0:
            raise ValueError("embedding_max_retries must be >= 0")
        if self.embedding_retry_base_delay < 0:
            raise ValueError("embedding_retry_base_delay must be >= 0")
        if self.vector_store not in _VECTOR_STORES:
            raise ValueError(f"vector_store must be one of {sorted(_VECTOR_STORES)}, got {self.vector_store!r}")
        if self.rerank_provider not in _RERANK_PROVIDERS:
            raise ValueError(
                f"rerank_provider must be one of {sorted(_RERANK_PROVIDERS)}, got {self.rerank_provider!r}"
            )

    @classmethod
    def from_env(cls, **overrides: object) -> RAGConfig:
        """
        Build config from environment variables. Keyword overrides win over env.

        Env: CHUNK_MAX_TOKENS, CHUNK_OVERLAP_TOKENS, TOKENIZER_MODEL, EMBEDDING_PROVIDER,
        EMBEDDING_MODEL, EMBEDDING_DIMENSIONS, EMBEDDING_BATCH_SIZE, EMBEDDING_MAX_ITEM_CHARS,
        EMBEDDING_MAX_BATCH_CHARS, EMBEDDING_MAX_RETRIES, EMBEDDING_RETRY_BASE_DELAY,
        EMBEDDING_TIMEOUT, EMBEDDING_CONCURRENCY, VECTOR_STORE, HIERARCHICAL_ENABLED, CONTEXTUAL_RETRIEVAL_ENABLED,
        CONTEXT_MODEL, OPENAI_API_KEY, RERANK_PROVIDER, RERANK_API_URL, RERANK_API_KEY,
        RERANK_MODEL, INDEX_QUEUE_SIZE, INDEX_WORKERS.
        """
        defaults = cls()

        def _raw(attr: str, env: str) -> Optional[str]:
            v = overrides.get(attr)
            if v is not None:
                return str(v)
            return os.environ.get(env)

        def _int(attr: str, env: str) -> int:
            raw = _raw(attr, env)
            return int(raw) if raw not in (None, "") else getattr(defaults, attr)

        def _float(attr: str, env: str) -> float:
            raw = _raw(attr, env)
            return float(raw) if raw not in (None, "") else getattr(defaults, attr)

        def _str(attr: str, env: str) -> str:
            raw = _raw(attr, env)
            return raw.strip() if raw else getattr(defaults, attr)

        def _bool(attr: str, env: str) -> bool:
            raw = _raw(attr, env)
            if raw is None or raw.strip() == "":
                return getattr(defaults, attr)
            return raw.strip().lower() in _TRUTHY

        openai_key = _raw("llm_api_key", "OPENAI_API_KEY")
        return cls(
            chunk_max_tokens=_int("chunk_max_tokens", "CHUNK_MAX_TOKENS"),
            chunk_overlap_tokens=_int("chunk_overlap_tokens", "CHUNK_OVERLAP_TOKENS"),
            tokenizer_model=_str("tokenizer_model", "TOKENIZER_MODEL"),
            embedding_provider=_str("embedding_provider", "EMBEDDING_PROVIDER"),
            embedding_model=_str("embedding_model", "EMBEDDING_MODEL"),
            embedding_dimensions=_int("embedding_dimensions", "EMBEDDING_DIMENSIONS"),
            embedding_api_key=_raw("embedding_api_key", "EMBEDDING_API_KEY") or openai_key,
            embedding_batch_size=_int("embedding_batch_size", "EMBEDDING_BATCH_SIZE"),
            embedding_max_item_chars=_int("embedding_max_item_chars", "EMBEDDING_MAX_ITEM_CHARS"),
            embedding_max_batch_chars=_int("embedding_max_batch_chars", "EMBEDDING_MAX_BATCH_CHARS"),
            embedding_max_retries=_int("embedding_max_retries", "EMBEDDING_MAX_RETRIES"),
            embedding_retry_base_delay=_float("embedding_retry_base_delay", "EMBEDDING_RETRY_BASE_DELAY"),
            embedding_timeout=_float("embedding_timeout", "EMBEDDING_TIMEOUT"),
            embedding_concurrency=_int("embedding_concurrency", "EMBEDDING_CONCURRENCY"),
            vector_store=_str("vector_store", "VECTOR_STORE").lower(),
            hierarchical_enabled=_bool("hierarchical_enabled", "HIERARCHICAL_ENABLED"),
            contextual_retrieval_enabled=_bool("contextual_retrieval_enabled", "CONTEXTUAL_RETRIEVAL_ENABLED"),
            context_model=_str("context_model", "CONTEXT_MODEL"),
            llm_api_key=openai_key,
            rerank_provider=_str("rerank_provider", "RERANK_PROVIDER").lower(),
            rerank_api_url=_str("rerank_api_url", "RERANK_API_URL"),
            rerank_api_key=_raw("rerank_api_key", "RERANK_API_KEY"),
            rerank_model=_str("rerank_model", "RERANK_MODEL"),
            index_queue_size=_int("index_queue_size", "INDEX_QUEUE_SIZE"),
            index_workers=_int("index_workers", "INDEX_WORKERS"),
        )


def load_rag_config(**overrides: object) -> RAGConfig:
    return RAGConfig.from_env(**overrides)
