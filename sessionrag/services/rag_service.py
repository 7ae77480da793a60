"""RAGService: builds the orchestrator and its background queue from config.

Configuration is read once here. Everything below this layer receives its
collaborators through constructors.

Usage::

    svc = await RAGService.from_config(load_rag_config())
    await svc.start()
    await svc.queue.submit(entries, {"document_id": "s-1", "therapist_id": "t-1"})
    results = await svc.orchestrator.search("sleep problems", SearchOptions(limit=5))
    await svc.close()
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, Tuple

from sessionrag.clients.embedding import EmbeddingConfig, default_registry as embedding_registry
from sessionrag.clients.llm import default_registry as llm_registry
from sessionrag.clients.rerank import HttpRerankClient, LLMRerankClient
from sessionrag.config import RAGConfig, load_rag_config
from sessionrag.core.exceptions import ConfigurationError
from sessionrag.core.logger import LoggerConfig, configure as configure_logging
from sessionrag.infra.vectorstore import InMemoryVectorStore, QdrantManager, QdrantVectorStore, SqlVectorStore
from sessionrag.rag.chunker import SemanticChunker
from sessionrag.rag.contextualizer import ContextEnricher
from sessionrag.rag.embedder import Embedder
from sessionrag.rag.fusion import HybridSearcher
from sessionrag.rag.indexing_queue import IndexingQueue
from sessionrag.rag.orchestrator import RAGOrchestrator
from sessionrag.rag.reranker import RelevanceReranker
from sessionrag.rag.tokenizer import TokenCounter
from sessionrag.rag.types import Granularity

if TYPE_CHECKING:
    from sessionrag.clients.embedding import BaseEmbeddingClient
    from sessionrag.clients.llm import BaseLLMClient
    from sessionrag.clients.rerank import BaseRerankClient
    from sessionrag.config import DatabaseConfig, QdrantConfig
    from sessionrag.infra.vectorstore import BaseVectorStore

logger = logging.getLogger(__name__)

Closer = Callable[[], Awaitable[Any]]


def build_embedding_client(config: RAGConfig) -> "BaseEmbeddingClient":
    client_config = EmbeddingConfig(
        model=config.embedding_model,
        provider=config.embedding_provider,
        api_key=config.embedding_api_key,
        dimensions=config.embedding_dimensions,
    )
    return embedding_registry.build(client_config.provider, client_config.to_dict())


def build_llm_client(config: RAGConfig) -> Optional["BaseLLMClient"]:
    """OpenAI chat client for enrichment and LLM reranking, or None without an API key."""
    if not config.llm_api_key:
        return None
    return llm_registry.build(
        "openai", {"model": config.context_model, "api_key": config.llm_api_key, "temperature": 0.2},
    )


def build_rerank_client(config: RAGConfig, llm: Optional["BaseLLMClient"]) -> Optional["BaseRerankClient"]:
    if config.rerank_provider == "http":
        return HttpRerankClient(config.rerank_api_url, api_key=config.rerank_api_key, model=config.rerank_model)
    if config.rerank_provider == "llm":
        if llm is None:
            raise ConfigurationError("RERANK_PROVIDER=llm needs OPENAI_API_KEY")
        return LLMRerankClient(llm)
    return None


async def build_vector_stores(
    config: RAGConfig,
    dimension: int,
    *,
    qdrant_config: Optional["QdrantConfig"] = None,
    database_config: Optional["DatabaseConfig"] = None,
) -> Tuple["BaseVectorStore", Optional["BaseVectorStore"], List[Closer]]:
    """Chunk store, optional document store (hierarchical mode) and the closers for their connections."""
    closers: List[Closer] = []
    with_documents = config.hierarchical_enabled

    if config.vector_store == "qdrant":
        from sessionrag.config import load_qdrant_config
        qcfg = qdrant_config or load_qdrant_config(vector_size=dimension)
        if qcfg.vector_size != dimension:
            raise ConfigurationError(
                f"QDRANT_VECTOR_SIZE={qcfg.vector_size} does not match embedding dimension {dimension}",
            )
        manager = QdrantManager(qcfg)
        closers.append(manager.close)
        store = QdrantVectorStore(manager, qcfg.collection_name, dimension, distance=qcfg.distance)
        await store.ensure_ready()
        document_store = None
        if with_documents:
            document_store = QdrantVectorStore(
                manager, qcfg.document_collection_name, dimension,
                granularity=Granularity.DOCUMENT, distance=qcfg.distance,
            )
            await document_store.ensure_ready()
        return store, document_store, closers

    if config.vector_store == "sql":
        from sessionrag.infra.database import build_engine, build_session_factory, close_engine, init_db
        engine = build_engine(database_config)
        closers.append(lambda: close_engine(engine))
        await init_db(engine)
        factory = build_session_factory(engine)
        store = SqlVectorStore(factory, dimension)
        document_store = SqlVectorStore(factory, dimension, granularity=Granularity.DOCUMENT) if with_documents else None
        return store, document_store, closers

    store = InMemoryVectorStore(dimension)
    document_store = InMemoryVectorStore(dimension, granularity=Granularity.DOCUMENT) if with_documents else None
    return store, document_store, closers


class RAGService:
    """Holds the wired orchestrator, its indexing queue and the connections to release on close."""

    def __init__(
        self,
        orchestrator: RAGOrchestrator,
        queue: IndexingQueue,
        *,
        closers: Optional[List[Closer]] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._queue = queue
        self._closers = list(closers or [])

    @property
    def orchestrator(self) -> RAGOrchestrator:
        return self._orchestrator

    @property
    def queue(self) -> IndexingQueue:
        return self._queue

    @classmethod
    async def from_config(
        cls,
        config: Optional[RAGConfig] = None,
        *,
        qdrant_config: Optional["QdrantConfig"] = None,
        database_config: Optional["DatabaseConfig"] = None,
        embedding_client: Optional["BaseEmbeddingClient"] = None,
        llm_client: Optional["BaseLLMClient"] = None,
        rerank_client: Optional["BaseRerankClient"] = None,
        logger_config: Optional[LoggerConfig] = None,
    ) -> "RAGService":
        """Wire every component from ``config``; explicit clients override the configured providers.

        Pass ``logger_config`` to attach the package log handlers before anything is built.
        """
        if logger_config is not None:
            configure_logging(logger_config)
        cfg = config or load_rag_config()
        client = embedding_client or build_embedding_client(cfg)
        llm = llm_client or build_llm_client(cfg)
        rerank = rerank_client or build_rerank_client(cfg, llm)

        embedder = Embedder(
            client,
            batch_size=cfg.embedding_batch_size,
            max_item_chars=cfg.embedding_max_item_chars,
            max_batch_chars=cfg.embedding_max_batch_chars,
            max_retries=cfg.embedding_max_retries,
            retry_base_delay=cfg.embedding_retry_base_delay,
            timeout=cfg.embedding_timeout,
            concurrency=cfg.embedding_concurrency,
            expected_dimension=cfg.embedding_dimensions if embedding_client is None else None,
        )
        store, document_store, closers = await build_vector_stores(
            cfg, embedder.dimensions(), qdrant_config=qdrant_config, database_config=database_config,
        )
        chunker = SemanticChunker(
            TokenCounter(cfg.tokenizer_model),
            max_tokens=cfg.chunk_max_tokens,
            overlap_tokens=cfg.chunk_overlap_tokens,
        )
        enricher = None
        if cfg.contextual_retrieval_enabled:
            if llm is None:
                logger.warning("Contextual retrieval enabled but no LLM key configured; embedding raw chunks")
            else:
                enricher = ContextEnricher(llm)

        orchestrator = RAGOrchestrator(
            chunker,
            embedder,
            store,
            hybrid=HybridSearcher(store),
            reranker=RelevanceReranker(rerank),
            enricher=enricher,
            document_store=document_store,
        )
        queue = IndexingQueue(orchestrator, maxsize=cfg.index_queue_size, workers=cfg.index_workers)
        if rerank is not None:
            closers.append(rerank.aclose)
        logger.info(
            "RAG service ready: store=%s provider=%s reranker=%s contextual=%s hierarchical=%s",
            cfg.vector_store, embedder.provider, rerank.provider if rerank else "lexical",
            enricher is not None, document_store is not None,
        )
        return cls(orchestrator, queue, closers=closers)

    async def start(self) -> None:
        await self._queue.start()

    async def close(self) -> None:
        """Drain the queue, then release connections in reverse creation order."""
        await self._queue.stop(drain=True)
        while self._closers:
            closer = self._closers.pop()
            await closer()
