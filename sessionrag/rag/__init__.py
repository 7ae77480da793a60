"""
RAG: chunking, embedding, retrieval, fusion, reranking and background indexing.

Usage::

    from sessionrag.rag import RAGOrchestrator, SearchOptions
    orchestrator = RAGOrchestrator(chunker, embedder, store)
    await orchestrator.index(entries, {"document_id": "s-1", "therapist_id": "t-1"})
    results = await orchestrator.search("breathing exercise", SearchOptions(limit=5))

    # Wiring from environment config
    from sessionrag.services import RAGService
    svc = await RAGService.from_config()
"""
from sessionrag.rag.chunker import SemanticChunker
from sessionrag.rag.contextualizer import ContextEnricher
from sessionrag.rag.embedder import Embedder
from sessionrag.rag.fusion import HybridSearcher, reciprocal_rank_fusion
from sessionrag.rag.indexing_queue import IndexingQueue, IndexJob
from sessionrag.rag.lexical import BM25Scorer, LexicalSearcher
from sessionrag.rag.mmr import mmr_select, pair_similarity
from sessionrag.rag.orchestrator import RAGOrchestrator
from sessionrag.rag.reranker import RelevanceReranker, lexical_f1
from sessionrag.rag.tokenizer import TokenCounter
from sessionrag.rag.types import (
    Chunk,
    DegradedResult,
    Granularity,
    IndexResult,
    SearchFilter,
    SearchOptions,
    SearchOutcome,
    SearchResult,
    SessionEntry,
    TextChunk,
)

__all__ = [
    "SemanticChunker",
    "TokenCounter",
    "Embedder",
    "ContextEnricher",
    "BM25Scorer",
    "LexicalSearcher",
    "HybridSearcher",
    "reciprocal_rank_fusion",
    "RelevanceReranker",
    "lexical_f1",
    "mmr_select",
    "pair_similarity",
    "RAGOrchestrator",
    "IndexingQueue",
    "IndexJob",
    "Chunk",
    "DegradedResult",
    "Granularity",
    "IndexResult",
    "SearchFilter",
    "SearchOptions",
    "SearchOutcome",
    "SearchResult",
    "SessionEntry",
    "TextChunk",
]
