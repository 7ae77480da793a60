"""RAGOrchestrator: index = chunk → enrich → embed → store; search = embed → retrieve → rerank → diversify."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from sessionrag.core.exceptions import (
    ConfigurationError,
    ConsistencyError,
    IndexingError,
    NotFoundError,
    ValidationError,
)
from sessionrag.core.logger import log_context
from sessionrag.rag.contextualizer import contextualize
from sessionrag.rag.mmr import mmr_select
from sessionrag.rag.reranker import RelevanceReranker
from sessionrag.rag.similarity import mean_vector
from sessionrag.rag.types import (
    Chunk,
    DegradedResult,
    Granularity,
    IndexContent,
    IndexResult,
    MetadataKey,
    SearchFilter,
    SearchOptions,
    SearchOutcome,
    SearchResult,
    TextChunk,
    document_record_id,
)

if TYPE_CHECKING:
    from sessionrag.infra.vectorstore import BaseVectorStore
    from sessionrag.rag.chunker import SemanticChunker
    from sessionrag.rag.contextualizer import ContextEnricher
    from sessionrag.rag.embedder import Embedder
    from sessionrag.rag.fusion import HybridSearcher

logger = logging.getLogger(__name__)

_OWNER_KEYS = (MetadataKey.THERAPIST_ID, MetadataKey.CLIENT_ID)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RAGOrchestrator:
    """Owns the index and search pipelines.

    Components are injected once; per-search behaviour is controlled by the
    ``SearchOptions`` passed to each call. ``document_store`` (a
    document-granularity vector store) enables hierarchical search.
    """

    def __init__(
        self,
        chunker: "SemanticChunker",
        embedder: "Embedder",
        store: "BaseVectorStore",
        *,
        hybrid: Optional["HybridSearcher"] = None,
        reranker: Optional[RelevanceReranker] = None,
        enricher: Optional["ContextEnricher"] = None,
        document_store: Optional["BaseVectorStore"] = None,
    ) -> None:
        if store.granularity != Granularity.CHUNK:
            raise ConfigurationError("The primary vector store must hold chunk-level records")
        if embedder.dimensions() != store.dimension:
            raise ConfigurationError(
                f"Embedding dimension {embedder.dimensions()} does not match vector store dimension {store.dimension}",
            )
        if document_store is not None:
            if document_store.granularity != Granularity.DOCUMENT:
                raise ConfigurationError("document_store must hold document-level records")
            if document_store.dimension != store.dimension:
                raise ConfigurationError("document_store and store must share one dimension")
        self._chunker = chunker
        self._embedder = embedder
        self._store = store
        self._hybrid = hybrid
        self._reranker = reranker or RelevanceReranker()
        self._enricher = enricher
        self._document_store = document_store

    # ── indexing ──

    async def index(self, content: IndexContent, metadata: Mapping[str, Any]) -> IndexResult:
        """
        Index one document, replacing whatever was stored for it before.

        Args:
            content: Raw text or a sequence of ``{speaker, content}`` entries.
                ``metadata["entries"]`` takes precedence when present.
            metadata: Must carry ``document_id``; owner ids and ``timestamp``
                are copied onto every chunk.

        Raises:
            ValidationError: missing document id, or nothing to index.
            IndexingError: any later failure, with ``details["document_id"]``.
        """
        started = time.perf_counter()
        meta = self._validate_index_input(content, metadata)
        document_id = meta[MetadataKey.DOCUMENT_ID]
        text_chunks = self._chunker.chunk(content, meta)
        if not text_chunks:
            raise ValidationError(
                "Document produced no chunks", details={MetadataKey.DOCUMENT_ID: document_id},
            )
        meta.pop(MetadataKey.ENTRIES, None)

        try:
            result = await self._index_chunks(document_id, text_chunks, meta)
        except Exception as exc:
            logger.error(
                "Failed to index document %s: %s", document_id, exc,
                extra=log_context(document_id=document_id, duration=round(time.perf_counter() - started, 3)),
            )
            raise IndexingError(
                f"Indexing failed for document {document_id}: {exc}",
                details={MetadataKey.DOCUMENT_ID: document_id},
                cause=exc,
            ) from exc

        result.duration = time.perf_counter() - started
        logger.info(
            "Indexed document %s: %d chunks in %.2fs", document_id, result.chunks_created, result.duration,
            extra=log_context(
                document_id=document_id,
                chunks=result.chunks_created,
                contextualized=result.contextualized,
                degraded=[d.stage for d in result.degraded],
            ),
        )
        return result

    async def _index_chunks(
        self, document_id: str, text_chunks: List[TextChunk], meta: Dict[str, Any],
    ) -> IndexResult:
        texts = [tc.text for tc in text_chunks]
        degraded: List[DegradedResult] = []
        summaries: List[Optional[str]] = [None] * len(texts)
        if self._enricher is not None:
            summaries, enrich_degraded = await self._enricher.enrich(texts, meta)
            if enrich_degraded:
                degraded.append(enrich_degraded)

        vectors = await self._embedder.embed_batch(
            [contextualize(s, t) for s, t in zip(summaries, texts)],
        )
        if len(vectors) != len(text_chunks):
            raise ConsistencyError(
                f"Embedding count mismatch: {len(vectors)} embeddings for {len(text_chunks)} chunks",
                details={"expected": len(text_chunks), "actual": len(vectors)},
            )

        indexed_at = _now_iso()
        total = len(text_chunks)
        chunks: List[Chunk] = []
        for tc, summary, vector in zip(text_chunks, summaries, vectors):
            chunk_meta = dict(tc.metadata)
            chunk_meta.pop(MetadataKey.DOCUMENT_ID, None)
            chunk_meta[MetadataKey.INDEXED_AT] = indexed_at
            chunk_meta[MetadataKey.CONTEXT_SUMMARY] = summary
            chunk_meta[MetadataKey.CONTEXTUALIZED] = bool(summary)
            chunks.append(
                Chunk.build(
                    document_id, tc.chunk_index, tc.text, vector,
                    total_chunks=total, context_summary=summary, metadata=chunk_meta,
                ),
            )

        stored = await self._store.replace_document(document_id, chunks)
        if self._document_store is not None:
            await self._document_store.replace_document(document_id, [self._document_record(document_id, chunks, meta)])

        return IndexResult(
            document_id=document_id,
            chunks_created=len(chunks),
            vectors_stored=stored,
            duration=0.0,
            contextualized=sum(1 for s in summaries if s),
            degraded=degraded,
        )

    @staticmethod
    def _document_record(document_id: str, chunks: Sequence[Chunk], meta: Mapping[str, Any]) -> Chunk:
        record_meta = {k: v for k, v in meta.items() if k != MetadataKey.DOCUMENT_ID}
        record_meta[MetadataKey.GRANULARITY] = Granularity.DOCUMENT.value
        record_meta[MetadataKey.INDEXED_AT] = _now_iso()
        return Chunk(
            id=document_record_id(document_id),
            document_id=document_id,
            text="\n".join(c.text for c in chunks),
            embedding=mean_vector(c.embedding for c in chunks),
            chunk_index=0,
            total_chunks=1,
            metadata=record_meta,
        )

    @staticmethod
    def _validate_index_input(content: IndexContent, metadata: Mapping[str, Any]) -> Dict[str, Any]:
        if not isinstance(metadata, Mapping):
            raise ValidationError("metadata must be a mapping")
        meta = dict(metadata)
        document_id = meta.get(MetadataKey.DOCUMENT_ID)
        if document_id is None or not str(document_id).strip():
            raise ValidationError("document_id is required", details={"field": MetadataKey.DOCUMENT_ID})
        meta[MetadataKey.DOCUMENT_ID] = str(document_id)

        entries = meta.get(MetadataKey.ENTRIES)
        has_entries = bool(entries) or (content is not None and not isinstance(content, str) and len(content) > 0)
        has_text = isinstance(content, str) and bool(content.strip())
        if not has_entries and not has_text:
            raise ValidationError(
                "Either non-empty text or non-empty entries are required",
                details={MetadataKey.DOCUMENT_ID: meta[MetadataKey.DOCUMENT_ID]},
            )

        for key in _OWNER_KEYS:
            if meta.get(key) is not None:
                meta[key] = str(meta[key])
        if not meta.get(MetadataKey.TIMESTAMP):
            meta[MetadataKey.TIMESTAMP] = _now_iso()
        elif isinstance(meta[MetadataKey.TIMESTAMP], datetime):
            meta[MetadataKey.TIMESTAMP] = meta[MetadataKey.TIMESTAMP].isoformat()
        return meta

    # ── search ──

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        outcome = await self.search_detailed(query, options)
        return outcome.results

    async def search_detailed(self, query: str, options: Optional[SearchOptions] = None) -> SearchOutcome:
        """Run the search pipeline and report degraded stages alongside the results.

        Query embedding and retrieval failures propagate; a failed rerank falls
        back to lexical scoring and is listed in ``degraded``.
        """
        opts = options or SearchOptions()
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string")
        search_filter = opts.search_filter()
        if opts.use_hybrid and self._hybrid is None:
            raise ConfigurationError("Hybrid search requested but no HybridSearcher is configured")
        if opts.hierarchical and self._document_store is None:
            raise ConfigurationError("Hierarchical search requires a document-level store")
        if opts.hierarchical and opts.use_hybrid:
            # Fused RRF scores and cosine document scores do not share a scale.
            raise ConfigurationError("Hierarchical search cannot be combined with hybrid search")

        outcome = SearchOutcome(query=query)
        query_vector = await self._embedder.embed_one(query)

        document_scores: Optional[Dict[str, float]] = None
        if opts.hierarchical:
            document_scores = await self._document_candidates(query_vector, search_filter, opts)
            if not document_scores:
                return outcome
            search_filter = search_filter.narrowed_to(list(document_scores))
            if not search_filter.document_ids:
                return outcome

        candidates = await self._retrieve(query, query_vector, search_filter, opts, document_scores)
        outcome.candidates = len(candidates)
        logger.debug("Search: %d candidates for %r", len(candidates), query[:60])
        if not candidates:
            return outcome

        results = candidates
        if opts.use_reranking:
            results, degraded = await self._reranker.rerank(query, results)
            if degraded:
                outcome.degraded.append(degraded)
        if opts.diversity_mode:
            results = mmr_select(results, opts.limit, lambda_=opts.diversity_lambda)
        results = sorted(results, key=lambda r: r.score, reverse=True)[: opts.limit]

        outcome.results = results
        logger.debug(
            "Search: %d results (rerank=%s, diversity=%s, degraded=%s)",
            len(results), opts.use_reranking, opts.diversity_mode, outcome.is_degraded,
        )
        return outcome

    async def _document_candidates(
        self, query_vector: Sequence[float], search_filter: SearchFilter, opts: SearchOptions,
    ) -> Dict[str, float]:
        assert self._document_store is not None
        hits = await self._document_store.search(
            query_vector,
            limit=opts.hierarchical_document_limit,
            filter=search_filter,
            min_score=opts.hierarchical_min_score,
        )
        logger.debug("Hierarchical: %d candidate documents", len(hits))
        return {h.document_id: h.score for h in hits}

    async def _retrieve(
        self,
        query: str,
        query_vector: Sequence[float],
        search_filter: SearchFilter,
        opts: SearchOptions,
        document_scores: Optional[Dict[str, float]],
    ) -> List[SearchResult]:
        if opts.use_hybrid:
            assert self._hybrid is not None
            return await self._hybrid.search(
                query,
                query_vector,
                limit=opts.candidate_limit,
                filter=search_filter,
                min_score=opts.min_score,
                vector_weight=opts.hybrid_vector_weight,
            )

        hits = await self._store.search(
            query_vector, limit=opts.candidate_limit, filter=search_filter, min_score=opts.min_score,
        )
        if document_scores is None:
            return hits
        weight = opts.hierarchical_document_weight
        combined = [
            h.with_score(weight * document_scores.get(h.document_id, 0.0) + (1.0 - weight) * h.score, "hierarchical")
            for h in hits
        ]
        combined = [h for h in combined if h.score >= opts.min_score]
        combined.sort(key=lambda r: (-r.score, r.id))
        return combined

    # ── maintenance ──

    async def delete_document(self, document_id: str) -> int:
        """Delete every chunk of ``document_id``. Raises NotFoundError when nothing was stored."""
        if not document_id or not str(document_id).strip():
            raise ValidationError("document_id is required")
        deleted = await self._store.delete_by_filter(SearchFilter.build(document_ids=[str(document_id)]))
        if self._document_store is not None:
            try:
                await self._document_store.delete(document_record_id(str(document_id)))
            except NotFoundError:
                logger.debug("No document-level record for %s", document_id)
        logger.info("Deleted %d chunks of document %s", deleted, document_id)
        return deleted

    async def delete_by_owner(self, owner: Mapping[str, Any]) -> int:
        """Delete every chunk whose owner fields match ``owner`` (ANDed)."""
        search_filter = SearchFilter.build(owner)
        if search_filter.is_empty:
            raise ValidationError("delete_by_owner needs at least one owner field")
        deleted = await self._store.delete_by_filter(search_filter)
        if self._document_store is not None:
            try:
                await self._document_store.delete_by_filter(search_filter)
            except NotFoundError:
                logger.debug("No document-level records for owner %s", search_filter.owner_dict())
        logger.info("Deleted %d chunks for owner %s", deleted, search_filter.owner_dict())
        return deleted

    async def health_check(self, *, check_providers: bool = False) -> Dict[str, Any]:
        """Store health plus wiring; ``check_providers`` also makes one call to each provider."""
        store = await self._store.health_check()
        report: Dict[str, Any] = {
            "vector_store": store,
            "provider": self._embedder.provider,
            "reranker": self._reranker.provider,
            "hybrid": self._hybrid is not None,
            "hierarchical": self._document_store is not None,
        }
        healthy = store.get("status") == "ok"
        if self._document_store is not None:
            doc_store = await self._document_store.health_check()
            report["document_store"] = doc_store
            healthy = healthy and doc_store.get("status") == "ok"
        if check_providers:
            report["provider_reachable"] = await self._embedder.test_connection()
            healthy = healthy and report["provider_reachable"]
            if self._enricher is not None:
                report["context_llm_reachable"] = await self._enricher.test_connection()
                healthy = healthy and report["context_llm_reachable"]
        report["status"] = "healthy" if healthy else "degraded"
        return report

    def provider_info(self) -> Dict[str, Any]:
        info = self._embedder.provider_info()
        info["contextual_retrieval"] = self._enricher is not None
        info["reranker"] = self._reranker.provider
        return info
