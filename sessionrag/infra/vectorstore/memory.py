"""In-process vector store: exact dot-product scan over a dict, guarded by an asyncio.Lock."""
from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Sequence

from sessionrag.core.exceptions import NotFoundError
from sessionrag.infra.vectorstore.base import BaseVectorStore
from sessionrag.rag.similarity import dot
from sessionrag.rag.types import Chunk, Granularity, SearchFilter, SearchResult

logger = logging.getLogger(__name__)


class InMemoryVectorStore(BaseVectorStore):
    """Reference backend for tests and single-process deployments.

    Stores deep copies, so callers mutating a Chunk after upsert do not
    change what is stored.
    """

    backend = "memory"

    def __init__(self, dimension: int, *, granularity: Granularity = Granularity.CHUNK) -> None:
        super().__init__(dimension, granularity=granularity)
        self._chunks: Dict[str, Chunk] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._chunks)

    async def upsert_batch(self, chunks: Sequence[Chunk]) -> int:
        self._check_chunks(chunks)
        async with self._lock:
            for chunk in chunks:
                self._chunks[chunk.id] = copy.deepcopy(chunk)
        return len(chunks)

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        filter: Optional[SearchFilter] = None,
        min_score: Optional[float] = None,
    ) -> List[SearchResult]:
        self._check_vector(query_vector, what="Query vector")
        candidates = self._matching(filter)
        scored = ((dot(query_vector, c.embedding), c.to_result(0.0)) for c in candidates)
        results = self._rank(scored, limit, min_score)
        logger.debug("memory search: %d candidates -> %d results", len(candidates), len(results))
        return results

    async def get(self, chunk_id: str) -> Chunk:
        chunk = self._chunks.get(chunk_id)
        if chunk is None:
            raise NotFoundError(f"Chunk {chunk_id!r} not found", details={"id": chunk_id})
        return copy.deepcopy(chunk)

    async def delete(self, chunk_id: str) -> None:
        async with self._lock:
            if self._chunks.pop(chunk_id, None) is None:
                raise NotFoundError(f"Chunk {chunk_id!r} not found", details={"id": chunk_id})

    async def delete_by_filter(self, filter: SearchFilter) -> int:
        self._check_filter_for_delete(filter)
        async with self._lock:
            ids = [c.id for c in self._matching(filter)]
            if not ids:
                raise NotFoundError("No chunks match the delete filter", details={"filter": filter.owner_dict()})
            for chunk_id in ids:
                del self._chunks[chunk_id]
        return len(ids)

    async def list_chunks(self, filter: Optional[SearchFilter] = None) -> List[Chunk]:
        return [copy.deepcopy(c) for c in self._matching(filter)]

    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        self._check_chunks(chunks)
        keep = len(chunks)
        async with self._lock:
            stale = [
                c.id for c in self._chunks.values()
                if c.document_id == document_id and c.chunk_index >= keep
            ]
            for chunk_id in stale:
                del self._chunks[chunk_id]
            for chunk in chunks:
                self._chunks[chunk.id] = copy.deepcopy(chunk)
        if stale:
            logger.debug("replace_document %s: removed %d stale chunks", document_id, len(stale))
        return keep

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "ok", "backend": self.backend, "records": len(self._chunks)}

    def _matching(self, filter: Optional[SearchFilter]) -> List[Chunk]:
        chunks = list(self._chunks.values())
        if filter is None or filter.is_empty:
            return chunks
        return [c for c in chunks if filter.matches(c.document_id, c.metadata)]
