"""Qdrant-backed vector store.

Point ids are UUIDv5 of the chunk id, so re-upserting a chunk overwrites its
point. The collection uses Cosine distance; Qdrant applies ``score_threshold``
before ``limit``. Qdrant has no multi-point transactions, so
``replace_document`` upserts first and prunes stale points second: readers
never see the document missing, at worst briefly with extra stale chunks.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from qdrant_client.models import PointStruct

from sessionrag.core.exceptions import NotFoundError, VectorstoreError
from sessionrag.infra.vectorstore.base import BaseVectorStore
from sessionrag.infra.vectorstore.client import QdrantManager
from sessionrag.infra.vectorstore.collections import (
    build_chunk_payload,
    build_filter,
    chunk_from_payload,
    ensure_collection_exists,
    point_id,
)
from sessionrag.rag.types import Chunk, Granularity, SearchFilter, SearchResult

logger = logging.getLogger(__name__)


class QdrantVectorStore(BaseVectorStore):
    backend = "qdrant"

    def __init__(
        self,
        manager: QdrantManager,
        collection: str,
        dimension: int,
        *,
        granularity: Granularity = Granularity.CHUNK,
        distance: str = "Cosine",
    ) -> None:
        super().__init__(dimension, granularity=granularity)
        self._manager = manager
        self._collection = collection
        self._distance = distance
        self._ready = False

    @property
    def collection(self) -> str:
        return self._collection

    async def ensure_ready(self) -> None:
        if not self._ready:
            await ensure_collection_exists(
                self._manager, self._collection, vector_size=self.dimension, distance=self._distance,
            )
            self._ready = True

    async def upsert_batch(self, chunks: Sequence[Chunk]) -> int:
        self._check_chunks(chunks)
        if not chunks:
            return 0
        await self.ensure_ready()
        points = [
            PointStruct(id=point_id(c.id), vector=list(c.embedding), payload=build_chunk_payload(c))
            for c in chunks
        ]
        await self._manager.upsert_points(self._collection, points)
        return len(points)

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        filter: Optional[SearchFilter] = None,
        min_score: Optional[float] = None,
    ) -> List[SearchResult]:
        self._check_vector(query_vector, what="Query vector")
        await self.ensure_ready()
        hits = await self._manager.search(
            self._collection,
            query_vector,
            query_filter=build_filter(filter),
            limit=limit,
            score_threshold=min_score,
        )
        scored = []
        for hit in hits:
            chunk = chunk_from_payload(hit.payload or {}, hit.vector)
            scored.append((float(hit.score), chunk.to_result(0.0)))
        return self._rank(scored, limit, min_score)

    async def get(self, chunk_id: str) -> Chunk:
        await self.ensure_ready()
        records = await self._manager.retrieve(self._collection, [point_id(chunk_id)])
        if not records:
            raise NotFoundError(f"Chunk {chunk_id!r} not found", details={"id": chunk_id})
        return chunk_from_payload(records[0].payload or {}, records[0].vector)

    async def delete(self, chunk_id: str) -> None:
        await self.get(chunk_id)
        await self._manager.delete_points(self._collection, [point_id(chunk_id)])

    async def delete_by_filter(self, filter: SearchFilter) -> int:
        self._check_filter_for_delete(filter)
        await self.ensure_ready()
        qfilter = build_filter(filter)
        count = await self._manager.count_points(self._collection, count_filter=qfilter)
        if count == 0:
            raise NotFoundError("No chunks match the delete filter", details={"filter": filter.owner_dict()})
        await self._manager.delete_by_filter(self._collection, qfilter)
        return count

    async def list_chunks(self, filter: Optional[SearchFilter] = None) -> List[Chunk]:
        await self.ensure_ready()
        records = await self._manager.scroll_all(self._collection, build_filter(filter))
        return [chunk_from_payload(r.payload or {}, r.vector) for r in records]

    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        written = await self.upsert_batch(chunks)
        await self.ensure_ready()
        stale = build_filter(SearchFilter.build(document_ids=[document_id]), min_chunk_index=len(chunks))
        if await self._manager.count_points(self._collection, count_filter=stale):
            await self._manager.delete_by_filter(self._collection, stale)
        return written

    async def health_check(self) -> Dict[str, Any]:
        try:
            exists = await self._manager.collection_exists(self._collection)
            points = await self._manager.count_points(self._collection, exact=False) if exists else 0
        except VectorstoreError as exc:
            return {"status": "error", "backend": self.backend, "error": str(exc)}
        return {
            "status": "ok" if exists else "missing_collection",
            "backend": self.backend,
            "collection": self._collection,
            "records": points,
        }

    async def close(self) -> None:
        await self._manager.close()
