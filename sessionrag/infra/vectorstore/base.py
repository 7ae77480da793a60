"""Vector store interface shared by the in-memory, Qdrant and SQL backends.

Stored vectors are unit length (the Embedder guarantees it), so similarity is
the dot product, clamped to [-1, 1]. ``min_score`` is applied before results
are truncated to ``limit``.
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sessionrag.core.exceptions import ConsistencyError, ValidationError
from sessionrag.rag.similarity import clamp
from sessionrag.rag.types import Chunk, Granularity, SearchFilter, SearchResult


class BaseVectorStore(ABC):
    backend: str = "base"

    def __init__(self, dimension: int, *, granularity: Granularity = Granularity.CHUNK) -> None:
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        self._dimension = dimension
        self._granularity = Granularity(granularity)

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def granularity(self) -> Granularity:
        return self._granularity

    async def upsert(self, chunk: Chunk) -> None:
        """Full replace of vector, text and metadata for ``chunk.id``."""
        await self.upsert_batch([chunk])

    @abstractmethod
    async def upsert_batch(self, chunks: Sequence[Chunk]) -> int:
        """Upsert all chunks; all-or-nothing where the backend supports it."""
        ...

    @abstractmethod
    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        filter: Optional[SearchFilter] = None,
        min_score: Optional[float] = None,
    ) -> List[SearchResult]:
        """Ranked results, best first, none below ``min_score``, at most ``limit``."""
        ...

    @abstractmethod
    async def get(self, chunk_id: str) -> Chunk:
        """Raises NotFoundError when the id is unknown."""
        ...

    @abstractmethod
    async def delete(self, chunk_id: str) -> None:
        """Raises NotFoundError when the id is unknown."""
        ...

    @abstractmethod
    async def delete_by_filter(self, filter: SearchFilter) -> int:
        """Delete every match; returns the count. Raises NotFoundError on zero matches."""
        ...

    @abstractmethod
    async def list_chunks(self, filter: Optional[SearchFilter] = None) -> List[Chunk]:
        """All stored records matching ``filter``, with their vectors."""
        ...

    @abstractmethod
    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        """Upsert ``chunks`` and drop this document's records with ``chunk_index >= len(chunks)``."""
        ...

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        ...

    async def close(self) -> None:
        return None

    # ── shared helpers ──────────────────────────────────────────

    def _check_vector(self, vector: Sequence[float], *, what: str = "vector") -> None:
        if len(vector) != self._dimension:
            raise ConsistencyError(
                f"{what} has dimension {len(vector)}, store expects {self._dimension}",
                details={"expected": self._dimension, "actual": len(vector)},
            )
        if not all(math.isfinite(x) for x in vector):
            raise ConsistencyError(f"{what} contains non-finite values")

    def _check_chunks(self, chunks: Iterable[Chunk]) -> None:
        for chunk in chunks:
            if not chunk.id or not chunk.document_id:
                raise ValidationError("Chunks need an id and a document_id")
            self._check_vector(chunk.embedding, what=f"Chunk {chunk.id}")

    @staticmethod
    def _check_filter_for_delete(filter: SearchFilter) -> None:
        if filter is None or filter.is_empty:
            raise ValidationError("delete_by_filter requires at least one filter condition")

    @staticmethod
    def _rank(
        scored: Iterable[Tuple[float, SearchResult]],
        limit: int,
        min_score: Optional[float],
    ) -> List[SearchResult]:
        """Clamp, drop below ``min_score``, sort desc (ties by id), then truncate."""
        kept: List[SearchResult] = []
        for score, result in scored:
            score = clamp(score)
            if min_score is not None and score < min_score:
                continue
            result.score = score
            kept.append(result)
        kept.sort(key=lambda r: (-r.score, r.id))
        return kept[: max(0, limit)]
