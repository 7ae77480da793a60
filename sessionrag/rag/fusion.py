"""Hybrid retrieval: vector + BM25 rankings merged with Reciprocal Rank Fusion."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from sessionrag.core.exceptions import ConfigurationError
from sessionrag.rag.lexical import LexicalSearcher
from sessionrag.rag.similarity import unit_dot
from sessionrag.rag.types import SearchFilter, SearchResult

if TYPE_CHECKING:
    from sessionrag.infra.vectorstore import BaseVectorStore

logger = logging.getLogger(__name__)

VECTOR_SCORE_KEY = "vector_score"
DEFAULT_RRF_K = 60


def reciprocal_rank_fusion(
    ranked_lists: Sequence[Tuple[Sequence[SearchResult], float]],
    *,
    k: int = DEFAULT_RRF_K,
) -> List[SearchResult]:
    """Fuse ranked lists: score(d) = Σ weight / (k + rank + 1), rank 0-based.

    An item found in one list only scores from that list alone. Ties are
    broken by the item's vector similarity (``metadata["vector_score"]``),
    then by id. The first list an item appears in supplies its text,
    embedding and metadata.
    """
    fused: Dict[str, float] = {}
    items: Dict[str, SearchResult] = {}
    for results, weight in ranked_lists:
        for rank, result in enumerate(results):
            fused[result.id] = fused.get(result.id, 0.0) + weight / (k + rank + 1)
            items.setdefault(result.id, result)

    def _key(item_id: str) -> Tuple[float, float, str]:
        vector_score = items[item_id].metadata.get(VECTOR_SCORE_KEY)
        return (-fused[item_id], -(vector_score if vector_score is not None else float("-inf")), item_id)

    return [items[i].with_score(fused[i], "fusion") for i in sorted(fused, key=_key)]


class HybridSearcher:
    """Runs vector and lexical retrieval concurrently over the same chunk set and fuses them.

    Both paths must score the same granularity; a document-level store paired
    with chunk-level lexical search is rejected at construction.
    """

    def __init__(
        self,
        store: "BaseVectorStore",
        lexical: Optional[LexicalSearcher] = None,
        *,
        vector_weight: float = 0.7,
        rrf_k: int = DEFAULT_RRF_K,
    ) -> None:
        self._store = store
        self._lexical = lexical or LexicalSearcher(store)
        if self._lexical.granularity != store.granularity:
            raise ConfigurationError(
                f"Cannot fuse {self._lexical.granularity.value}-level lexical scores with "
                f"{store.granularity.value}-level vector scores",
            )
        if not 0.0 <= vector_weight <= 1.0:
            raise ConfigurationError(f"vector_weight must be within [0, 1], got {vector_weight}")
        self._vector_weight = vector_weight
        self._rrf_k = rrf_k

    async def search(
        self,
        query: str,
        query_vector: Sequence[float],
        *,
        limit: int = 20,
        filter: Optional[SearchFilter] = None,
        min_score: Optional[float] = None,
        vector_weight: Optional[float] = None,
    ) -> List[SearchResult]:
        weight = self._vector_weight if vector_weight is None else vector_weight
        vector_hits, lexical_hits = await asyncio.gather(
            self._store.search(query_vector, limit=limit, filter=filter, min_score=min_score),
            self._lexical.search(query, limit=limit, filter=filter),
        )
        for hit in vector_hits:
            hit.metadata[VECTOR_SCORE_KEY] = hit.score
        for hit in lexical_hits:
            if VECTOR_SCORE_KEY not in hit.metadata and hit.embedding:
                hit.metadata[VECTOR_SCORE_KEY] = unit_dot(query_vector, hit.embedding)
        fused = reciprocal_rank_fusion(
            [(vector_hits, weight), (lexical_hits, 1.0 - weight)], k=self._rrf_k,
        )
        logger.debug(
            "Hybrid: %d vector + %d lexical hits fused to %d", len(vector_hits), len(lexical_hits), len(fused),
        )
        return fused[:limit]
