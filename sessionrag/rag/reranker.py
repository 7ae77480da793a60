"""Relevance reranking with a primary scorer and a lexical fallback.

Tier 1 is any BaseRerankClient (hosted rerank API or LLM). When it is not
configured, errors or times out, candidates are scored by lexical F1 overlap.
``score_source`` records the tier (``rerank:<provider>`` or
``rerank:lexical``), and a primary failure is reported as a DegradedResult.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from sessionrag.core.exceptions import ProviderError
from sessionrag.rag.similarity import significant_terms
from sessionrag.rag.types import DegradedResult, SearchResult

if TYPE_CHECKING:
    from sessionrag.clients.rerank import BaseRerankClient

logger = logging.getLogger(__name__)

LEXICAL_SOURCE = "rerank:lexical"


def lexical_f1(query: str, text: str) -> float:
    """Harmonic mean of query-term coverage (precision) and document-term coverage (recall)."""
    q_terms = significant_terms(query)
    d_terms = significant_terms(text)
    if not q_terms or not d_terms:
        return 0.0
    overlap = len(q_terms & d_terms)
    if overlap == 0:
        return 0.0
    precision = overlap / len(q_terms)
    recall = overlap / len(d_terms)
    return 2 * precision * recall / (precision + recall)


def relevance_floor(top_score: float, *, absolute_min: float, relative_fraction: float, quality_bar: float) -> float:
    if top_score > quality_bar:
        return max(absolute_min, top_score * relative_fraction)
    return absolute_min


class RelevanceReranker:
    def __init__(
        self,
        client: Optional["BaseRerankClient"] = None,
        *,
        max_candidates: int = 20,
        absolute_min: float = 0.05,
        relative_fraction: float = 0.3,
        quality_bar: float = 0.5,
        timeout: float = 15.0,
    ) -> None:
        self._client = client
        self._max_candidates = max_candidates
        self._absolute_min = absolute_min
        self._relative_fraction = relative_fraction
        self._quality_bar = quality_bar
        self._timeout = timeout

    @property
    def provider(self) -> str:
        return self._client.provider if self._client is not None else "lexical"

    async def rerank(
        self, query: str, results: Sequence[SearchResult],
    ) -> Tuple[List[SearchResult], Optional[DegradedResult]]:
        """Rescore and prune ``results``; returns (reranked, degraded-or-None)."""
        candidates = list(results[: self._max_candidates])
        if not candidates:
            return [], None

        degraded: Optional[DegradedResult] = None
        scored: Optional[List[SearchResult]] = None
        if self._client is not None:
            try:
                scored = await self._primary(query, candidates)
            except (ProviderError, asyncio.TimeoutError) as exc:
                reason = str(exc) or exc.__class__.__name__
                degraded = DegradedResult(stage="rerank", reason=reason, fallback="lexical")
                logger.warning("Rerank via %s failed (%s); using lexical fallback", self._client.provider, reason)
        if scored is None:
            scored = [r.with_score(lexical_f1(query, r.text), LEXICAL_SOURCE) for r in candidates]

        scored.sort(key=lambda r: r.score, reverse=True)
        top = scored[0].score if scored else 0.0
        floor = relevance_floor(
            top,
            absolute_min=self._absolute_min,
            relative_fraction=self._relative_fraction,
            quality_bar=self._quality_bar,
        )
        kept = [r for r in scored if r.score >= floor]
        logger.debug("Rerank: %d candidates, floor %.3f, kept %d", len(candidates), floor, len(kept))
        return kept, degraded

    async def _primary(self, query: str, candidates: List[SearchResult]) -> List[SearchResult]:
        assert self._client is not None
        ranked = await asyncio.wait_for(
            self._client.rerank(query, [c.text for c in candidates], top_n=len(candidates)),
            timeout=self._timeout,
        )
        source = f"rerank:{self._client.provider}"
        return [candidates[index].with_score(score, source) for index, score in ranked]
