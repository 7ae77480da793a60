"""LLM-based relevance scoring: one 0-10 rating per passage, scaled to [0, 1]."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from sessionrag.clients.rerank.base import BaseRerankClient

if TYPE_CHECKING:
    from sessionrag.clients.llm import BaseLLMClient

logger = logging.getLogger(__name__)

_RERANK_PROMPT_TEMPLATE = (
    "Rate how relevant the following therapy-session excerpt is to the query on a scale of 0 to 10.\n"
    "Only respond with a single number, nothing else.\n\n"
    "Query: {query}\n\n"
    "Excerpt:\n{passage}\n\n"
    "Relevance score (0-10):"
)

_MAX_PASSAGE_CHARS = 2000


class LLMRerankClient(BaseRerankClient):
    """Rescore passages with a BaseLLMClient. Calls run concurrently, bounded by ``concurrency``."""

    def __init__(self, llm: "BaseLLMClient", *, concurrency: int = 5) -> None:
        self._llm = llm
        self._semaphore = asyncio.Semaphore(concurrency)

    @property
    def provider(self) -> str:
        return f"llm:{self._llm.provider}"

    async def rerank(
        self,
        query: str,
        passages: Sequence[str],
        *,
        top_n: Optional[int] = None,
    ) -> List[Tuple[int, float]]:
        if not passages:
            return []
        scores = await asyncio.gather(*(self._score(query, p) for p in passages))
        ranked = sorted(enumerate(scores), key=lambda t: t[1], reverse=True)
        return ranked[: top_n or len(ranked)]

    async def _score(self, query: str, passage: str) -> float:
        prompt = _RERANK_PROMPT_TEMPLATE.format(query=query, passage=passage[:_MAX_PASSAGE_CHARS])
        async with self._semaphore:
            raw = await self._llm.complete(prompt, max_tokens=5, temperature=0.0)
        return _parse_score(raw) / 10.0


def _parse_score(raw: str) -> float:
    raw = raw.strip()
    for token in raw.split():
        try:
            val = float(token.rstrip(".,"))
            return max(0.0, min(val, 10.0))
        except ValueError:
            continue
    logger.debug("LLM rerank: unparseable score %r, using 0", raw)
    return 0.0
