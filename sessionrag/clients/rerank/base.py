"""Relevance scoring interface: (query, passages) -> [(passage index, score)]."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple


class BaseRerankClient(ABC):
    """Scores passages jointly with the query (cross-encoder style).

    ``rerank`` returns ``(index, score)`` pairs, scores in [0, 1], best first.
    Passages the provider drops are simply absent from the output. Failures
    are raised as ``ProviderError``.
    """

    @property
    @abstractmethod
    def provider(self) -> str:
        ...

    @abstractmethod
    async def rerank(
        self,
        query: str,
        passages: Sequence[str],
        *,
        top_n: Optional[int] = None,
    ) -> List[Tuple[int, float]]:
        ...

    async def aclose(self) -> None:
        return None
