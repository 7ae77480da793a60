"""BM25 lexical search at chunk granularity.

Statistics (document frequency, average length) are computed over the
filtered candidate set, so an owner-scoped query sees owner-scoped idf.
The candidate set is scanned in memory per query.
"""
from __future__ import annotations

import logging
import math
from collections import Counter
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from sessionrag.core.exceptions import ConfigurationError
from sessionrag.rag.similarity import tokenize
from sessionrag.rag.types import Granularity, SearchFilter, SearchResult

if TYPE_CHECKING:
    from sessionrag.infra.vectorstore import BaseVectorStore

logger = logging.getLogger(__name__)


class BM25Scorer:
    """Okapi BM25 over pre-tokenized documents.

    score(q, d) = Σ idf(t) · tf·(k1+1) / (tf + k1·(1 − b + b·|d|/avgdl))
    idf(t)      = ln(1 + (N − df + 0.5) / (df + 0.5))
    """

    def __init__(self, documents: Sequence[Sequence[str]], *, k1: float = 1.5, b: float = 0.75) -> None:
        self.k1 = k1
        self.b = b
        self._tfs: List[Counter] = [Counter(doc) for doc in documents]
        self._lengths = [len(doc) for doc in documents]
        self._n = len(documents)
        self._avgdl = (sum(self._lengths) / self._n) if self._n else 0.0
        df: Counter = Counter()
        for tf in self._tfs:
            df.update(tf.keys())
        self._df: Dict[str, int] = dict(df)

    def idf(self, term: str) -> float:
        df = self._df.get(term, 0)
        return math.log(1.0 + (self._n - df + 0.5) / (df + 0.5))

    def score(self, query_terms: Sequence[str], index: int) -> float:
        tf_map = self._tfs[index]
        dl = self._lengths[index]
        if not dl or not self._avgdl:
            return 0.0
        score = 0.0
        for term in set(query_terms):
            tf = tf_map.get(term, 0)
            if tf == 0:
                continue
            numerator = tf * (self.k1 + 1)
            denominator = tf + self.k1 * (1 - self.b + self.b * dl / self._avgdl)
            score += self.idf(term) * numerator / denominator
        return score

    def score_all(self, query_terms: Sequence[str]) -> List[float]:
        return [self.score(query_terms, i) for i in range(self._n)]


class LexicalSearcher:
    """BM25 over the chunks a vector store holds for the active filter."""

    def __init__(self, store: "BaseVectorStore", *, k1: float = 1.5, b: float = 0.75) -> None:
        if store.granularity != Granularity.CHUNK:
            raise ConfigurationError(
                "Lexical search runs at chunk granularity; the store holds "
                f"{store.granularity.value}-level records",
            )
        self._store = store
        self._k1 = k1
        self._b = b

    @property
    def granularity(self) -> Granularity:
        return Granularity.CHUNK

    async def search(
        self,
        query: str,
        *,
        limit: int = 20,
        filter: Optional[SearchFilter] = None,
    ) -> List[SearchResult]:
        query_terms = tokenize(query)
        if not query_terms:
            return []
        chunks = await self._store.list_chunks(filter)
        if not chunks:
            return []
        scorer = BM25Scorer([tokenize(c.text) for c in chunks], k1=self._k1, b=self._b)
        scored = [
            c.to_result(s, source="lexical")
            for c, s in zip(chunks, scorer.score_all(query_terms))
            if s > 0.0
        ]
        scored.sort(key=lambda r: (-r.score, r.id))
        logger.debug("BM25: %d candidates, %d with matching terms", len(chunks), len(scored))
        return scored[:limit]
