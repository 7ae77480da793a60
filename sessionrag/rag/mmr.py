"""Maximal Marginal Relevance selection."""
from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from sessionrag.rag.similarity import tf_cosine, unit_dot
from sessionrag.rag.types import SearchResult

PairSimilarity = Callable[[SearchResult, SearchResult], float]


def pair_similarity(a: SearchResult, b: SearchResult) -> float:
    """Dot product when both carry same-size embeddings, else term-frequency cosine on the text.

    Decided per pair: one candidate without a vector does not switch the
    whole set to text similarity.
    """
    if a.embedding and b.embedding and len(a.embedding) == len(b.embedding):
        return unit_dot(a.embedding, b.embedding)
    return tf_cosine(a.text, b.text)


def mmr_select(
    candidates: Sequence[SearchResult],
    top_k: int,
    *,
    lambda_: float = 0.7,
    similarity: PairSimilarity = pair_similarity,
) -> List[SearchResult]:
    """Pick up to ``top_k`` candidates maximizing λ·rel − (1−λ)·max sim to picks so far.

    Relevance is each candidate's score divided by the top score, so fused
    (RRF) and reranked scales weigh the same against similarity. The most
    relevant candidate is always picked first; ties go to the more relevant
    candidate. With λ = 1 the output is the relevance order, truncated.
    Returned in pick order.
    """
    if top_k <= 0 or not candidates:
        return []
    seen = set()
    pool: List[SearchResult] = []
    for c in sorted(candidates, key=lambda r: r.score, reverse=True):
        if c.id not in seen:
            seen.add(c.id)
            pool.append(c)
    if lambda_ >= 1.0:
        return pool[:top_k]

    top = pool[0].score
    relevance: Dict[str, float] = {c.id: (c.score / top if top > 0 else c.score) for c in pool}
    selected = [pool.pop(0)]
    max_sim: Dict[str, float] = {c.id: similarity(c, selected[0]) for c in pool}

    while pool and len(selected) < top_k:
        best_idx = 0
        best_val = float("-inf")
        for idx, c in enumerate(pool):
            value = lambda_ * relevance[c.id] - (1.0 - lambda_) * max_sim[c.id]
            if value > best_val:
                best_val = value
                best_idx = idx
        chosen = pool.pop(best_idx)
        selected.append(chosen)
        for c in pool:
            sim = similarity(c, chosen)
            if sim > max_sim[c.id]:
                max_sim[c.id] = sim
    return selected
