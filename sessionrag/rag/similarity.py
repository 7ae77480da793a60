"""Vector and term similarity helpers shared by stores, lexical search, reranking and MMR."""
from __future__ import annotations

import math
import re
from collections import Counter
from typing import Iterable, List, Sequence, Set

STOP_WORDS: frozenset[str] = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "shall", "of", "in", "to", "for",
    "with", "on", "at", "from", "by", "about", "as", "into", "through",
    "during", "before", "after", "above", "below", "and", "but", "or",
    "not", "no", "nor", "so", "yet", "both", "each", "this", "that",
    "these", "those", "it", "its", "i", "me", "my", "we", "our", "you",
    "your", "he", "him", "his", "she", "her", "they", "them", "their",
    "what", "which", "who", "whom", "when", "where", "why", "how",
    "all", "any", "some", "such", "than", "too", "very", "just", "also",
    "then", "there", "here", "if", "because", "while", "up", "down",
    "out", "over", "again", "more", "most", "other", "only", "own", "same",
    "am", "im", "ive", "dont", "really", "like", "get", "got",
})

_WORD_RE = re.compile(r"[a-z0-9]+(?:'[a-z]+)?")


def tokenize(text: str, *, drop_stop_words: bool = True, min_length: int = 1) -> List[str]:
    """Lowercased word tokens in order; apostrophes are folded (don't -> dont)."""
    words = (w.replace("'", "") for w in _WORD_RE.findall((text or "").lower()))
    return [
        w for w in words
        if len(w) >= min_length and not (drop_stop_words and w in STOP_WORDS)
    ]


def significant_terms(text: str) -> Set[str]:
    """Stop-word-filtered terms of at least three characters."""
    return set(tokenize(text, min_length=3))


def clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    return sum(x * y for x, y in zip(a, b))


def norm(v: Sequence[float]) -> float:
    return math.sqrt(sum(x * x for x in v))


def l2_normalize(v: Sequence[float]) -> List[float]:
    n = norm(v)
    if n == 0.0:
        raise ValueError("Cannot normalize a zero vector")
    return [x / n for x in v]


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity clamped to [-1, 1]; 0.0 when either vector is zero."""
    na, nb = norm(a), norm(b)
    if na == 0.0 or nb == 0.0:
        return 0.0
    return clamp(dot(a, b) / (na * nb))


def unit_dot(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product of unit vectors, clamped to absorb float drift."""
    return clamp(dot(a, b))


def tf_cosine(text_a: str, text_b: str) -> float:
    """Term-frequency cosine over stop-word-filtered tokens, in [0, 1]."""
    ta, tb = Counter(tokenize(text_a)), Counter(tokenize(text_b))
    if not ta or not tb:
        return 0.0
    shared = sum(ta[t] * tb[t] for t in ta.keys() & tb.keys())
    if shared == 0:
        return 0.0
    denom = math.sqrt(sum(c * c for c in ta.values())) * math.sqrt(sum(c * c for c in tb.values()))
    return clamp(shared / denom, 0.0, 1.0)


def mean_vector(vectors: Iterable[Sequence[float]]) -> List[float]:
    """Unit-normalized mean of equally sized vectors."""
    vectors = list(vectors)
    if not vectors:
        raise ValueError("mean_vector needs at least one vector")
    size = len(vectors[0])
    acc = [0.0] * size
    for v in vectors:
        if len(v) != size:
            raise ValueError(f"Vector length mismatch: {len(v)} != {size}")
        for i, x in enumerate(v):
            acc[i] += x
    return l2_normalize([x / len(vectors) for x in acc])
