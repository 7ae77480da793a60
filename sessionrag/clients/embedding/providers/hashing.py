"""Deterministic feature-hashing embedder for tests and offline runs.

Each stop-word-filtered token is hashed (blake2b, so stable across processes)
to a bucket and a sign; the bag of words is then L2-normalized. Texts sharing
words land close together, and the same text always maps to the same vector.
"""
from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Union

from sessionrag.clients.embedding.base import BaseEmbeddingClient
from sessionrag.rag.similarity import l2_normalize, tokenize


class HashingEmbeddingClient(BaseEmbeddingClient):
    def __init__(self, dimensions: int = 256, *, model: str = "feature-hash-v1") -> None:
        if dimensions < 8:
            raise ValueError("dimensions must be >= 8")
        self._dimension = dimensions
        self._model = model

    @property
    def provider(self) -> str:
        return "hashing"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: Union[str, List[str]]) -> List[List[float]]:
        inputs = [text] if isinstance(text, str) else text
        return [self.vector(t) for t in inputs]

    def vector(self, text: str) -> List[float]:
        tokens = tokenize(text) or tokenize(text, drop_stop_words=False) or [text.strip().lower() or "<empty>"]
        acc = [0.0] * self._dimension
        for token in tokens:
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "big")
            sign = 1.0 if value & 1 else -1.0
            acc[(value >> 1) % self._dimension] += sign
        if not any(acc):
            # Every token cancelled out; fall back to a single bucket.
            acc[0] = 1.0
        return l2_normalize(acc)

    async def test_connection(self) -> bool:
        return True


def hashing_builder(config: Dict[str, Any]) -> HashingEmbeddingClient:
    return HashingEmbeddingClient(
        dimensions=int(config.get("dimensions") or 256),
        model=config.get("model") or "feature-hash-v1",
    )
