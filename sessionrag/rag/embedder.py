"""Embedder: wraps BaseEmbeddingClient with preprocessing, batching, retries,
timeouts, bounded concurrency and vector validation."""
from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sessionrag.core.exceptions import ConfigurationError, ConsistencyError, ProviderError, ValidationError
from sessionrag.core.logger import log_context

if TYPE_CHECKING:
    from sessionrag.clients.embedding import BaseEmbeddingClient

logger = logging.getLogger(__name__)

_NORM_TOLERANCE = 0.01


class Embedder:
    """Batch embed texts via any BaseEmbeddingClient.

    Output vectors are always unit length and positionally aligned with the
    input. Only ``ProviderError(retryable=True)`` and timeouts are retried;
    anything else surfaces on the first attempt.

    ``embed_batch([])`` returns ``[]`` without calling the provider.
    """

    def __init__(
        self,
        client: "BaseEmbeddingClient",
        *,
        batch_size: int = 128,
        max_item_chars: int = 200_000,
        max_batch_chars: int = 1_000_000,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        timeout: float = 60.0,
        concurrency: int = 4,
        expected_dimension: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._batch_size = batch_size
        self._max_item_chars = max_item_chars
        self._max_batch_chars = max_batch_chars
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._timeout = timeout
        self._concurrency = max(1, concurrency)
        self._sleep = sleep

        if expected_dimension is not None and client.dimension != expected_dimension:
            raise ConfigurationError(
                f"Embedding model '{client.model_name}' produces {client.dimension}-d vectors "
                f"but the vector store expects {expected_dimension}-d. "
                f"Change EMBEDDING_DIMENSIONS or use a matching embedding model.",
            )

    @property
    def model_name(self) -> str:
        return self._client.model_name

    @property
    def provider(self) -> str:
        return self._client.provider

    def dimensions(self) -> int:
        return self._client.dimension

    def provider_info(self) -> Dict[str, Any]:
        return {
            "provider": self._client.provider,
            "model": self._client.model_name,
            "dimensions": self._client.dimension,
            "cost_per_1k_tokens": self._client.cost_per_1k_tokens,
            "batch_size": self._batch_size,
        }

    async def test_connection(self) -> bool:
        return await self._client.test_connection()

    async def embed_one(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        prepared = [self._prepare(t, i) for i, t in enumerate(texts)]
        batches = self._batches(prepared)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _run(batch_no: int, batch: List[str]) -> List[List[float]]:
            async with semaphore:
                return await self._embed_batch_with_retry(batch_no, batch)

        tasks = [asyncio.ensure_future(_run(n, b)) for n, b in enumerate(batches)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        vectors = [v for batch_vectors in results for v in batch_vectors]
        if len(vectors) != len(texts):
            raise ConsistencyError(
                f"Embedding count mismatch: got {len(vectors)} vectors for {len(texts)} texts",
                details={"expected": len(texts), "actual": len(vectors)},
            )
        return vectors

    def _prepare(self, text: str, position: int) -> str:
        if not isinstance(text, str):
            raise ValidationError(
                f"Embedding input at position {position} must be a string", details={"position": position},
            )
        cleaned = " ".join(text.split())
        if not cleaned:
            raise ValidationError(
                f"Embedding input at position {position} is empty", details={"position": position},
            )
        if len(cleaned) > self._max_item_chars:
            logger.warning(
                "Truncating embedding input %d from %d to %d chars",
                position, len(cleaned), self._max_item_chars,
            )
            cleaned = cleaned[: self._max_item_chars]
        return cleaned

    def _batches(self, texts: List[str]) -> List[List[str]]:
        batches: List[List[str]] = []
        current: List[str] = []
        chars = 0
        for text in texts:
            if current and (len(current) >= self._batch_size or chars + len(text) > self._max_batch_chars):
                batches.append(current)
                current, chars = [], 0
            current.append(text)
            chars += len(text)
        if current:
            batches.append(current)
        return batches

    async def _embed_batch_with_retry(self, batch_no: int, batch: List[str]) -> List[List[float]]:
        attempt = 0
        while True:
            attempt += 1
            started = time.perf_counter()
            try:
                raw = await asyncio.wait_for(self._client.embed(batch), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                error = ProviderError(
                    f"{self.provider} embedding timed out after {self._timeout}s",
                    retryable=True, provider=self.provider, cause=exc,
                )
            except ProviderError as exc:
                error = exc
            else:
                logger.debug(
                    "Embedded batch %d (%d items) in %.3fs",
                    batch_no, len(batch), time.perf_counter() - started,
                )
                return self._validate(raw, len(batch))

            if not error.retryable:
                error.attempts = attempt
                error.details["attempts"] = attempt
                logger.error(
                    "Embedding batch %d failed (not retryable): %s", batch_no, error.message,
                    extra=log_context(provider=self.provider, attempts=attempt, status_code=error.status_code),
                )
                raise error
            if attempt > self._max_retries:
                logger.error(
                    "Embedding batch %d failed after %d attempts: %s", batch_no, attempt, error.message,
                    extra=log_context(provider=self.provider, attempts=attempt),
                )
                raise ProviderError(
                    f"{self.provider} embedding failed after {attempt} attempts: {error.message}",
                    retryable=True,
                    attempts=attempt,
                    provider=self.provider,
                    status_code=error.status_code,
                    cause=error,
                ) from error
            delay = self._retry_base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Embedding batch %d attempt %d/%d failed (%s); retrying in %.1fs",
                batch_no, attempt, self._max_retries + 1, error.message, delay,
            )
            await self._sleep(delay)

    def _validate(self, vectors: List[List[float]], expected: int) -> List[List[float]]:
        if len(vectors) != expected:
            raise ConsistencyError(
                f"Provider returned {len(vectors)} vectors for a batch of {expected}",
                details={"expected": expected, "actual": len(vectors)},
            )
        dim = self._client.dimension
        out: List[List[float]] = []
        for i, vec in enumerate(vectors):
            if len(vec) != dim:
                raise ConsistencyError(
                    f"Vector {i} has dimension {len(vec)}, expected {dim}",
                    details={"expected": dim, "actual": len(vec)},
                )
            if not all(math.isfinite(x) for x in vec):
                raise ConsistencyError(f"Vector {i} contains non-finite values")
            norm = math.sqrt(sum(x * x for x in vec))
            if norm == 0.0:
                raise ConsistencyError(f"Vector {i} is all zeros")
            if abs(norm - 1.0) > _NORM_TOLERANCE:
                if self._client.normalized:
                    logger.warning("Vector %d norm %.4f drifted from 1; renormalizing", i, norm)
                out.append([x / norm for x in vec])
            else:
                out.append(list(vec))
        return out
