"""Async Qdrant access for the vector stores.

Writes (create, upsert, delete) are retried on transport errors and 5xx
answers with capped exponential backoff; reads fail fast. Every failure
leaves this module as a VectorstoreError.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, Sequence, TypeVar, cast

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Distance,
    Filter,
    FilterSelector,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    Record,
    ScoredPoint,
    UpdateResult,
    VectorParams,
)

from sessionrag.core.exceptions import VectorstoreError

if TYPE_CHECKING:
    from sessionrag.config import QdrantConfig

logger = logging.getLogger(__name__)

_F = TypeVar("_F", bound=Callable[..., Any])
_TRANSIENT = (ResponseHandlingException, asyncio.TimeoutError)
WRITE_RETRIES = 3
BACKOFF_BASE = 0.5
BACKOFF_CAP = 4.0
SCROLL_PAGE_SIZE = 256


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is None or exc.status_code >= 500
    return isinstance(exc, _TRANSIENT)


def retry_writes(func: _F) -> _F:
    """Retry a write on transient Qdrant failures; client errors (4xx) are raised at once."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        op = func.__name__
        for attempt in range(WRITE_RETRIES + 1):
            try:
                return await func(*args, **kwargs)
            except (UnexpectedResponse, *_TRANSIENT) as exc:
                if not _is_transient(exc):
                    raise VectorstoreError(
                        f"Qdrant rejected {op}: {exc}", details={"operation": op}, cause=exc,
                    ) from exc
                if attempt == WRITE_RETRIES:
                    raise VectorstoreError(
                        f"Qdrant {op} failed after {attempt + 1} attempts: {exc}",
                        details={"operation": op, "attempts": attempt + 1},
                        cause=exc,
                    ) from exc
                delay = min(BACKOFF_BASE * (2 ** attempt), BACKOFF_CAP)
                logger.warning(
                    "Qdrant %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    op, attempt + 1, WRITE_RETRIES + 1, exc, delay,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    return cast(_F, wrapper)


@contextmanager
def _read_errors(op: str, collection: str) -> Iterator[None]:
    try:
        yield
    except UnexpectedResponse as exc:
        if exc.status_code == 404:
            raise VectorstoreError(
                f"Collection '{collection}' does not exist", details={"collection": collection}, cause=exc,
            ) from exc
        raise VectorstoreError(
            f"Qdrant {op} failed on '{collection}': {exc}", details={"collection": collection}, cause=exc,
        ) from exc
    except _TRANSIENT as exc:
        raise VectorstoreError(
            f"Qdrant {op} timed out on '{collection}': {exc}", details={"collection": collection}, cause=exc,
        ) from exc


class QdrantManager:
    """Thin async facade over AsyncQdrantClient; one instance is shared by the chunk and document stores."""

    def __init__(
        self,
        config: Optional["QdrantConfig"] = None,
        *,
        client: Optional[AsyncQdrantClient] = None,
    ) -> None:
        if client is None:
            if config is None:
                from sessionrag.config import load_qdrant_config
                config = load_qdrant_config()
            client = AsyncQdrantClient(url=config.url, api_key=config.api_key, timeout=config.timeout)
            logger.info("Qdrant client created for %s", config.url)
        self._client = client

    async def collection_exists(self, name: str) -> bool:
        with _read_errors("collection_exists", name):
            return await self._client.collection_exists(name)

    @retry_writes
    async def create_collection(self, name: str, vector_size: int, distance: str = "Cosine") -> bool:
        """Create ``name``; returns False when another writer created it first."""
        try:
            metric = Distance[distance.upper()]
        except KeyError:
            raise VectorstoreError(
                f"Unknown distance {distance!r}; expected Cosine, Dot or Euclid", details={"collection": name},
            ) from None
        try:
            await self._client.create_collection(
                collection_name=name, vectors_config=VectorParams(size=vector_size, distance=metric),
            )
        except UnexpectedResponse as exc:
            if exc.status_code == 409:
                return False
            raise
        logger.info("Created Qdrant collection %s (size=%d, distance=%s)", name, vector_size, metric.value)
        return True

    async def create_payload_index(self, name: str, field_name: str, schema: PayloadSchemaType) -> None:
        with _read_errors(f"create_payload_index({field_name})", name):
            await self._client.create_payload_index(collection_name=name, field_name=field_name, field_schema=schema)

    @retry_writes
    async def upsert_points(self, collection: str, points: List[PointStruct]) -> Optional[UpdateResult]:
        if not points:
            return None
        result = await self._client.upsert(collection_name=collection, points=points, wait=True)
        logger.debug("Upserted %d points into %s", len(points), collection)
        return result

    async def search(
        self,
        collection: str,
        query_vector: Sequence[float],
        query_filter: Optional[Filter] = None,
        limit: int = 10,
        score_threshold: Optional[float] = None,
    ) -> List[ScoredPoint]:
        with _read_errors("search", collection):
            response = await self._client.query_points(
                collection_name=collection,
                query=list(query_vector),
                query_filter=query_filter,
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
                with_vectors=True,
            )
        return list(response.points or [])

    async def retrieve(self, collection: str, point_ids: List[str]) -> List[Record]:
        with _read_errors("retrieve", collection):
            return list(await self._client.retrieve(
                collection_name=collection, ids=point_ids, with_payload=True, with_vectors=True,
            ))

    async def scroll_all(self, collection: str, scroll_filter: Optional[Filter] = None) -> List[Record]:
        """Every point matching ``scroll_filter``, with payload and vectors."""
        records: List[Record] = []
        offset: Any = None
        with _read_errors("scroll", collection):
            while True:
                page, offset = await self._client.scroll(
                    collection_name=collection,
                    scroll_filter=scroll_filter,
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=True,
                )
                records.extend(page)
                if offset is None:
                    return records

    @retry_writes
    async def delete_points(self, collection: str, point_ids: List[str]) -> Optional[UpdateResult]:
        if not point_ids:
            return None
        return await self._client.delete(
            collection_name=collection, points_selector=PointIdsList(points=point_ids), wait=True,  # type: ignore[arg-type]
        )

    @retry_writes
    async def delete_by_filter(self, collection: str, points_filter: Filter) -> UpdateResult:
        return await self._client.delete(
            collection_name=collection, points_selector=FilterSelector(filter=points_filter), wait=True,
        )

    async def count_points(self, collection: str, count_filter: Optional[Filter] = None, exact: bool = True) -> int:
        with _read_errors("count", collection):
            result = await self._client.count(collection_name=collection, count_filter=count_filter, exact=exact)
        return result.count

    async def close(self) -> None:
        await self._client.close()
