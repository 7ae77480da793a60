"""Background indexing: a bounded queue drained by a small worker pool.

Jobs for the same document run one at a time, in submission order; jobs for
different documents run concurrently. A failed job is logged with its
document id and dropped; it never reaches the code that submitted it.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List

from sessionrag.core.exceptions import ProjectError, QueueFullError, ValidationError
from sessionrag.core.logger import log_context
from sessionrag.rag.types import IndexContent, MetadataKey

if TYPE_CHECKING:
    from sessionrag.rag.orchestrator import RAGOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class IndexJob:
    document_id: str
    content: IndexContent
    metadata: Dict[str, Any] = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.monotonic)


class IndexingQueue:
    def __init__(self, orchestrator: "RAGOrchestrator", *, maxsize: int = 100, workers: int = 2) -> None:
        if maxsize < 1 or workers < 1:
            raise ValueError("maxsize and workers must be >= 1")
        self._orchestrator = orchestrator
        self._queue: "asyncio.Queue[IndexJob]" = asyncio.Queue(maxsize=maxsize)
        self._worker_count = workers
        self._workers: List[asyncio.Task] = []
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(n), name=f"sessionrag-indexer-{n}")
            for n in range(self._worker_count)
        ]
        logger.info("Indexing queue started with %d workers", self._worker_count)

    async def stop(self, *, drain: bool = True) -> None:
        """Stop the workers, first waiting for queued jobs when ``drain`` is set."""
        if not self._workers:
            return
        if drain:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Indexing queue stopped (processed=%d, failed=%d)", self.processed, self.failed)

    async def join(self) -> None:
        await self._queue.join()

    async def submit(self, content: IndexContent, metadata: Dict[str, Any]) -> IndexJob:
        """Enqueue a job, waiting for room when the queue is full."""
        job = self._job(content, metadata)
        await self._queue.put(job)
        return job

    def try_submit(self, content: IndexContent, metadata: Dict[str, Any]) -> IndexJob:
        """Enqueue without waiting. Raises QueueFullError when the queue is at capacity."""
        job = self._job(content, metadata)
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            raise QueueFullError(
                "Indexing queue is full",
                details={"size": self._queue.maxsize, MetadataKey.DOCUMENT_ID: job.document_id},
            ) from None
        return job

    @staticmethod
    def _job(content: IndexContent, metadata: Dict[str, Any]) -> IndexJob:
        document_id = (metadata or {}).get(MetadataKey.DOCUMENT_ID)
        if document_id is None or not str(document_id).strip():
            raise ValidationError("document_id is required", details={"field": MetadataKey.DOCUMENT_ID})
        return IndexJob(document_id=str(document_id), content=content, metadata=dict(metadata))

    async def _worker(self, number: int) -> None:
        logger.debug("Indexing worker %d started", number)
        try:
            while True:
                job = await self._queue.get()
                try:
                    await self._run(job)
                finally:
                    self._queue.task_done()
        finally:
            logger.debug("Indexing worker %d stopped", number)

    async def _run(self, job: IndexJob) -> None:
        async with self._document_lock(job.document_id):
            try:
                result = await self._orchestrator.index(job.content, job.metadata)
            except Exception as exc:
                self.failed += 1
                context: Dict[str, Any] = exc.log_fields() if isinstance(exc, ProjectError) else {}
                context.update(
                    document_id=job.document_id,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                    waited=round(time.monotonic() - job.submitted_at, 3),
                )
                logger.exception(
                    "Background indexing failed for document %s", job.document_id,
                    extra=log_context(**context),
                )
                return
        self.processed += 1
        logger.debug("Background indexing done for %s (%d chunks)", job.document_id, result.chunks_created)

    @asynccontextmanager
    async def _document_lock(self, document_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[document_id] -= 1
            if self._lock_users[document_id] == 0:
                del self._lock_users[document_id]
                self._locks.pop(document_id, None)

    @property
    def active_documents(self) -> int:
        return len(self._locks)
