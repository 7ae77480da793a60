"""SQL-backed vector store over the ``session_chunks`` table (SQLAlchemy async).

Vectors live in a JSON column and similarity is an exact dot product computed
in Python over the filtered candidate rows. Owner/document conditions are
pushed into SQL where a column exists; any other metadata condition is
checked in Python. Batch upsert and document replacement each run in one
transaction.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sessionrag.core.exceptions import NotFoundError, VectorstoreError
from sessionrag.infra.database.models import SessionChunk
from sessionrag.infra.vectorstore.base import BaseVectorStore
from sessionrag.rag.similarity import dot
from sessionrag.rag.types import Chunk, Granularity, MetadataKey, SearchFilter, SearchResult

logger = logging.getLogger(__name__)

_OWNER_COLUMNS = {
    MetadataKey.DOCUMENT_ID: SessionChunk.document_id,
    MetadataKey.THERAPIST_ID: SessionChunk.therapist_id,
    MetadataKey.CLIENT_ID: SessionChunk.client_id,
}


def _owner_value(metadata: Dict[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key)
    return None if value is None else str(value)


class SqlVectorStore(BaseVectorStore):
    backend = "sql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimension: int,
        *,
        granularity: Granularity = Granularity.CHUNK,
    ) -> None:
        super().__init__(dimension, granularity=granularity)
        self._session_factory = session_factory

    async def upsert_batch(self, chunks: Sequence[Chunk]) -> int:
        self._check_chunks(chunks)
        if not chunks:
            return 0
        try:
            async with self._session_factory() as session, session.begin():
                for chunk in chunks:
                    await session.merge(self._to_row(chunk))
        except SQLAlchemyError as exc:
            raise VectorstoreError(f"Failed to upsert {len(chunks)} chunks: {exc}", cause=exc) from exc
        return len(chunks)

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        filter: Optional[SearchFilter] = None,
        min_score: Optional[float] = None,
    ) -> List[SearchResult]:
        self._check_vector(query_vector, what="Query vector")
        chunks = await self.list_chunks(filter)
        scored = ((dot(query_vector, c.embedding), c.to_result(0.0)) for c in chunks)
        results = self._rank(scored, limit, min_score)
        logger.debug("sql search: %d candidates -> %d results", len(chunks), len(results))
        return results

    async def get(self, chunk_id: str) -> Chunk:
        try:
            async with self._session_factory() as session:
                row = await session.get(SessionChunk, chunk_id)
        except SQLAlchemyError as exc:
            raise VectorstoreError(f"Failed to load chunk {chunk_id!r}: {exc}", cause=exc) from exc
        if row is None or row.granularity != self.granularity.value:
            raise NotFoundError(f"Chunk {chunk_id!r} not found", details={"id": chunk_id})
        return self._to_chunk(row)

    async def delete(self, chunk_id: str) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    delete(SessionChunk).where(
                        SessionChunk.id == chunk_id,
                        SessionChunk.granularity == self.granularity.value,
                    )
                )
                deleted = result.rowcount
        except SQLAlchemyError as exc:
            raise VectorstoreError(f"Failed to delete chunk {chunk_id!r}: {exc}", cause=exc) from exc
        if not deleted:
            raise NotFoundError(f"Chunk {chunk_id!r} not found", details={"id": chunk_id})

    async def delete_by_filter(self, filter: SearchFilter) -> int:
        self._check_filter_for_delete(filter)
        try:
            async with self._session_factory() as session, session.begin():
                rows = await self._select(session, filter)
                ids = [r.id for r in rows]
                if ids:
                    await session.execute(delete(SessionChunk).where(SessionChunk.id.in_(ids)))
        except SQLAlchemyError as exc:
            raise VectorstoreError(f"Failed to delete by filter: {exc}", cause=exc) from exc
        if not ids:
            raise NotFoundError("No chunks match the delete filter", details={"filter": filter.owner_dict()})
        return len(ids)

    async def list_chunks(self, filter: Optional[SearchFilter] = None) -> List[Chunk]:
        try:
            async with self._session_factory() as session:
                rows = await self._select(session, filter)
        except SQLAlchemyError as exc:
            raise VectorstoreError(f"Failed to list chunks: {exc}", cause=exc) from exc
        return [self._to_chunk(r) for r in rows]

    async def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        self._check_chunks(chunks)
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    delete(SessionChunk).where(
                        SessionChunk.document_id == document_id,
                        SessionChunk.granularity == self.granularity.value,
                        SessionChunk.chunk_index >= len(chunks),
                    )
                )
                for chunk in chunks:
                    await session.merge(self._to_row(chunk))
        except SQLAlchemyError as exc:
            raise VectorstoreError(
                f"Failed to replace document {document_id!r}: {exc}", cause=exc, details={"document_id": document_id},
            ) from exc
        return len(chunks)

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self._session_factory() as session:
                count = await session.scalar(
                    select(func.count()).select_from(SessionChunk).where(
                        SessionChunk.granularity == self.granularity.value,
                    )
                )
        except SQLAlchemyError as exc:
            return {"status": "error", "backend": self.backend, "error": str(exc)}
        return {"status": "ok", "backend": self.backend, "records": int(count or 0)}

    async def _select(self, session: AsyncSession, filter: Optional[SearchFilter]) -> List[SessionChunk]:
        stmt = select(SessionChunk).where(SessionChunk.granularity == self.granularity.value)
        residual = False
        if filter is not None:
            for key, value in filter.owner:
                column = _OWNER_COLUMNS.get(key)
                if column is None:
                    residual = True
                else:
                    stmt = stmt.where(column == value)
            if filter.document_ids:
                stmt = stmt.where(SessionChunk.document_id.in_(filter.document_ids))
        result = await session.execute(stmt.order_by(SessionChunk.document_id, SessionChunk.chunk_index))
        rows = list(result.scalars().all())
        if residual:
            rows = [r for r in rows if filter.matches(r.document_id, r.meta or {})]
        return rows

    def _to_row(self, chunk: Chunk) -> SessionChunk:
        meta = dict(chunk.metadata)
        return SessionChunk(
            id=chunk.id,
            document_id=chunk.document_id,
            granularity=self.granularity.value,
            therapist_id=_owner_value(meta, MetadataKey.THERAPIST_ID),
            client_id=_owner_value(meta, MetadataKey.CLIENT_ID),
            chunk_index=chunk.chunk_index,
            total_chunks=chunk.total_chunks,
            text=chunk.text,
            context_summary=chunk.context_summary,
            embedding=[float(x) for x in chunk.embedding],
            meta=meta,
        )

    @staticmethod
    def _to_chunk(row: SessionChunk) -> Chunk:
        return Chunk(
            id=row.id,
            document_id=row.document_id,
            text=row.text,
            embedding=[float(x) for x in row.embedding],
            chunk_index=row.chunk_index,
            total_chunks=row.total_chunks,
            context_summary=row.context_summary,
            metadata=dict(row.meta or {}),
        )
