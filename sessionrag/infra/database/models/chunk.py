"""SessionChunk ORM model: one row per indexed chunk (or per document, for the document-level store)."""
from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sessionrag.infra.database.models.base import Base, PortableJSON, TimestampMixin


class SessionChunk(Base, TimestampMixin):
    """
    Persisted chunk keyed by its deterministic id (``<document_id>_chunk_<n>``).

    Owner columns are copied out of ``meta`` so filters hit an index; the full
    metadata bag stays in ``meta``. ``granularity`` separates chunk rows from
    document-level rows sharing the table.
    """

    __tablename__ = "session_chunks"
    __table_args__ = (
        Index("ix_session_chunks_document_id", "document_id"),
        Index("ix_session_chunks_therapist_id", "therapist_id"),
        Index("ix_session_chunks_client_id", "client_id"),
        Index("ix_session_chunks_granularity_document", "granularity", "document_id"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    document_id: Mapped[str] = mapped_column(String(255), nullable=False)
    granularity: Mapped[str] = mapped_column(String(16), nullable=False, server_default="chunk")
    therapist_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    context_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    embedding: Mapped[List[float]] = mapped_column(PortableJSON, nullable=False)
    """Vector as a JSON array; similarity is computed in Python."""

    meta: Mapped[dict[str, Any]] = mapped_column("metadata", PortableJSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"SessionChunk(id={self.id!r}, document_id={self.document_id!r}, chunk_index={self.chunk_index})"
