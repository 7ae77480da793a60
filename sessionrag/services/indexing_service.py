"""SessionIndexingService: turns session-store events into background index jobs.

The session store is the system of record; the vector index is a derived
projection. Nothing here may fail the write that triggered it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from sessionrag.core.exceptions import NotFoundError, QueueFullError, ValidationError
from sessionrag.core.logger import log_context
from sessionrag.rag.types import MetadataKey, SessionEntry

if TYPE_CHECKING:
    from sessionrag.rag.indexing_queue import IndexingQueue
    from sessionrag.rag.orchestrator import RAGOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    """The fields of a stored session that indexing needs."""

    session_id: str
    therapist_id: Optional[str] = None
    client_id: Optional[str] = None
    entries: List[SessionEntry] = field(default_factory=list)
    transcript: Optional[str] = None
    start_time: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "SessionRecord":
        if not isinstance(raw, Mapping):
            raise ValidationError(f"session record must be a mapping, got {type(raw).__name__}")
        session_id = raw.get("session_id") or raw.get("id")
        if not session_id:
            raise ValidationError("session record needs an id", details={"field": "session_id"})
        entries = raw.get("entries") or []
        if not isinstance(entries, (list, tuple)):
            raise ValidationError("session entries must be a list", details={"field": "entries"})
        return cls(
            session_id=str(session_id),
            therapist_id=raw.get("therapist_id"),
            client_id=raw.get("client_id"),
            entries=[SessionEntry.coerce(e) for e in entries],
            transcript=raw.get("transcript"),
            start_time=raw.get("start_time"),
        )

    def index_metadata(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {MetadataKey.DOCUMENT_ID: self.session_id}
        if self.therapist_id is not None:
            meta[MetadataKey.THERAPIST_ID] = str(self.therapist_id)
        if self.client_id is not None:
            meta[MetadataKey.CLIENT_ID] = str(self.client_id)
        if self.start_time:
            meta[MetadataKey.TIMESTAMP] = self.start_time
        return meta


class SessionIndexingService:
    def __init__(self, queue: "IndexingQueue", orchestrator: "RAGOrchestrator") -> None:
        self._queue = queue
        self._orchestrator = orchestrator

    def on_entry_added(self, session: Union[SessionRecord, Mapping[str, Any]]) -> bool:
        """Schedule a re-index of the whole session. Returns False when the job was not queued."""
        try:
            record = session if isinstance(session, SessionRecord) else SessionRecord.from_mapping(session)
        except ValidationError as exc:
            logger.error("Skipping indexing for malformed session record: %s", exc)
            return False

        if record.entries:
            content: Any = list(record.entries)
        elif record.transcript and record.transcript.strip():
            content = record.transcript
        else:
            logger.debug("Session %s has nothing to index yet", record.session_id)
            return False

        try:
            self._queue.try_submit(content, record.index_metadata())
        except QueueFullError as exc:
            logger.warning(
                "Indexing queue full; session %s will be indexed on its next update", record.session_id,
                extra=log_context(document_id=record.session_id, queue_size=exc.details.get("size")),
            )
            return False
        return True

    async def on_session_deleted(self, session_id: str) -> int:
        """Remove the session's chunks. A session that was never indexed deletes nothing."""
        try:
            return await self._orchestrator.delete_document(session_id)
        except NotFoundError:
            logger.debug("Session %s had no indexed chunks", session_id)
            return 0
