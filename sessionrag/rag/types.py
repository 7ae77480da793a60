"""Common data structures for the indexing and search pipelines."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sessionrag.core.exceptions import ValidationError


class Granularity(str, Enum):
    """Unit a retrieval path scores: one chunk, or one whole document."""

    CHUNK = "chunk"
    DOCUMENT = "document"


class MetadataKey:
    DOCUMENT_ID = "document_id"
    THERAPIST_ID = "therapist_id"
    CLIENT_ID = "client_id"
    TIMESTAMP = "timestamp"
    CHUNK_INDEX = "chunk_index"
    TOTAL_CHUNKS = "total_chunks"
    TOKEN_COUNT = "token_count"
    TOKEN_COUNT_APPROXIMATE = "token_count_approximate"
    CHUNK_MODE = "chunk_mode"
    OVERSIZED = "oversized"
    INDEXED_AT = "indexed_at"
    CONTEXT_SUMMARY = "context_summary"
    CONTEXTUALIZED = "contextualized"
    GRANULARITY = "granularity"
    ENTRIES = "entries"


@dataclass(frozen=True)
class SessionEntry:
    """One speaker-labelled turn of a conversation."""

    speaker: str
    content: str

    @classmethod
    def coerce(cls, raw: Union["SessionEntry", Mapping[str, Any]]) -> "SessionEntry":
        if isinstance(raw, SessionEntry):
            return raw
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Session entry must be a mapping, got {type(raw).__name__}")
        return cls(speaker=str(raw.get("speaker") or "").strip(), content=str(raw.get("content") or ""))

    def render(self) -> str:
        return f"{self.speaker}: {self.content.strip()}" if self.speaker else self.content.strip()


IndexContent = Union[str, Sequence[Union[SessionEntry, Mapping[str, Any]]], None]


@dataclass
class TextChunk:
    """Chunker output: one token-bounded segment of a document."""

    text: str
    chunk_index: int
    token_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


def chunk_id_for(document_id: str, chunk_index: int) -> str:
    """Deterministic chunk id; re-indexing the same document overwrites in place."""
    return f"{document_id}_chunk_{chunk_index}"


def document_record_id(document_id: str) -> str:
    """Id of the single document-level record used by hierarchical search."""
    return f"{document_id}_document"


@dataclass
class Chunk:
    """Persisted unit: original text, its vector and position within the document."""

    id: str
    document_id: str
    text: str
    embedding: List[float]
    chunk_index: int = 0
    total_chunks: int = 1
    context_summary: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        document_id: str,
        chunk_index: int,
        text: str,
        embedding: List[float],
        *,
        total_chunks: int,
        context_summary: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "Chunk":
        return cls(
            id=chunk_id_for(document_id, chunk_index),
            document_id=document_id,
            text=text,
            embedding=embedding,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            context_summary=context_summary,
            metadata=dict(metadata or {}),
        )

    def to_result(self, score: float, *, source: str = "vector") -> "SearchResult":
        return SearchResult(
            id=self.id,
            score=score,
            text=self.text,
            embedding=list(self.embedding) if self.embedding else None,
            document_id=self.document_id,
            metadata=self.result_metadata(),
            score_source=source,
        )

    def result_metadata(self) -> Dict[str, Any]:
        meta = dict(self.metadata)
        meta[MetadataKey.DOCUMENT_ID] = self.document_id
        meta[MetadataKey.CHUNK_INDEX] = self.chunk_index
        meta[MetadataKey.TOTAL_CHUNKS] = self.total_chunks
        meta[MetadataKey.CONTEXT_SUMMARY] = self.context_summary
        return meta


@dataclass
class SearchResult:
    """A single retrieval hit. ``score`` is rescaled at every pipeline stage.

    ``score_source`` names the stage that produced the current score
    (vector, lexical, fusion, hierarchical, rerank:<provider>, rerank:lexical).
    """

    id: str
    score: float
    text: str
    embedding: Optional[List[float]] = None
    document_id: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    score_source: str = "vector"

    def with_score(self, score: float, source: str) -> "SearchResult":
        return replace(self, score=score, score_source=source, metadata=dict(self.metadata))


@dataclass(frozen=True)
class SearchFilter:
    """Candidate restriction applied before scoring. All conditions are ANDed.

    ``owner`` maps metadata fields (therapist_id, client_id, ...) to required
    values; ``document_ids`` restricts to a set of documents.
    """

    owner: Tuple[Tuple[str, str], ...] = ()
    document_ids: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        owner: Optional[Mapping[str, Any]] = None,
        document_ids: Optional[Sequence[str]] = None,
    ) -> "SearchFilter":
        pairs: List[Tuple[str, str]] = []
        for key, value in (owner or {}).items():
            if value is None:
                continue
            if not isinstance(key, str) or not key.strip():
                raise ValidationError(f"Filter field names must be non-empty strings, got {key!r}")
            if not isinstance(value, (str, int)) or str(value).strip() == "":
                raise ValidationError(
                    f"Filter value for {key!r} must be a non-empty string", details={"field": key},
                )
            pairs.append((key, str(value)))
        if isinstance(document_ids, str):
            raise ValidationError("document_ids must be a sequence of ids, not a single string")
        ids = tuple(str(d) for d in (document_ids or ()) if d is not None and str(d).strip())
        return cls(owner=tuple(sorted(pairs)), document_ids=ids)

    @property
    def is_empty(self) -> bool:
        return not self.owner and not self.document_ids

    def owner_dict(self) -> Dict[str, str]:
        return dict(self.owner)

    def matches(self, document_id: str, metadata: Mapping[str, Any]) -> bool:
        if self.document_ids and document_id not in self.document_ids:
            return False
        for key, value in self.owner:
            if key == MetadataKey.DOCUMENT_ID:
                if document_id != value:
                    return False
            elif str(metadata.get(key, "")) != value:
                return False
        return True

    def narrowed_to(self, document_ids: Sequence[str]) -> "SearchFilter":
        """Same owner conditions, restricted to ``document_ids`` (intersected if already set)."""
        ids = tuple(document_ids)
        if self.document_ids:
            ids = tuple(d for d in ids if d in self.document_ids)
        return SearchFilter(owner=self.owner, document_ids=ids)


@dataclass(frozen=True)
class SearchOptions:
    """Immutable per-call search switches."""

    limit: int = 10
    owner_filter: Optional[Mapping[str, Any]] = None
    document_ids: Optional[Tuple[str, ...]] = None
    use_hybrid: bool = False
    use_reranking: bool = True
    diversity_mode: bool = True
    diversity_lambda: float = 0.7
    min_score: float = 0.3
    overfetch_factor: int = 2
    hybrid_vector_weight: float = 0.7
    hierarchical: bool = False
    hierarchical_document_limit: int = 5
    hierarchical_min_score: float = 0.1
    hierarchical_document_weight: float = 0.7

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValidationError(f"limit must be >= 1, got {self.limit}")
        if self.overfetch_factor < 1:
            raise ValidationError(f"overfetch_factor must be >= 1, got {self.overfetch_factor}")
        for name in ("diversity_lambda", "hybrid_vector_weight", "hierarchical_document_weight"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be within [0, 1], got {value}")
        if not -1.0 <= self.min_score <= 1.0:
            raise ValidationError(f"min_score must be within [-1, 1], got {self.min_score}")
        if self.hierarchical_document_limit < 1:
            raise ValidationError("hierarchical_document_limit must be >= 1")

    @property
    def candidate_limit(self) -> int:
        return self.limit * self.overfetch_factor

    def search_filter(self) -> SearchFilter:
        return SearchFilter.build(self.owner_filter, self.document_ids)


@dataclass(frozen=True)
class DegradedResult:
    """A non-essential stage failed and a lower-quality fallback was used."""

    stage: str
    reason: str
    fallback: str


@dataclass
class IndexResult:
    document_id: str
    chunks_created: int
    vectors_stored: int
    duration: float
    contextualized: int = 0
    degraded: List[DegradedResult] = field(default_factory=list)


@dataclass
class SearchOutcome:
    query: str
    results: List[SearchResult] = field(default_factory=list)
    degraded: List[DegradedResult] = field(default_factory=list)
    candidates: int = 0

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)
