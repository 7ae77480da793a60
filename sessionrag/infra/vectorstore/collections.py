"""Payload schema, collection setup, point ids and filter translation for Qdrant."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from qdrant_client.models import (
    FieldCondition,
    Filter,
    MatchAny,
    MatchValue,
    PayloadSchemaType,
    Range,
)

from sessionrag.core.exceptions import VectorstoreError
from sessionrag.infra.vectorstore.client import QdrantManager
from sessionrag.rag.types import Chunk, MetadataKey, SearchFilter

logger = logging.getLogger(__name__)

# Fixed namespace so a chunk id always maps to the same Qdrant point id.
POINT_ID_NAMESPACE = uuid.UUID("6f1c54a2-3b1e-5d0f-9a57-8d2c4e7b1a90")


class PayloadField:
    CHUNK_ID = "chunk_id"
    DOCUMENT_ID = MetadataKey.DOCUMENT_ID
    THERAPIST_ID = MetadataKey.THERAPIST_ID
    CLIENT_ID = MetadataKey.CLIENT_ID
    CHUNK_INDEX = MetadataKey.CHUNK_INDEX
    TOTAL_CHUNKS = MetadataKey.TOTAL_CHUNKS
    TEXT = "text"
    CONTEXT_SUMMARY = MetadataKey.CONTEXT_SUMMARY


_RESERVED = frozenset({
    PayloadField.CHUNK_ID, PayloadField.DOCUMENT_ID, PayloadField.CHUNK_INDEX,
    PayloadField.TOTAL_CHUNKS, PayloadField.TEXT, PayloadField.CONTEXT_SUMMARY,
})

CHUNK_PAYLOAD_SCHEMA: Dict[str, PayloadSchemaType] = {
    PayloadField.CHUNK_ID: PayloadSchemaType.KEYWORD,
    PayloadField.DOCUMENT_ID: PayloadSchemaType.KEYWORD,
    PayloadField.THERAPIST_ID: PayloadSchemaType.KEYWORD,
    PayloadField.CLIENT_ID: PayloadSchemaType.KEYWORD,
    PayloadField.CHUNK_INDEX: PayloadSchemaType.INTEGER,
}


def point_id(chunk_id: str) -> str:
    return str(uuid.uuid5(POINT_ID_NAMESPACE, chunk_id))


async def ensure_collection_exists(
    manager: QdrantManager,
    name: str,
    *,
    vector_size: int,
    distance: str = "Cosine",
) -> str:
    if await manager.collection_exists(name):
        logger.debug("Collection '%s' already exists.", name)
        return name
    logger.info("Creating collection '%s' vector_size=%d distance=%s", name, vector_size, distance)
    await manager.create_collection(name, vector_size=vector_size, distance=distance)
    await _create_payload_indexes(name, manager)
    logger.info("Collection '%s' ready.", name)
    return name


async def _create_payload_indexes(name: str, manager: QdrantManager) -> None:
    for field_name, schema in CHUNK_PAYLOAD_SCHEMA.items():
        try:
            await manager.create_payload_index(name, field_name, schema)
        except VectorstoreError as exc:
            logger.warning("Failed to create payload index '%s' on '%s': %s", field_name, name, exc)


def build_chunk_payload(chunk: Chunk) -> Dict[str, Any]:
    payload: Dict[str, Any] = {k: v for k, v in chunk.metadata.items() if k not in _RESERVED}
    payload.update({
        PayloadField.CHUNK_ID: chunk.id,
        PayloadField.DOCUMENT_ID: chunk.document_id,
        PayloadField.CHUNK_INDEX: chunk.chunk_index,
        PayloadField.TOTAL_CHUNKS: chunk.total_chunks,
        PayloadField.TEXT: chunk.text,
        PayloadField.CONTEXT_SUMMARY: chunk.context_summary,
    })
    return payload


def chunk_from_payload(payload: Dict[str, Any], vector: Any) -> Chunk:
    if isinstance(vector, dict):
        # Named vectors: the collection is created with a single unnamed one.
        vector = next(iter(vector.values()), None)
    return Chunk(
        id=str(payload[PayloadField.CHUNK_ID]),
        document_id=str(payload.get(PayloadField.DOCUMENT_ID, "")),
        text=str(payload.get(PayloadField.TEXT, "")),
        embedding=list(vector or []),
        chunk_index=int(payload.get(PayloadField.CHUNK_INDEX, 0)),
        total_chunks=int(payload.get(PayloadField.TOTAL_CHUNKS, 1)),
        context_summary=payload.get(PayloadField.CONTEXT_SUMMARY),
        metadata={k: v for k, v in payload.items() if k not in _RESERVED},
    )


def build_filter(search_filter: Optional[SearchFilter], *, min_chunk_index: Optional[int] = None) -> Optional[Filter]:
    """SearchFilter -> Qdrant Filter; every condition goes under ``must`` (AND)."""
    must: List[Any] = []
    if search_filter is not None:
        for key, value in search_filter.owner:
            must.append(FieldCondition(key=key, match=MatchValue(value=value)))
        if search_filter.document_ids:
            must.append(FieldCondition(
                key=PayloadField.DOCUMENT_ID, match=MatchAny(any=list(search_filter.document_ids)),
            ))
    if min_chunk_index is not None:
        must.append(FieldCondition(key=PayloadField.CHUNK_INDEX, range=Range(gte=min_chunk_index)))
    return Filter(must=must) if must else None
