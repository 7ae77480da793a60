"""Service layer: RAG wiring from config and session-store indexing hooks."""
from sessionrag.services.indexing_service import SessionIndexingService, SessionRecord
from sessionrag.services.rag_service import RAGService, build_embedding_client, build_vector_stores

__all__ = [
    "RAGService",
    "SessionIndexingService",
    "SessionRecord",
    "build_embedding_client",
    "build_vector_stores",
]
