"""Vector stores: interface plus in-memory, Qdrant and SQL backends."""
from sessionrag.infra.vectorstore.base import BaseVectorStore
from sessionrag.infra.vectorstore.client import QdrantManager
from sessionrag.infra.vectorstore.collections import PayloadField, ensure_collection_exists, point_id
from sessionrag.infra.vectorstore.memory import InMemoryVectorStore
from sessionrag.infra.vectorstore.qdrant_store import QdrantVectorStore
from sessionrag.infra.vectorstore.sql_store import SqlVectorStore

__all__ = [
    "BaseVectorStore",
    "InMemoryVectorStore",
    "QdrantManager",
    "QdrantVectorStore",
    "SqlVectorStore",
    "PayloadField",
    "ensure_collection_exists",
    "point_id",
]
