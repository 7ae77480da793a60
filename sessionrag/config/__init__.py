"""
sessionrag config: frozen dataclasses loaded from env.

Load from env: load_rag_config(), load_qdrant_config(), load_database_config().
"""
from sessionrag.config.database import DatabaseConfig, load_database_config
from sessionrag.config.qdrant import QdrantConfig, load_qdrant_config
from sessionrag.config.rag import RAGConfig, load_rag_config

__all__ = [
    "DatabaseConfig",
    "load_database_config",
    "QdrantConfig",
    "load_qdrant_config",
    "RAGConfig",
    "load_rag_config",
]
