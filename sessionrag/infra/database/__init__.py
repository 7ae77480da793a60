"""
sessionrag.infra.database – async engine, session factory and the session_chunks model.

Public API
──────────
  build_engine, build_session_factory, init_db, close_engine
  Base, SessionChunk (models)
"""
from sessionrag.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    init_db,
)
from sessionrag.infra.database.models import Base, SessionChunk

__all__ = [
    "build_engine",
    "build_session_factory",
    "init_db",
    "close_engine",
    "Base",
    "SessionChunk",
]
