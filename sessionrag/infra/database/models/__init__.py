"""
sessionrag.infra.database.models – SQLAlchemy 2.0 ORM models.
"""
from sessionrag.infra.database.models.base import Base, PortableJSON, TimestampMixin
from sessionrag.infra.database.models.chunk import SessionChunk

__all__ = ["Base", "PortableJSON", "TimestampMixin", "SessionChunk"]
