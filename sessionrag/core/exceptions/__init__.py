"""
Project exception system.

Usage:
    from sessionrag.core.exceptions import ProjectError, ValidationError, exception_factory

    # Built-in types
    raise ValidationError("document_id is required", details={"field": "document_id"})

    # Add new type on demand
    QueueFullError = exception_factory("QueueFullError", code="QUEUE_FULL", http_status=503)
    raise QueueFullError("Indexing queue is full", details={"size": 100})
"""
from sessionrag.core.exceptions.base import ProjectError, exception_factory
from sessionrag.core.exceptions.errors import (
    ConfigurationError,
    ConsistencyError,
    IndexingError,
    NotFoundError,
    ProviderError,
    QueueFullError,
    ValidationError,
    VectorstoreError,
    is_retryable,
)

__all__ = [
    "ProjectError",
    "exception_factory",
    "ConfigurationError",
    "ConsistencyError",
    "IndexingError",
    "NotFoundError",
    "ProviderError",
    "QueueFullError",
    "ValidationError",
    "VectorstoreError",
    "is_retryable",
]
