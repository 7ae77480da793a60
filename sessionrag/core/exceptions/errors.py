"""
Built-in exception types. Add new ones here or via exception_factory().
"""
from __future__ import annotations

from typing import Any, Optional

from sessionrag.core.exceptions.base import ProjectError, exception_factory


class ConfigurationError(ProjectError):
    """Invalid or missing configuration, or incompatible component wiring."""

    default_code = "CONFIGURATION_ERROR"
    default_http_status = 500


class ValidationError(ProjectError):
    """Input rejected before any external call. Never retried."""

    default_code = "VALIDATION_ERROR"
    default_http_status = 400


class NotFoundError(ProjectError):
    """Get/delete targeted an id or filter with zero matches."""

    default_code = "NOT_FOUND"
    default_http_status = 404


class ConsistencyError(ProjectError):
    """Embedding count or vector dimension does not line up. Always fatal."""

    default_code = "CONSISTENCY_ERROR"
    default_http_status = 500


class ProviderError(ProjectError):
    """Embedding, LLM or rerank provider call failed.

    ``retryable`` marks transient failures (rate limit, 5xx, timeout);
    ``attempts`` is filled in once the retry budget has been spent.
    """

    default_code = "PROVIDER_ERROR"
    default_http_status = 502

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        attempts: int = 1,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.retryable = retryable
        self.attempts = attempts
        self.provider = provider
        self.status_code = status_code
        self.details.setdefault("retryable", retryable)
        self.details.setdefault("attempts", attempts)
        if provider:
            self.details.setdefault("provider", provider)


class VectorstoreError(ProjectError):
    """Vector storage engine (Qdrant, SQL) operation failed."""

    default_code = "VECTORSTORE_ERROR"
    default_http_status = 502


class IndexingError(ProjectError):
    """Indexing failed after validation; details carry the document id."""

    default_code = "INDEXING_ERROR"
    default_http_status = 500


QueueFullError = exception_factory("QueueFullError", code="QUEUE_FULL", http_status=503)


def is_retryable(exc: BaseException) -> bool:
    """True for ProviderErrors flagged retryable."""
    return isinstance(exc, ProviderError) and exc.retryable
