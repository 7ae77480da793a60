"""
Root of the sessionrag error hierarchy.

Every error carries a stable ``code`` for callers to branch on, the HTTP
status a query surface should answer with, and a ``details`` dict that ends
up in structured log context. New types can be declared as subclasses or
minted with exception_factory().
"""
from __future__ import annotations

import traceback
from typing import Any, Dict, Optional, Type


class ProjectError(Exception):
    """
    Base class for errors raised by sessionrag.

    Attributes:
        message: Human-readable description.
        code: Stable slug; the class ``default_code`` unless overridden.
        http_status: Status for API responses; the class ``default_http_status`` unless overridden.
        details: Context such as the document id or the attempt count.
        cause: The lower-level exception this one wraps, if any.
    """

    default_code: str = "ERROR"
    default_http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or type(self).default_code
        self.http_status = http_status if http_status is not None else type(self).default_http_status
        self.details: Dict[str, Any] = dict(details) if details else {}
        self.cause = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        extra = f", details={self.details!r}" if self.details else ""
        return f"{type(self).__name__}({self.message!r}, code={self.code!r}{extra})"

    def log_fields(self) -> Dict[str, Any]:
        """Flat fields for ``log_context``: the error code, cause type and details."""
        fields: Dict[str, Any] = {"error_code": self.code}
        if self.cause is not None:
            fields["cause_type"] = type(self.cause).__name__
        fields.update(self.details)
        return fields

    def to_dict(self, *, include_traceback: bool = False) -> Dict[str, Any]:
        """JSON-ready form for API error bodies; the cause traceback only on request."""
        out: Dict[str, Any] = {
            "message": self.message,
            "code": self.code,
            "http_status": self.http_status,
        }
        if self.details:
            out["details"] = dict(self.details)
        if self.cause is not None:
            out["cause"] = str(self.cause)
            if include_traceback:
                out["cause_traceback"] = traceback.format_exception(
                    type(self.cause), self.cause, self.cause.__traceback__,
                )
        return out


def exception_factory(
    name: str,
    *,
    code: Optional[str] = None,
    http_status: int = 500,
    base: Type[ProjectError] = ProjectError,
) -> Type[ProjectError]:
    """
    Declare a ProjectError subclass in one line.

    Example:
        QueueFullError = exception_factory("QueueFullError", code="QUEUE_FULL", http_status=503)
        raise QueueFullError("Indexing queue is full", details={"size": 100})
    """
    attrs = {
        "default_code": code or name.upper().replace(" ", "_"),
        "default_http_status": http_status,
        "__doc__": f"{name} (code {code or name.upper()}, HTTP {http_status}).",
    }
    return type(name, (base,), attrs)
