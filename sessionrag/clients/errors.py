"""Translate SDK / transport exceptions into ProviderError with a retryable flag.

429, 409, 408 and 5xx responses, timeouts and connection failures are transient;
every other client-side status (400, 401, 403, 404, 422) is fatal.
"""
from __future__ import annotations

from typing import Optional

import httpx
import openai
from google.genai import errors as genai_errors

from sessionrag.core.exceptions import ProviderError

_RETRYABLE_STATUS = frozenset({408, 409, 429})


def retryable_status(status: Optional[int]) -> bool:
    if status is None:
        return False
    return status in _RETRYABLE_STATUS or status >= 500


def translate_openai_error(exc: openai.OpenAIError, *, provider: str = "openai") -> ProviderError:
    if isinstance(exc, openai.APITimeoutError):
        return ProviderError(f"{provider} request timed out", retryable=True, provider=provider, cause=exc)
    if isinstance(exc, openai.APIConnectionError):
        return ProviderError(f"{provider} connection failed: {exc}", retryable=True, provider=provider, cause=exc)
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        return ProviderError(
            f"{provider} returned HTTP {status}: {exc.message}",
            retryable=retryable_status(status),
            provider=provider,
            status_code=status,
            cause=exc,
        )
    return ProviderError(f"{provider} call failed: {exc}", retryable=False, provider=provider, cause=exc)


def translate_gemini_error(exc: genai_errors.APIError, *, provider: str = "gemini") -> ProviderError:
    status = getattr(exc, "code", None)
    retryable = isinstance(exc, genai_errors.ServerError) or retryable_status(status)
    return ProviderError(
        f"{provider} returned {status}: {exc.message or exc}",
        retryable=retryable,
        provider=provider,
        status_code=status,
        cause=exc,
    )


def translate_http_error(exc: httpx.HTTPError, *, provider: str) -> ProviderError:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return ProviderError(
            f"{provider} returned HTTP {status}",
            retryable=retryable_status(status),
            provider=provider,
            status_code=status,
            cause=exc,
        )
    return ProviderError(
        f"{provider} request failed: {exc!r}",
        retryable=isinstance(exc, httpx.TransportError),
        provider=provider,
        cause=exc,
    )
