"""Hosted rerank API client (Cohere v2 ``/rerank`` request/response shape)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from sessionrag.clients.errors import translate_http_error
from sessionrag.clients.rerank.base import BaseRerankClient
from sessionrag.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

_MAX_PASSAGE_CHARS = 4000


class HttpRerankClient(BaseRerankClient):
    """POST {model, query, documents, top_n} -> {results: [{index, relevance_score}]}.

    Any endpoint speaking this shape works (Cohere, Jina, Voyage, self-hosted TEI).
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: Optional[str] = None,
        model: str = "rerank-v3.5",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    @property
    def provider(self) -> str:
        return "http"

    async def rerank(
        self,
        query: str,
        passages: Sequence[str],
        *,
        top_n: Optional[int] = None,
    ) -> List[Tuple[int, float]]:
        if not passages:
            return []
        payload: Dict[str, Any] = {
            "model": self._model,
            "query": query,
            "documents": [p[:_MAX_PASSAGE_CHARS] for p in passages],
            "top_n": top_n or len(passages),
        }
        try:
            response = await self._client.post(self._url, json=payload, headers=self._headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise translate_http_error(exc, provider=self.provider) from exc
        except ValueError as exc:
            raise ProviderError(
                "Rerank API returned invalid JSON", provider=self.provider, cause=exc,
            ) from exc
        return _parse_results(body, len(passages))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _parse_results(body: Any, count: int) -> List[Tuple[int, float]]:
    results = body.get("results") if isinstance(body, dict) else None
    if not isinstance(results, list):
        raise ProviderError("Rerank API response has no 'results' list", provider="http")
    scored: List[Tuple[int, float]] = []
    for item in results:
        try:
            index = int(item["index"])
            score = float(item["relevance_score"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ProviderError(f"Malformed rerank result: {item!r}", provider="http", cause=exc) from exc
        if not 0 <= index < count:
            logger.warning("Rerank API returned out-of-range index %d (of %d); ignoring", index, count)
            continue
        scored.append((index, max(0.0, min(1.0, score))))
    scored.sort(key=lambda t: t[1], reverse=True)
    return scored
