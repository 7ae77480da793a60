"""Google Gemini Embedding provider: BaseEmbeddingClient implementation + registry builder."""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Union

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from sessionrag.clients.embedding.base import BaseEmbeddingClient
from sessionrag.clients.errors import translate_gemini_error

_MODEL_DIMENSIONS: Dict[str, int] = {
    "text-embedding-004": 768,
    "text-embedding-005": 768,
    "gemini-embedding-001": 3072,
}


class GeminiEmbeddingClient(BaseEmbeddingClient):
    """Google Gemini embedding client (gemini-embedding-001, text-embedding-004, ...).

    Reduced ``dimensions`` are not unit length, so ``normalized`` is False and
    the Embedder renormalizes.
    """

    def __init__(
        self,
        model: str = "text-embedding-004",
        *,
        api_key: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> None:
        self._model = model
        native = _MODEL_DIMENSIONS.get(model, 768)
        self._request_dimensions = dimensions if dimensions and dimensions != native else None
        self._dimension = self._request_dimensions or native
        resolved_key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        self._client = genai.Client(api_key=resolved_key)

    @property
    def provider(self) -> str:
        return "gemini"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def normalized(self) -> bool:
        return self._request_dimensions is None

    async def embed(self, text: Union[str, List[str]]) -> List[List[float]]:
        inputs = [text] if isinstance(text, str) else list(text)
        config = None
        if self._request_dimensions:
            config = genai_types.EmbedContentConfig(output_dimensionality=self._request_dimensions)
        try:
            response = await self._client.aio.models.embed_content(
                model=self._model,
                contents=inputs,
                config=config,
            )
        except genai_errors.APIError as exc:
            raise translate_gemini_error(exc, provider=self.provider) from exc
        return [list(e.values or []) for e in (response.embeddings or [])]


def gemini_builder(config: Dict[str, Any]) -> GeminiEmbeddingClient:
    return GeminiEmbeddingClient(
        model=config.get("model", "text-embedding-004"),
        api_key=config.get("api_key"),
        dimensions=config.get("dimensions"),
    )
