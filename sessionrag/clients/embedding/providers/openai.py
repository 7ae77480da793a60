"""OpenAI Embedding provider: BaseEmbeddingClient implementation + registry builder."""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Union

import openai
from openai import AsyncOpenAI

from sessionrag.clients.embedding.base import BaseEmbeddingClient
from sessionrag.clients.errors import translate_openai_error

_MODEL_DIMENSIONS: Dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# USD per 1K input tokens
_MODEL_COST: Dict[str, float] = {
    "text-embedding-3-small": 0.00002,
    "text-embedding-3-large": 0.00013,
    "text-embedding-ada-002": 0.0001,
}

# Models that accept the ``dimensions`` (Matryoshka truncation) parameter.
_SHORTENABLE = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


class OpenAIEmbeddingClient(BaseEmbeddingClient):
    """OpenAI embedding client (text-embedding-3-large, etc.)."""

    def __init__(
        self,
        model: str = "text-embedding-3-large",
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> None:
        self._model = model
        native = _MODEL_DIMENSIONS.get(model, 1536)
        self._request_dimensions = dimensions if dimensions and model in _SHORTENABLE and dimensions != native else None
        self._dimension = self._request_dimensions or native
        # Retries are owned by the Embedder.
        self._client = AsyncOpenAI(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            base_url=base_url,
            max_retries=0,
        )

    @property
    def provider(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def cost_per_1k_tokens(self) -> float:
        return _MODEL_COST.get(self._model, 0.0)

    async def embed(self, text: Union[str, List[str]]) -> List[List[float]]:
        inputs = [text] if isinstance(text, str) else text
        kwargs: Dict[str, Any] = {"model": self._model, "input": inputs}
        if self._request_dimensions:
            kwargs["dimensions"] = self._request_dimensions
        try:
            response = await self._client.embeddings.create(**kwargs)
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc, provider=self.provider) from exc
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]


def openai_builder(config: Dict[str, Any]) -> OpenAIEmbeddingClient:
    return OpenAIEmbeddingClient(
        model=config.get("model", "text-embedding-3-large"),
        api_key=config.get("api_key"),
        base_url=config.get("base_url"),
        dimensions=config.get("dimensions"),
    )
