"""OpenAI LLM provider: BaseLLMClient implementation + registry builder."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from sessionrag.clients.errors import translate_openai_error
from sessionrag.clients.llm.base import BaseLLMClient, LLMMessage

logger = logging.getLogger(__name__)


class OpenAILLMClient(BaseLLMClient):
    """OpenAI-compatible chat client (gpt-4o-mini, gpt-4o, ...)."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
        timeout: float = 30.0,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = AsyncOpenAI(
            api_key=api_key or os.environ.get("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
        )

    @property
    def provider(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        return await self.chat(
            [{"role": "user", "content": prompt}], max_tokens=max_tokens, temperature=temperature,
        )

    async def chat(
        self,
        messages: List[LLMMessage],
        *,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Native multi-turn chat with system-prompt support."""
        kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature if temperature is None else temperature,
        }
        limit = max_tokens if max_tokens is not None else self._max_tokens
        if limit is not None:
            kwargs["max_tokens"] = limit
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc, provider=self.provider) from exc
        return response.choices[0].message.content or ""

    async def test_connection(self) -> bool:
        try:
            await self._client.models.list()
            return True
        except openai.OpenAIError as exc:
            logger.warning("OpenAI connection test failed: %s", exc)
            return False


def openai_builder(config: Dict[str, Any]) -> OpenAILLMClient:
    return OpenAILLMClient(
        model=config.get("model", "gpt-4o-mini"),
        api_key=config.get("api_key"),
        base_url=config.get("base_url"),
        temperature=float(config.get("temperature", 0.0)),
        max_tokens=config.get("max_tokens"),
    )
