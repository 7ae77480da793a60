"""Contextual retrieval: a short generated description prepended to each chunk before embedding.

Best effort. A chunk whose summary cannot be generated is embedded as-is,
and the batch reports a DegradedResult. The stored chunk text is never
augmented; only the embedding input is.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Tuple

from sessionrag.core.exceptions import ProviderError
from sessionrag.core.logger import log_context
from sessionrag.rag.types import DegradedResult, MetadataKey

if TYPE_CHECKING:
    from sessionrag.clients.llm import BaseLLMClient

logger = logging.getLogger(__name__)

_CONTEXT_PROMPT = (
    "Summarize and situate this chunk within its session context.\n"
    "Include: who is speaking (if evident), topic/theme, and any prior relevant background.\n"
    "Keep it under 80 words.\n\n"
    "{background}\n\n"
    "Chunk:\n\"{chunk}\""
)


def contextualize(summary: Optional[str], text: str) -> str:
    """Embedding input for a chunk: ``summary`` + blank line + text, or the text alone."""
    return f"{summary}\n\n{text}" if summary else text


class ContextEnricher:
    def __init__(
        self,
        llm: "BaseLLMClient",
        *,
        concurrency: int = 5,
        max_chunk_chars: int = 1200,
        max_tokens: int = 120,
        temperature: float = 0.2,
        timeout: float = 30.0,
    ) -> None:
        self._llm = llm
        self._semaphore = asyncio.Semaphore(concurrency)
        self._max_chunk_chars = max_chunk_chars
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout

    @property
    def provider(self) -> str:
        return self._llm.provider

    async def test_connection(self) -> bool:
        return await self._llm.test_connection()

    async def enrich(
        self, texts: Sequence[str], metadata: Mapping[str, Any],
    ) -> Tuple[List[Optional[str]], Optional[DegradedResult]]:
        """One summary per text (None where generation failed), plus a DegradedResult if any failed."""
        outcomes = await asyncio.gather(*(self._summarize(t, metadata) for t in texts))
        summaries: List[Optional[str]] = []
        errors: List[str] = []
        for summary, error in outcomes:
            summaries.append(summary)
            if error:
                errors.append(error)
        if not errors:
            return summaries, None
        logger.warning(
            "Context enrichment failed for %d/%d chunks; embedding raw text",
            len(errors), len(texts),
            extra=log_context(document_id=metadata.get(MetadataKey.DOCUMENT_ID), provider=self.provider),
        )
        return summaries, DegradedResult(
            stage="enrichment",
            reason=f"{len(errors)}/{len(texts)} chunks: {errors[0]}",
            fallback="raw_chunk",
        )

    async def _summarize(self, text: str, metadata: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
        prompt = _CONTEXT_PROMPT.format(
            background=self._background(metadata), chunk=text[: self._max_chunk_chars],
        )
        try:
            async with self._semaphore:
                raw = await asyncio.wait_for(
                    self._llm.complete(prompt, max_tokens=self._max_tokens, temperature=self._temperature),
                    timeout=self._timeout,
                )
        except (ProviderError, asyncio.TimeoutError) as exc:
            return None, str(exc) or exc.__class__.__name__
        summary = (raw or "").strip()
        return (summary or None), None

    @staticmethod
    def _background(metadata: Mapping[str, Any]) -> str:
        parts = []
        if metadata.get("speaker"):
            parts.append(f"Speaker: {metadata['speaker']}.")
        if metadata.get(MetadataKey.THERAPIST_ID):
            parts.append(f"Therapist ID: {metadata[MetadataKey.THERAPIST_ID]}.")
        return " ".join(parts)
