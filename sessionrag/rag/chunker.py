"""
Chunker: session entries or raw text -> ordered TextChunk list.

Structured entries win over text because they carry speaker attribution
exactly; unstructured text is checked for speaker labels before falling
back to sentence mode.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from sessionrag.core.exceptions import ValidationError
from sessionrag.rag.splitters import DialogueSplitter, SentenceSplitter
from sessionrag.rag.splitters.dialogue import DEFAULT_SPEAKER_LABELS
from sessionrag.rag.tokenizer import TokenCounter
from sessionrag.rag.types import IndexContent, MetadataKey, SessionEntry, TextChunk

logger = logging.getLogger(__name__)


class SemanticChunker:
    """Picks dialogue or sentence mode and applies one token budget to both."""

    def __init__(
        self,
        counter: Optional[TokenCounter] = None,
        *,
        max_tokens: int = 512,
        overlap_tokens: int = 50,
        speaker_labels: Sequence[str] = DEFAULT_SPEAKER_LABELS,
    ) -> None:
        self.counter = counter or TokenCounter()
        if self.counter.approximate:
            logger.warning("Chunker is using approximate token counts (chars / 4)")
        self._dialogue = DialogueSplitter(
            self.counter, max_tokens=max_tokens, overlap_tokens=overlap_tokens, speaker_labels=speaker_labels,
        )
        self._sentence = SentenceSplitter(self.counter, max_tokens=max_tokens, overlap_tokens=overlap_tokens)

    @property
    def max_tokens(self) -> int:
        return self._dialogue.max_tokens

    def chunk(self, content: IndexContent, metadata: Optional[Mapping[str, Any]] = None) -> list[TextChunk]:
        """
        Split content into chunks.

        Args:
            content: Raw text, or a sequence of ``{speaker, content}`` entries.
            metadata: Copied onto every chunk. ``metadata["entries"]``, when
                present and non-empty, is used instead of ``content``.

        Returns:
            Chunks in document order; empty input gives an empty list.
        """
        meta: Dict[str, Any] = dict(metadata or {})
        entries = meta.pop(MetadataKey.ENTRIES, None)
        if entries:
            return self.chunk_entries(entries, meta)
        if content is None:
            return []
        if isinstance(content, str):
            return self.chunk_text(content, meta)
        return self.chunk_entries(content, meta)

    def chunk_entries(self, entries: Any, metadata: Optional[Dict[str, Any]] = None) -> list[TextChunk]:
        if isinstance(entries, (str, bytes)) or not isinstance(entries, Sequence):
            raise ValidationError("entries must be a list of {speaker, content} objects")
        turns = [SessionEntry.coerce(e) for e in entries]
        return self._dialogue.split_entries(turns, metadata)

    def chunk_text(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> list[TextChunk]:
        if not text or not text.strip():
            return []
        if self._dialogue.looks_like_dialogue(text):
            return self._dialogue.split(text, metadata)
        return self._sentence.split(text, metadata)
