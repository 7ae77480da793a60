"""Splitter interface and the shared token-budget packer."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sessionrag.rag.tokenizer import TokenCounter
from sessionrag.rag.types import MetadataKey, TextChunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Segment:
    """Smallest unit a splitter never cuts: one sentence or one speaker turn."""

    text: str
    tokens: int
    speaker: Optional[str] = None


class BaseSplitter(ABC):
    """Packs segments into chunks of at most ``max_tokens``, carrying up to
    ``overlap_tokens`` of whole trailing segments into the next chunk.

    A segment larger than the budget is emitted whole and flagged ``oversized``.
    """

    mode: str = "base"
    joiner: str = " "

    def __init__(
        self,
        counter: TokenCounter,
        *,
        max_tokens: int = 512,
        overlap_tokens: int = 50,
    ) -> None:
        if overlap_tokens >= max_tokens:
            raise ValueError("overlap_tokens must be smaller than max_tokens")
        self.counter = counter
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens

    @abstractmethod
    def split(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> List[TextChunk]:
        """Split text into chunks; metadata is copied onto every chunk."""
        ...

    def _cut_point(self, current: Sequence[Segment], incoming: Segment) -> int:
        """Index in ``current`` where the chunk should end. Default: before ``incoming``."""
        return len(current)

    def _pack(self, segments: Sequence[Segment]) -> List[List[Segment]]:
        groups: List[List[Segment]] = []
        current: List[Segment] = []
        for seg in segments:
            if current and _total(current) + seg.tokens > self.max_tokens:
                cut = self._cut_point(current, seg)
                head, carried = current[:cut], current[cut:]
                if carried and _total(carried) + seg.tokens > self.max_tokens:
                    head, carried = current, []
                groups.append(head)
                current = self._overlap_tail(head) + carried
                if _total(current) + seg.tokens > self.max_tokens:
                    current = list(carried)
            current.append(seg)
        if current:
            groups.append(current)
        return groups

    def _overlap_tail(self, segments: Sequence[Segment]) -> List[Segment]:
        tail: List[Segment] = []
        used = 0
        for seg in reversed(segments):
            if used + seg.tokens > self.overlap_tokens:
                break
            tail.insert(0, seg)
            used += seg.tokens
        return tail

    def _to_chunks(
        self, groups: Sequence[Sequence[Segment]], metadata: Optional[Dict[str, Any]],
    ) -> List[TextChunk]:
        meta = dict(metadata or {})
        pairs = [(self.joiner.join(s.text for s in group).strip(), _total(group)) for group in groups]
        pairs = [(text, packed) for text, packed in pairs if text]
        total = len(pairs)
        out: List[TextChunk] = []
        for text, packed in pairs:
            tokens = self.counter.count(text)
            chunk_meta = dict(meta)
            chunk_meta.update({
                MetadataKey.CHUNK_INDEX: len(out),
                MetadataKey.TOTAL_CHUNKS: total,
                MetadataKey.TOKEN_COUNT: tokens,
                MetadataKey.TOKEN_COUNT_APPROXIMATE: self.counter.approximate,
                MetadataKey.CHUNK_MODE: self.mode,
            })
            if packed > self.max_tokens:
                chunk_meta[MetadataKey.OVERSIZED] = True
                logger.warning(
                    "%s chunk %d has %d tokens (budget %d); emitted whole",
                    self.mode, len(out), packed, self.max_tokens,
                )
            out.append(TextChunk(text=text, chunk_index=len(out), token_count=tokens, metadata=chunk_meta))
        return out


def _total(segments: Sequence[Segment]) -> int:
    return sum(s.tokens for s in segments)
