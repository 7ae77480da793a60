"""Sentence splitter for prose: chunks end on sentence boundaries only."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from sessionrag.rag.types import TextChunk

from .base import BaseSplitter, Segment

ABBREVIATIONS = (
    "dr", "mr", "mrs", "ms", "prof", "sr", "jr", "st",
    "ph.d", "m.d", "b.a", "m.a", "b.s", "m.s",
    "etc", "e.g", "i.e", "vs", "approx", "esp", "et al",
)

_ABBREV_RE = re.compile(
    r"(?:^|[\s(\"'])(?:"
    + "|".join(re.escape(a) for a in sorted(ABBREVIATIONS, key=len, reverse=True))
    + r")$",
    re.IGNORECASE,
)
_BOUNDARY_RE = re.compile(r"[.!?]+(?=\s|$)")
_OPENERS = "\"'(“‘"


def split_sentences(text: str) -> list[str]:
    """Split prose into sentences.

    A boundary is a run of ``.``/``!``/``?`` followed by whitespace and then an
    uppercase letter, an opening quote or the end of text. A single period
    that closes a known abbreviation (Dr., e.g., Ph.D.) is not a boundary.
    """
    sentences: list[str] = []
    start = 0
    for m in _BOUNDARY_RE.finditer(text):
        if m.group() == "." and _ABBREV_RE.search(text[start:m.start()]):
            continue
        rest = text[m.end():].lstrip()
        if rest and not (rest[0].isupper() or rest[0] in _OPENERS):
            continue
        sentence = text[start:m.end()].strip()
        if sentence:
            sentences.append(sentence)
        start = m.end()
    tail = text[start:].strip()
    if tail:
        sentences.append(tail)
    return sentences


class SentenceSplitter(BaseSplitter):
    """Packs whole sentences up to the token budget with sentence-level overlap."""

    mode = "sentence"
    joiner = " "

    def split(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> List[TextChunk]:
        if not text or not text.strip():
            return []
        segments = [Segment(text=s, tokens=self.counter.count(s)) for s in split_sentences(text)]
        return self._to_chunks(self._pack(segments), metadata)
