"""Dialogue splitter: speaker turns are never cut, chunks prefer to end where
the speaker changes so a question stays with its answer."""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sessionrag.rag.tokenizer import TokenCounter
from sessionrag.rag.types import SessionEntry, TextChunk

from .base import BaseSplitter, Segment

DEFAULT_SPEAKER_LABELS = ("therapist", "client")


def speaker_pattern(labels: Iterable[str] = DEFAULT_SPEAKER_LABELS) -> re.Pattern:
    names = "|".join(re.escape(label) for label in labels)
    return re.compile(rf"^\s*((?:{names})|speaker \d+)\s*:\s?(.*)$", re.IGNORECASE)


class DialogueSplitter(BaseSplitter):
    mode = "dialogue"
    joiner = "\n"

    def __init__(
        self,
        counter: TokenCounter,
        *,
        max_tokens: int = 512,
        overlap_tokens: int = 50,
        speaker_labels: Sequence[str] = DEFAULT_SPEAKER_LABELS,
    ) -> None:
        super().__init__(counter, max_tokens=max_tokens, overlap_tokens=overlap_tokens)
        self._speaker_re = speaker_pattern(speaker_labels)

    def looks_like_dialogue(self, text: str) -> bool:
        """True when at least two lines carry a speaker label."""
        labelled = 0
        for line in text.splitlines():
            if self._speaker_re.match(line):
                labelled += 1
                if labelled >= 2:
                    return True
        return False

    def parse_turns(self, text: str) -> List[SessionEntry]:
        """Speaker-labelled lines start a turn; unlabelled lines continue the current one."""
        turns: List[SessionEntry] = []
        for line in text.splitlines():
            if not line.strip():
                continue
            m = self._speaker_re.match(line)
            if m:
                turns.append(SessionEntry(speaker=m.group(1).strip().lower(), content=m.group(2).strip()))
            elif turns:
                last = turns[-1]
                turns[-1] = SessionEntry(speaker=last.speaker, content=f"{last.content} {line.strip()}".strip())
            else:
                turns.append(SessionEntry(speaker="", content=line.strip()))
        return turns

    def split(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> List[TextChunk]:
        if not text or not text.strip():
            return []
        return self.split_entries(self.parse_turns(text), metadata)

    def split_entries(
        self, entries: Sequence[SessionEntry], metadata: Optional[Dict[str, Any]] = None,
    ) -> List[TextChunk]:
        segments: List[Segment] = []
        for entry in entries:
            if not entry.content or not entry.content.strip():
                continue
            rendered = entry.render()
            segments.append(Segment(text=rendered, tokens=self.counter.count(rendered), speaker=entry.speaker.lower()))
        if not segments:
            return []
        return self._to_chunks(self._pack(segments), metadata)

    def _cut_point(self, current: Sequence[Segment], incoming: Segment) -> int:
        if incoming.speaker != current[-1].speaker:
            return len(current)
        # Same speaker continues. Back off to an earlier exchange boundary only
        # where the head still ends on a reply from this speaker.
        for idx in range(len(current) - 1, 1, -1):
            last, before = current[idx - 1], current[idx - 2]
            if (
                last.speaker == incoming.speaker
                and before.speaker != last.speaker
                and current[idx].speaker != last.speaker
            ):
                return idx
        return len(current)
