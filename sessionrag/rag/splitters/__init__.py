"""Splitters: text or session entries -> TextChunk list. Base + implementations."""
from sessionrag.rag.splitters.base import BaseSplitter, Segment
from sessionrag.rag.splitters.dialogue import DialogueSplitter
from sessionrag.rag.splitters.sentence import SentenceSplitter, split_sentences

__all__ = ["BaseSplitter", "Segment", "DialogueSplitter", "SentenceSplitter", "split_sentences"]
