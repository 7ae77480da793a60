"""Chunker tests: sentence and dialogue splitting under a token budget.

Token counts use the approximate counter (ceil(chars / 4)) so the
arithmetic below is exact and no tokenizer download is needed.
"""
from __future__ import annotations

import unittest

from sessionrag.core.exceptions import ValidationError
from sessionrag.rag.splitters import DialogueSplitter, split_sentences
from sessionrag.rag.tokenizer import TokenCounter
from sessionrag.rag.types import MetadataKey, SessionEntry
from sessionrag.tests.fakes import make_chunker


def _turn(speaker: str, chars: int = 40) -> SessionEntry:
    """A turn whose rendered form ("speaker: content") is exactly ``chars`` long."""
    return SessionEntry(speaker=speaker, content="w" * (chars - len(speaker) - 2))


def _speakers(chunk_text: str) -> list[str]:
    return [line.split(":", 1)[0] for line in chunk_text.splitlines()]


class TestSentenceSplitting(unittest.TestCase):
    def test_abbreviations_do_not_end_sentences(self):
        text = "Ask Dr. Lee. She knows. They tried several things, e.g. Breathing drills. Did it help? Yes!"
        self.assertEqual(
            split_sentences(text),
            [
                "Ask Dr. Lee.",
                "She knows.",
                "They tried several things, e.g. Breathing drills.",
                "Did it help?",
                "Yes!",
            ],
        )

    def test_lowercase_continuation_is_not_a_boundary(self):
        self.assertEqual(split_sentences("We met at 5 p.m. today. Fine."), ["We met at 5 p.m. today.", "Fine."])

    def test_prose_chunks_end_on_sentence_boundaries(self):
        sentences = [f"Sentence number {i} talks about sleep and stress." for i in range(20)]
        chunker = make_chunker(max_tokens=40, overlap_tokens=0)
        chunks = chunker.chunk(" ".join(sentences), {})

        self.assertGreater(len(chunks), 1)
        for chunk in chunks:
            self.assertTrue(chunk.text.endswith("."))
            self.assertEqual(chunk.metadata[MetadataKey.CHUNK_MODE], "sentence")
        rebuilt = " ".join(c.text for c in chunks)
        self.assertEqual(rebuilt, " ".join(sentences))

    def test_oversized_sentence_is_emitted_whole_and_flagged(self):
        long_sentence = "This sentence keeps going " + "and going " * 30 + "until it ends."
        chunks = make_chunker(max_tokens=20, overlap_tokens=0).chunk(long_sentence, {})

        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].text, long_sentence)
        self.assertTrue(chunks[0].metadata[MetadataKey.OVERSIZED])

    def test_regular_chunks_carry_no_oversized_flag(self):
        chunks = make_chunker().chunk("Short one. Another one.", {})
        self.assertNotIn(MetadataKey.OVERSIZED, chunks[0].metadata)


class TestDialogueSplitting(unittest.TestCase):
    def setUp(self):
        self.counter = TokenCounter.approximate_only()

    def test_detects_labelled_dialogue(self):
        splitter = DialogueSplitter(self.counter)
        self.assertTrue(splitter.looks_like_dialogue("Therapist: Hi there\nClient: Hello"))
        self.assertFalse(splitter.looks_like_dialogue("Therapist: only one labelled line\nand prose"))

    def test_unlabelled_lines_continue_the_previous_turn(self):
        splitter = DialogueSplitter(self.counter)
        turns = splitter.parse_turns("Therapist: How was it?\nClient: Hard.\nI could not sleep.")
        self.assertEqual(len(turns), 2)
        self.assertEqual(turns[1], SessionEntry(speaker="client", content="Hard. I could not sleep."))

    def test_boundary_prefers_speaker_change(self):
        splitter = DialogueSplitter(self.counter, max_tokens=55, overlap_tokens=0)
        entries = [
            _turn("therapist"), _turn("client"), _turn("therapist"),
            _turn("client"), _turn("client"), _turn("client"),
        ]
        chunks = splitter.split_entries(entries)

        self.assertEqual(
            [_speakers(c.text) for c in chunks],
            [["therapist", "client"], ["therapist", "client", "client", "client"]],
        )

    def test_question_is_never_left_without_its_answer(self):
        splitter = DialogueSplitter(self.counter, max_tokens=30, overlap_tokens=0)
        entries = [_turn("therapist"), _turn("client"), _turn("client"), _turn("client")]
        chunks = splitter.split_entries(entries)

        self.assertEqual(
            [_speakers(c.text) for c in chunks],
            [["therapist", "client", "client"], ["client"]],
        )

    def test_long_answer_run_after_single_reply_keeps_exchange(self):
        splitter = DialogueSplitter(self.counter, max_tokens=25, overlap_tokens=0)
        entries = [_turn("therapist"), _turn("client"), _turn("client"), _turn("therapist")]
        chunks = splitter.split_entries(entries)

        self.assertEqual([_speakers(c.text) for c in chunks], [["therapist", "client"], ["client", "therapist"]])

    def test_overlap_carries_whole_trailing_turns(self):
        splitter = DialogueSplitter(self.counter, max_tokens=25, overlap_tokens=10)
        entries = [_turn("therapist"), _turn("client"), _turn("therapist"), _turn("client")]
        chunks = splitter.split_entries(entries)

        self.assertEqual(len(chunks), 3)
        for prev, nxt in zip(chunks, chunks[1:]):
            self.assertEqual(nxt.text.splitlines()[0], prev.text.splitlines()[-1])

    def test_turns_are_never_split(self):
        entries = [
            SessionEntry("therapist", f"Question {i} about your week and how you handled it?")
            if i % 2 == 0 else SessionEntry("client", f"Answer {i}: it went fine, mostly, with some worry.")
            for i in range(12)
        ]
        chunks = make_chunker(max_tokens=40, overlap_tokens=10).chunk(entries, {})

        rendered = {e.render() for e in entries}
        self.assertGreater(len(chunks), 1)
        for chunk in chunks:
            for line in chunk.text.splitlines():
                self.assertIn(line, rendered)

    def test_oversized_turn_is_flagged(self):
        entries = [SessionEntry("client", "word " * 100), SessionEntry("therapist", "I hear you.")]
        chunks = make_chunker(max_tokens=20, overlap_tokens=0).chunk(entries, {})

        self.assertTrue(chunks[0].metadata[MetadataKey.OVERSIZED])
        self.assertNotIn(MetadataKey.OVERSIZED, chunks[1].metadata)


class TestSemanticChunker(unittest.TestCase):
    def test_entries_in_metadata_win_over_text(self):
        entries = [{"speaker": "therapist", "content": "How are you?"}, {"speaker": "client", "content": "Tired."}]
        chunks = make_chunker().chunk("plain text that should be ignored", {"entries": entries, "therapist_id": "t-1"})

        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].text, "therapist: How are you?\nclient: Tired.")
        self.assertEqual(chunks[0].metadata["therapist_id"], "t-1")
        self.assertNotIn(MetadataKey.ENTRIES, chunks[0].metadata)

    def test_labelled_text_uses_dialogue_mode(self):
        chunks = make_chunker().chunk("Therapist: Hello.\nClient: Hi, better today.", {})
        self.assertEqual(chunks[0].metadata[MetadataKey.CHUNK_MODE], "dialogue")

    def test_chunk_metadata_positions(self):
        text = " ".join(f"Sentence {i} is about coping strategies at work." for i in range(30))
        chunks = make_chunker(max_tokens=30, overlap_tokens=0).chunk(text, {"client_id": "c-9"})

        self.assertEqual([c.chunk_index for c in chunks], list(range(len(chunks))))
        for chunk in chunks:
            meta = chunk.metadata
            self.assertEqual(meta[MetadataKey.TOTAL_CHUNKS], len(chunks))
            self.assertTrue(meta[MetadataKey.TOKEN_COUNT_APPROXIMATE])
            self.assertEqual(meta["client_id"], "c-9")
            self.assertEqual(meta[MetadataKey.TOKEN_COUNT], chunk.token_count)

    def test_empty_input_gives_no_chunks(self):
        chunker = make_chunker()
        self.assertEqual(chunker.chunk("", {}), [])
        self.assertEqual(chunker.chunk("   \n ", {}), [])
        self.assertEqual(chunker.chunk(None, {}), [])
        self.assertEqual(chunker.chunk([{"speaker": "client", "content": "  "}], {}), [])

    def test_malformed_entries_rejected(self):
        chunker = make_chunker()
        with self.assertRaises(ValidationError):
            chunker.chunk_entries("not a list")
        with self.assertRaises(ValidationError):
            chunker.chunk([42], {})

    def test_overlap_must_be_smaller_than_budget(self):
        with self.assertRaises(ValueError):
            make_chunker(max_tokens=50, overlap_tokens=50)


if __name__ == "__main__":
    unittest.main()
