"""Background indexing queue and the session event hooks that feed it."""
from __future__ import annotations

import asyncio
import unittest

from sessionrag.core.exceptions import QueueFullError, ValidationError
from sessionrag.rag.indexing_queue import IndexingQueue
from sessionrag.rag.types import IndexResult
from sessionrag.services import SessionIndexingService, SessionRecord
from sessionrag.tests.fakes import _run, make_orchestrator


class RecordingOrchestrator:
    """Stands in for RAGOrchestrator.index; records start/end per job."""

    def __init__(self, fail_for=(), delay: float = 0.01):
        self.events = []
        self.fail_for = set(fail_for)
        self.delay = delay

    async def index(self, content, metadata):
        doc = metadata["document_id"]
        self.events.append(("start", doc, content))
        await asyncio.sleep(self.delay)
        self.events.append(("end", doc, content))
        if doc in self.fail_for:
            raise RuntimeError(f"embedding provider down for {doc}")
        return IndexResult(document_id=doc, chunks_created=1, vectors_stored=1, duration=self.delay)


class TestIndexingQueue(unittest.TestCase):
    def test_jobs_processed_and_failures_counted(self):
        orch = RecordingOrchestrator(fail_for={"bad"})

        async def scenario():
            queue = IndexingQueue(orch, workers=2)
            await queue.start()
            await queue.submit("ok text", {"document_id": "good"})
            await queue.submit("bad text", {"document_id": "bad"})
            await queue.join()
            await queue.stop()
            return queue

        with self.assertLogs("sessionrag.rag.indexing_queue", level="ERROR") as logs:
            queue = _run(scenario())
        self.assertEqual(queue.processed, 1)
        self.assertEqual(queue.failed, 1)
        self.assertFalse(queue.running)
        self.assertIn("bad", logs.output[0])

    def test_same_document_jobs_run_in_order_without_overlap(self):
        orch = RecordingOrchestrator()

        async def scenario():
            queue = IndexingQueue(orch, workers=3)
            for version in ("v1", "v2", "v3"):
                await queue.submit(version, {"document_id": "s1"})
            await queue.start()
            await queue.stop(drain=True)
            return queue

        queue = _run(scenario())
        self.assertEqual(
            orch.events,
            [(kind, "s1", v) for v in ("v1", "v2", "v3") for kind in ("start", "end")],
        )
        self.assertEqual(queue.active_documents, 0)

    def test_different_documents_run_concurrently(self):
        orch = RecordingOrchestrator(delay=0.05)

        async def scenario():
            queue = IndexingQueue(orch, workers=2)
            await queue.submit("a", {"document_id": "s1"})
            await queue.submit("b", {"document_id": "s2"})
            await queue.start()
            await queue.stop()

        _run(scenario())
        self.assertEqual([kind for kind, _, _ in orch.events[:2]], ["start", "start"])

    def test_try_submit_raises_when_full(self):
        async def scenario():
            queue = IndexingQueue(RecordingOrchestrator(), maxsize=1)
            queue.try_submit("first", {"document_id": "s1"})
            with self.assertRaises(QueueFullError) as ctx:
                queue.try_submit("second", {"document_id": "s2"})
            return queue, ctx.exception

        queue, error = _run(scenario())
        self.assertEqual(queue.pending, 1)
        self.assertEqual(error.details["size"], 1)
        self.assertEqual(error.details["document_id"], "s2")

    def test_job_needs_document_id(self):
        async def scenario():
            queue = IndexingQueue(RecordingOrchestrator())
            with self.assertRaises(ValidationError):
                queue.try_submit("text", {})
            with self.assertRaises(ValidationError):
                await queue.submit("text", {"document_id": "  "})

        _run(scenario())

    def test_invalid_sizes_rejected(self):
        with self.assertRaises(ValueError):
            IndexingQueue(RecordingOrchestrator(), maxsize=0)
        with self.assertRaises(ValueError):
            IndexingQueue(RecordingOrchestrator(), workers=0)


class TestSessionIndexingService(unittest.TestCase):
    ENTRIES = [
        {"speaker": "therapist", "content": "How did the week go?"},
        {"speaker": "client", "content": "I slept better after the breathing exercise."},
    ]

    def test_record_from_mapping(self):
        record = SessionRecord.from_mapping({"id": 17, "therapist_id": 5, "entries": self.ENTRIES})
        meta = record.index_metadata()
        self.assertEqual(record.session_id, "17")
        self.assertEqual(meta["document_id"], "17")
        self.assertEqual(meta["therapist_id"], "5")
        self.assertNotIn("client_id", meta)
        with self.assertRaises(ValidationError):
            SessionRecord.from_mapping({"therapist_id": "t1"})
        with self.assertRaises(ValidationError):
            SessionRecord.from_mapping(None)
        with self.assertRaises(ValidationError):
            SessionRecord.from_mapping(["s1"])

    def test_entry_added_schedules_reindex(self):
        async def scenario():
            orch = RecordingOrchestrator()
            queue = IndexingQueue(orch)
            service = SessionIndexingService(queue, orch)
            queued = service.on_entry_added({"session_id": "s1", "client_id": "c1", "entries": self.ENTRIES})
            pending = queue.pending
            await queue.start()
            await queue.stop()
            return queued, pending, orch.events

        queued, pending, events = _run(scenario())
        self.assertTrue(queued)
        self.assertEqual(pending, 1)
        self.assertEqual(events[0][1], "s1")
        self.assertEqual(len(events[0][2]), 2)

    def test_transcript_used_when_no_entries(self):
        async def scenario():
            queue = IndexingQueue(RecordingOrchestrator())
            service = SessionIndexingService(queue, RecordingOrchestrator())
            queued = service.on_entry_added(SessionRecord(session_id="s1", transcript="Therapist: Hi.\nClient: Hello."))
            empty = service.on_entry_added(SessionRecord(session_id="s2"))
            return queued, empty, queue.pending

        queued, empty, pending = _run(scenario())
        self.assertTrue(queued)
        self.assertFalse(empty)
        self.assertEqual(pending, 1)

    def test_malformed_or_overflowing_sessions_never_raise(self):
        async def scenario():
            queue = IndexingQueue(RecordingOrchestrator(), maxsize=1)
            service = SessionIndexingService(queue, RecordingOrchestrator())
            with self.assertLogs("sessionrag.services.indexing_service", level="ERROR"):
                self.assertFalse(service.on_entry_added({"entries": self.ENTRIES}))
            with self.assertLogs("sessionrag.services.indexing_service", level="ERROR"):
                self.assertFalse(service.on_entry_added(None))
            with self.assertLogs("sessionrag.services.indexing_service", level="ERROR"):
                self.assertFalse(service.on_entry_added({"id": "s9", "entries": 5}))
            with self.assertLogs("sessionrag.services.indexing_service", level="ERROR"):
                self.assertFalse(service.on_entry_added({"id": "s9", "entries": ["not an entry"]}))
            self.assertTrue(service.on_entry_added({"id": "s1", "entries": self.ENTRIES}))
            with self.assertLogs("sessionrag.services.indexing_service", level="WARNING"):
                self.assertFalse(service.on_entry_added({"id": "s2", "entries": self.ENTRIES}))

        _run(scenario())

    def test_session_deleted(self):
        orch, store = make_orchestrator()

        async def scenario():
            service = SessionIndexingService(IndexingQueue(orch), orch)
            await orch.index(self.ENTRIES, {"document_id": "s1"})
            removed = await service.on_session_deleted("s1")
            missing = await service.on_session_deleted("never-indexed")
            return removed, missing

        removed, missing = _run(scenario())
        self.assertEqual(removed, 1)
        self.assertEqual(missing, 0)
        self.assertEqual(len(store), 0)


if __name__ == "__main__":
    unittest.main()
