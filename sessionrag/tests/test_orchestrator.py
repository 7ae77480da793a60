"""End-to-end index and search pipelines over the in-memory store with the hashing embedder."""
from __future__ import annotations

import unittest
from unittest.mock import AsyncMock

from sessionrag.clients.embedding.providers.hashing import HashingEmbeddingClient
from sessionrag.core.exceptions import (
    ConfigurationError,
    IndexingError,
    NotFoundError,
    ProviderError,
    ValidationError,
    VectorstoreError,
)
from sessionrag.infra.vectorstore import InMemoryVectorStore
from sessionrag.rag.contextualizer import ContextEnricher
from sessionrag.rag.fusion import HybridSearcher
from sessionrag.rag.orchestrator import RAGOrchestrator
from sessionrag.rag.reranker import RelevanceReranker
from sessionrag.rag.types import Granularity, MetadataKey, SearchFilter, SearchOptions
from sessionrag.tests.fakes import (
    DIM,
    FakeLLM,
    FakeRerankClient,
    FlakyEmbeddingClient,
    _run,
    make_chunker,
    make_embedder,
    make_orchestrator,
)

# Wide enough that hash collisions between the few words in these texts are unlikely.
WIDE = 1024

BREATHING_SESSION = [
    {"speaker": "therapist", "content": "Hello, how are you feeling?"},
    {"speaker": "client", "content": "Better, I tried the breathing exercise."},
]
WORK_SESSION = [
    {"speaker": "therapist", "content": "What happened at the office?"},
    {"speaker": "client", "content": "Work deadlines keep piling up and my manager keeps adding tasks."},
]


def _raw(**overrides) -> SearchOptions:
    fields = dict(use_reranking=False, diversity_mode=False, min_score=0.0)
    fields.update(overrides)
    return SearchOptions(**fields)


def wide_orchestrator(**kwargs):
    kwargs.setdefault("store", InMemoryVectorStore(WIDE))
    kwargs.setdefault("embedder", make_embedder(HashingEmbeddingClient(WIDE)))
    return make_orchestrator(**kwargs)


def long_text(sentences: int) -> str:
    return " ".join(f"Sentence {i} covers how the client handled stress at work." for i in range(sentences))


class TestIndexing(unittest.TestCase):
    def test_reindexing_same_content_is_idempotent(self):
        orch, store = make_orchestrator()

        async def scenario():
            first = await orch.index(BREATHING_SESSION, {"document_id": "s1", "therapist_id": "t1"})
            before = {c.id: c.embedding for c in await store.list_chunks()}
            second = await orch.index(BREATHING_SESSION, {"document_id": "s1", "therapist_id": "t1"})
            after = {c.id: c.embedding for c in await store.list_chunks()}
            return first, second, before, after

        first, second, before, after = _run(scenario())
        self.assertEqual(first.chunks_created, second.chunks_created)
        self.assertEqual(before, after)
        self.assertEqual(list(before), ["s1_chunk_0"])

    def test_shorter_content_replaces_all_previous_chunks(self):
        orch, store = make_orchestrator(chunker=make_chunker(max_tokens=30, overlap_tokens=0))

        async def scenario():
            long_result = await orch.index(long_text(12), {"document_id": "s1"})
            short_result = await orch.index("The client slept well.", {"document_id": "s1"})
            return long_result, short_result, await store.list_chunks()

        long_result, short_result, chunks = _run(scenario())
        self.assertGreater(long_result.chunks_created, 1)
        self.assertEqual(short_result.chunks_created, 1)
        self.assertEqual([c.text for c in chunks], ["The client slept well."])

    def test_chunk_metadata(self):
        orch, store = make_orchestrator()
        result = _run(orch.index(None, {"document_id": "s1", "therapist_id": 42, "entries": BREATHING_SESSION}))
        chunk = _run(store.get("s1_chunk_0"))

        self.assertEqual(result.vectors_stored, 1)
        self.assertEqual(chunk.metadata[MetadataKey.THERAPIST_ID], "42")
        self.assertIn(MetadataKey.TIMESTAMP, chunk.metadata)
        self.assertIn(MetadataKey.INDEXED_AT, chunk.metadata)
        self.assertNotIn(MetadataKey.ENTRIES, chunk.metadata)
        self.assertNotIn(MetadataKey.DOCUMENT_ID, chunk.metadata)
        self.assertFalse(chunk.metadata[MetadataKey.CONTEXTUALIZED])
        self.assertEqual(chunk.text, "therapist: Hello, how are you feeling?\nclient: Better, I tried the breathing exercise.")

    def test_invalid_input_rejected(self):
        orch, _ = make_orchestrator()
        with self.assertRaises(ValidationError):
            _run(orch.index("some text", {}))
        with self.assertRaises(ValidationError):
            _run(orch.index("   ", {"document_id": "s1"}))
        with self.assertRaises(ValidationError):
            _run(orch.index([], {"document_id": "s1"}))
        with self.assertRaises(ValidationError):
            _run(orch.index([{"speaker": "client", "content": "  "}], {"document_id": "s1"}))

    def test_downstream_failure_wrapped_with_document_id(self):
        fatal = ProviderError("HTTP 401", retryable=False, status_code=401)
        orch, store = make_orchestrator(embedder=make_embedder(FlakyEmbeddingClient([fatal])))

        with self.assertLogs("sessionrag.rag.orchestrator", level="ERROR"):
            with self.assertRaises(IndexingError) as ctx:
                _run(orch.index("The client slept well.", {"document_id": "s9"}))
        self.assertEqual(ctx.exception.details["document_id"], "s9")
        self.assertIsInstance(ctx.exception.__cause__, ProviderError)
        self.assertEqual(len(store), 0)

    def test_storage_failure_wrapped(self):
        orch, store = make_orchestrator()
        store.replace_document = AsyncMock(side_effect=VectorstoreError("qdrant unavailable"))

        with self.assertLogs("sessionrag.rag.orchestrator", level="ERROR"):
            with self.assertRaises(IndexingError) as ctx:
                _run(orch.index(BREATHING_SESSION, {"document_id": "s1"}))
        self.assertIsInstance(ctx.exception.cause, VectorstoreError)
        store.replace_document.assert_awaited_once()

    def test_enrichment_changes_embedding_input_only(self):
        llm = FakeLLM("Client reports progress with anxiety management.")
        orch, store = make_orchestrator(enricher=ContextEnricher(llm))
        result = _run(orch.index(BREATHING_SESSION, {"document_id": "s1", "therapist_id": "t1"}))
        chunk = _run(store.get("s1_chunk_0"))

        self.assertEqual(result.contextualized, 1)
        self.assertEqual(result.degraded, [])
        self.assertEqual(chunk.context_summary, llm.reply)
        self.assertTrue(chunk.metadata[MetadataKey.CONTEXTUALIZED])
        self.assertNotIn(llm.reply, chunk.text)
        self.assertIn("Therapist ID: t1.", llm.prompts[0])
        expected = HashingEmbeddingClient(DIM).vector(f"{llm.reply}\n\n{chunk.text}")
        for got, want in zip(chunk.embedding, expected):
            self.assertAlmostEqual(got, want)

    def test_enrichment_failure_degrades_to_raw_chunk(self):
        orch, store = make_orchestrator(enricher=ContextEnricher(FakeLLM(fail=True)))
        with self.assertLogs("sessionrag.rag.contextualizer", level="WARNING"):
            result = _run(orch.index(BREATHING_SESSION, {"document_id": "s1"}))
        chunk = _run(store.get("s1_chunk_0"))

        self.assertEqual(result.contextualized, 0)
        self.assertEqual([d.stage for d in result.degraded], ["enrichment"])
        self.assertEqual(result.degraded[0].fallback, "raw_chunk")
        self.assertIsNone(chunk.context_summary)
        self.assertEqual(chunk.embedding, HashingEmbeddingClient(DIM).vector(chunk.text))


class TestSearch(unittest.TestCase):
    def _indexed(self, **kwargs):
        orch, store = wide_orchestrator(**kwargs)

        async def setup():
            await orch.index(BREATHING_SESSION, {"document_id": "s1", "therapist_id": "t1", "client_id": "c1"})
            await orch.index(WORK_SESSION, {"document_id": "s2", "therapist_id": "t1", "client_id": "c2"})
        _run(setup())
        return orch, store

    def test_relevant_turn_ranks_first(self):
        orch, _ = self._indexed()
        results = _run(orch.search("breathing exercise", SearchOptions(limit=5)))

        self.assertTrue(results)
        self.assertEqual(results[0].document_id, "s1")
        self.assertIn("breathing exercise", results[0].text)
        self.assertEqual(results[0].score_source, "rerank:lexical")

    def test_pure_vector_results_respect_min_score(self):
        orch, _ = self._indexed()
        _run(orch.index("Sleep hygiene.", {"document_id": "s3", "therapist_id": "t2"}))
        results = _run(orch.search("sleep hygiene", _raw(min_score=0.4)))

        self.assertTrue(results)
        self.assertAlmostEqual(results[0].score, 1.0)
        scores = [r.score for r in results]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertTrue(all(s >= 0.4 for s in scores))
        self.assertTrue(all(r.score_source == "vector" for r in results))

    def test_owner_filter_isolates_therapists(self):
        orch, _ = wide_orchestrator()

        async def scenario():
            text = "client: I could not sleep again this week."
            await orch.index(text, {"document_id": "a", "therapist_id": "A"})
            await orch.index(text, {"document_id": "b", "therapist_id": "B"})
            only_a = await orch.search("sleep", _raw(owner_filter={"therapist_id": "A"}))
            everyone = await orch.search("sleep", _raw())
            return only_a, everyone

        only_a, everyone = _run(scenario())
        self.assertEqual({r.document_id for r in only_a}, {"a"})
        self.assertEqual({r.document_id for r in everyone}, {"a", "b"})

    def test_results_never_exceed_limit(self):
        orch, _ = wide_orchestrator(chunker=make_chunker(max_tokens=30, overlap_tokens=0))
        _run(orch.index(long_text(20), {"document_id": "s1"}))
        results = _run(orch.search("stress at work", SearchOptions(limit=3, min_score=0.0)))
        self.assertLessEqual(len(results), 3)
        self.assertEqual(len({r.id for r in results}), len(results))

    def test_invalid_queries_rejected(self):
        orch, _ = make_orchestrator()
        with self.assertRaises(ValidationError):
            _run(orch.search("   "))
        with self.assertRaises(ValidationError):
            SearchOptions(limit=0)
        with self.assertRaises(ValidationError):
            SearchOptions(diversity_lambda=1.5)

    def test_rerank_failure_reported_as_degraded(self):
        failing = FakeRerankClient(error=ProviderError("rerank down", retryable=True, provider="fake"))
        orch, _ = self._indexed(reranker=RelevanceReranker(failing))
        with self.assertLogs("sessionrag.rag.reranker", level="WARNING"):
            outcome = _run(orch.search_detailed("breathing exercise", SearchOptions(min_score=0.0)))

        self.assertTrue(outcome.is_degraded)
        self.assertEqual(outcome.degraded[0].stage, "rerank")
        self.assertTrue(outcome.results)
        self.assertTrue(all(r.score_source == "rerank:lexical" for r in outcome.results))

    def test_primary_reranker_scores(self):
        client = FakeRerankClient(lambda q, p: 0.95 if "breathing" in p else 0.2)
        orch, _ = self._indexed(reranker=RelevanceReranker(client))
        outcome = _run(orch.search_detailed("breathing exercise", SearchOptions(min_score=0.0)))

        self.assertFalse(outcome.is_degraded)
        self.assertEqual(outcome.results[0].document_id, "s1")
        self.assertEqual(outcome.results[0].score_source, "rerank:fake")

    def test_hybrid_search(self):
        store = InMemoryVectorStore(WIDE)
        orch, _ = self._indexed(store=store, hybrid=HybridSearcher(store))
        results = _run(orch.search("breathing exercise", _raw(use_hybrid=True)))

        self.assertEqual(results[0].document_id, "s1")
        self.assertTrue(all(r.score_source == "fusion" for r in results))

    def test_missing_components_are_configuration_errors(self):
        orch, _ = make_orchestrator()
        with self.assertRaises(ConfigurationError):
            _run(orch.search("sleep", SearchOptions(use_hybrid=True)))
        with self.assertRaises(ConfigurationError):
            _run(orch.search("sleep", SearchOptions(hierarchical=True)))

    def test_constructor_checks_store_shape(self):
        with self.assertRaises(ConfigurationError):
            RAGOrchestrator(make_chunker(), make_embedder(), InMemoryVectorStore(DIM, granularity=Granularity.DOCUMENT))
        with self.assertRaises(ConfigurationError):
            RAGOrchestrator(make_chunker(), make_embedder(), InMemoryVectorStore(DIM * 2))
        with self.assertRaises(ConfigurationError):
            RAGOrchestrator(
                make_chunker(), make_embedder(), InMemoryVectorStore(DIM), document_store=InMemoryVectorStore(DIM),
            )


class TestHierarchicalSearch(unittest.TestCase):
    def setUp(self):
        self.documents = InMemoryVectorStore(WIDE, granularity=Granularity.DOCUMENT)
        self.orch, self.store = wide_orchestrator(document_store=self.documents)

        async def setup():
            await self.orch.index(BREATHING_SESSION, {"document_id": "s1", "therapist_id": "t1"})
            await self.orch.index(WORK_SESSION, {"document_id": "s2", "therapist_id": "t1"})
        _run(setup())

    def test_document_records_written(self):
        records = _run(self.documents.list_chunks())
        self.assertEqual(sorted(r.id for r in records), ["s1_document", "s2_document"])
        record = _run(self.documents.get("s1_document"))
        self.assertEqual(record.metadata[MetadataKey.GRANULARITY], "document")
        self.assertIn("breathing exercise", record.text)

    def test_search_narrows_to_top_documents(self):
        results = _run(self.orch.search(
            "breathing exercise", _raw(hierarchical=True, hierarchical_document_limit=1),
        ))
        self.assertTrue(results)
        self.assertEqual({r.document_id for r in results}, {"s1"})
        self.assertTrue(all(r.score_source == "hierarchical" for r in results))

    def test_no_candidate_documents_means_no_results(self):
        results = _run(self.orch.search("zebra giraffe", _raw(hierarchical=True, hierarchical_min_score=0.5)))
        self.assertEqual(results, [])

    def test_delete_removes_document_record(self):
        _run(self.orch.delete_document("s1"))
        self.assertEqual([r.id for r in _run(self.documents.list_chunks())], ["s2_document"])

    def test_hybrid_hierarchical_combination_rejected(self):
        orch, _ = wide_orchestrator(
            store=self.store, document_store=self.documents, hybrid=HybridSearcher(self.store),
        )
        with self.assertRaises(ConfigurationError):
            _run(orch.search("breathing exercise", _raw(hierarchical=True, use_hybrid=True)))

    def test_health_reports_both_stores(self):
        report = _run(self.orch.health_check())
        self.assertTrue(report["hierarchical"])
        self.assertEqual(report["document_store"]["records"], 2)
        self.assertEqual(report["status"], "healthy")


class TestMaintenance(unittest.TestCase):
    def setUp(self):
        self.orch, self.store = make_orchestrator()

        async def setup():
            await self.orch.index(BREATHING_SESSION, {"document_id": "s1", "therapist_id": "t1"})
            await self.orch.index(WORK_SESSION, {"document_id": "s2", "therapist_id": "t2"})
        _run(setup())

    def test_delete_document(self):
        self.assertEqual(_run(self.orch.delete_document("s1")), 1)
        remaining = _run(self.store.list_chunks())
        self.assertEqual([c.document_id for c in remaining], ["s2"])
        with self.assertRaises(NotFoundError):
            _run(self.orch.delete_document("s1"))
        with self.assertRaises(ValidationError):
            _run(self.orch.delete_document(""))

    def test_delete_by_owner(self):
        self.assertEqual(_run(self.orch.delete_by_owner({"therapist_id": "t2"})), 1)
        self.assertEqual(len(_run(self.store.list_chunks(SearchFilter.build({"therapist_id": "t2"})))), 0)
        self.assertEqual(len(self.store), 1)
        with self.assertRaises(ValidationError):
            _run(self.orch.delete_by_owner({}))

    def test_health_check(self):
        report = _run(self.orch.health_check())
        self.assertEqual(report["status"], "healthy")
        self.assertEqual(report["provider"], "hashing")
        self.assertEqual(report["reranker"], "lexical")
        self.assertFalse(report["hybrid"])
        self.assertFalse(report["hierarchical"])
        self.assertEqual(report["vector_store"]["records"], 2)
        self.assertNotIn("provider_reachable", report)

    def test_health_check_calls_providers_on_request(self):
        report = _run(self.orch.health_check(check_providers=True))
        self.assertTrue(report["provider_reachable"])
        self.assertNotIn("context_llm_reachable", report)
        self.assertEqual(report["status"], "healthy")

    def test_unreachable_providers_degrade_health(self):
        down = FlakyEmbeddingClient([ProviderError("auth failed", retryable=False, provider="flaky")])
        orch, _ = make_orchestrator(
            embedder=make_embedder(down), enricher=ContextEnricher(FakeLLM(fail=True)),
        )
        report = _run(orch.health_check(check_providers=True))

        self.assertFalse(report["provider_reachable"])
        self.assertFalse(report["context_llm_reachable"])
        self.assertEqual(report["status"], "degraded")
        self.assertEqual(down.calls, 1)

    def test_provider_info(self):
        info = self.orch.provider_info()
        self.assertEqual(info["provider"], "hashing")
        self.assertEqual(info["dimensions"], DIM)
        self.assertFalse(info["contextual_retrieval"])
        self.assertEqual(info["reranker"], "lexical")


if __name__ == "__main__":
    unittest.main()
