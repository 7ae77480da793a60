"""Rerank clients, provider error translation, config loading, errors, logging and service wiring."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import unittest
from unittest import mock

import httpx

from sessionrag.clients.embedding import EmbeddingConfig, default_registry as embedding_registry
from sessionrag.clients.embedding.providers.hashing import HashingEmbeddingClient
from sessionrag.clients.errors import retryable_status, translate_http_error
from sessionrag.clients.rerank import HttpRerankClient, LLMRerankClient
from sessionrag.clients.rerank.llm import _parse_score
from sessionrag.config import DatabaseConfig, QdrantConfig, RAGConfig, load_rag_config
from sessionrag.core.exceptions import (
    ConfigurationError,
    IndexingError,
    ProjectError,
    ProviderError,
    QueueFullError,
    ValidationError,
    exception_factory,
    is_retryable,
)
from sessionrag.core.logger import JsonFormatter, LoggerConfig, configure, get_logger, log_context
from sessionrag.rag.types import SearchOptions
from sessionrag.services import RAGService
from sessionrag.services.rag_service import build_embedding_client, build_rerank_client
from sessionrag.tests.fakes import DIM, FakeLLM, _run


def _http_client(handler) -> HttpRerankClient:
    transport = httpx.MockTransport(handler)
    return HttpRerankClient(
        "https://rerank.example/v2/rerank", api_key="k", client=httpx.AsyncClient(transport=transport),
    )


class TestHttpRerankClient(unittest.TestCase):
    def test_parses_and_clamps_scores(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"results": [
                {"index": 1, "relevance_score": 1.7},
                {"index": 0, "relevance_score": 0.4},
                {"index": 5, "relevance_score": 0.9},
            ]})

        client = _http_client(handler)
        with self.assertLogs("sessionrag.clients.rerank.http", level="WARNING"):
            ranked = _run(client.rerank("sleep", ["first passage", "second passage"]))

        self.assertEqual(ranked, [(1, 1.0), (0, 0.4)])
        self.assertEqual(seen["body"]["documents"], ["first passage", "second passage"])
        self.assertEqual(seen["body"]["top_n"], 2)
        self.assertEqual(seen["auth"], "Bearer k")

    def test_rate_limit_is_retryable(self):
        client = _http_client(lambda request: httpx.Response(429, json={"message": "slow down"}))
        with self.assertRaises(ProviderError) as ctx:
            _run(client.rerank("q", ["p"]))
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.status_code, 429)

    def test_auth_failure_is_fatal(self):
        client = _http_client(lambda request: httpx.Response(401, json={"message": "bad key"}))
        with self.assertRaises(ProviderError) as ctx:
            _run(client.rerank("q", ["p"]))
        self.assertFalse(ctx.exception.retryable)
        self.assertFalse(is_retryable(ctx.exception))

    def test_malformed_body_rejected(self):
        client = _http_client(lambda request: httpx.Response(200, json={"data": []}))
        with self.assertRaises(ProviderError):
            _run(client.rerank("q", ["p"]))

    def test_no_passages_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        self.assertEqual(_run(_http_client(handler).rerank("q", [])), [])


class TestLLMRerankClient(unittest.TestCase):
    def test_parse_score(self):
        self.assertEqual(_parse_score("7"), 7.0)
        self.assertEqual(_parse_score("Score: 8."), 8.0)
        self.assertEqual(_parse_score("12"), 10.0)
        self.assertEqual(_parse_score("no idea"), 0.0)

    def test_scores_scaled_to_unit_range(self):
        client = LLMRerankClient(FakeLLM("6"))
        ranked = _run(client.rerank("sleep", ["a", "b"], top_n=1))
        self.assertEqual(ranked, [(0, 0.6)])
        self.assertEqual(client.provider, "llm:fake")


class TestErrorTranslation(unittest.TestCase):
    def test_retryable_statuses(self):
        for status in (408, 429, 500, 503):
            self.assertTrue(retryable_status(status), status)
        for status in (None, 400, 401, 403, 404, 422):
            self.assertFalse(retryable_status(status), status)

    def test_transport_errors_are_retryable(self):
        request = httpx.Request("POST", "https://rerank.example")
        error = translate_http_error(httpx.ConnectError("refused", request=request), provider="http")
        self.assertTrue(error.retryable)
        self.assertEqual(error.provider, "http")


class TestConfig(unittest.TestCase):
    def test_defaults_are_valid(self):
        config = RAGConfig()
        self.assertEqual(config.chunk_max_tokens, 512)
        self.assertEqual(config.vector_store, "memory")
        self.assertFalse(config.hierarchical_enabled)

    def test_invalid_values_rejected(self):
        with self.assertRaises(ValueError):
            RAGConfig(chunk_max_tokens=100, chunk_overlap_tokens=100)
        with self.assertRaises(ValueError):
            RAGConfig(vector_store="faiss")
        with self.assertRaises(ValueError):
            RAGConfig(rerank_provider="magic")
        with self.assertRaises(ValueError):
            DatabaseConfig(url="mysql://localhost/db")
        with self.assertRaises(ValueError):
            QdrantConfig(url="localhost:6333")

    def test_env_and_overrides(self):
        env = {
            "CHUNK_MAX_TOKENS": "256",
            "VECTOR_STORE": "SQL",
            "HIERARCHICAL_ENABLED": "yes",
            "OPENAI_API_KEY": "sk-test",
            "INDEX_WORKERS": "4",
        }
        with mock.patch.dict(os.environ, env):
            config = load_rag_config(index_workers=1)
        self.assertEqual(config.chunk_max_tokens, 256)
        self.assertEqual(config.vector_store, "sql")
        self.assertTrue(config.hierarchical_enabled)
        self.assertEqual(config.embedding_api_key, "sk-test")
        self.assertEqual(config.llm_api_key, "sk-test")
        self.assertEqual(config.index_workers, 1)

    def test_database_config(self):
        self.assertTrue(DatabaseConfig(url="sqlite+aiosqlite:///:memory:").is_sqlite)
        with mock.patch.dict(os.environ, {"CHUNK_DATABASE_URL": "postgresql://db/sessions", "CHUNK_DB_ECHO": "1"}):
            config = DatabaseConfig.from_env()
        self.assertTrue(config.echo)
        self.assertFalse(config.is_sqlite)

    def test_embedding_client_built_from_config(self):
        client = build_embedding_client(RAGConfig(embedding_provider="hashing", embedding_dimensions=DIM))
        self.assertIsInstance(client, HashingEmbeddingClient)
        self.assertEqual(client.dimension, DIM)
        self.assertEqual(
            EmbeddingConfig(model="m", provider="hashing").to_dict(),
            {"model": "m", "provider": "hashing", "extra": {}},
        )
        with self.assertRaises(ConfigurationError):
            embedding_registry.build("nope", EmbeddingConfig(model="m", provider="nope").to_dict())

    def test_rerank_client_selection(self):
        self.assertIsNone(build_rerank_client(RAGConfig(), None))
        self.assertIsInstance(build_rerank_client(RAGConfig(rerank_provider="llm"), FakeLLM()), LLMRerankClient)
        with self.assertRaises(ConfigurationError):
            build_rerank_client(RAGConfig(rerank_provider="llm"), None)


class TestExceptionsAndLogging(unittest.TestCase):
    def test_to_dict(self):
        cause = RuntimeError("boom")
        error = ValidationError("bad input", details={"field": "query"}, cause=cause)
        out = error.to_dict()
        self.assertEqual(out["code"], "VALIDATION_ERROR")
        self.assertEqual(out["http_status"], 400)
        self.assertEqual(out["details"], {"field": "query"})
        self.assertEqual(out["cause"], "boom")
        self.assertNotIn("cause_traceback", out)
        self.assertIn("cause_traceback", error.to_dict(include_traceback=True))

    def test_log_fields_flatten_details(self):
        error = IndexingError("failed", details={"document_id": "s1"}, cause=ValueError("bad vector"))
        self.assertEqual(
            error.log_fields(),
            {"error_code": "INDEXING_ERROR", "cause_type": "ValueError", "document_id": "s1"},
        )

    def test_provider_error_details(self):
        error = ProviderError("HTTP 503", retryable=True, attempts=3, provider="openai", status_code=503)
        self.assertEqual(error.details, {"retryable": True, "attempts": 3, "provider": "openai"})
        self.assertEqual(error.http_status, 502)

    def test_factory_types(self):
        self.assertTrue(issubclass(QueueFullError, ProjectError))
        self.assertEqual(QueueFullError("full").code, "QUEUE_FULL")
        Custom = exception_factory("CustomError", http_status=418)
        self.assertEqual(Custom("x").to_dict()["code"], "CUSTOMERROR")

    def test_log_context_drops_none(self):
        self.assertEqual(log_context(document_id="s1", error=None), {"extra": {"document_id": "s1"}})

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("sessionrag.test", logging.WARNING, __file__, 1, "queue full", None, None)
        record.extra = {"document_id": "s1"}
        line = json.loads(JsonFormatter().format(record))
        self.assertEqual(line["level"], "WARNING")
        self.assertEqual(line["message"], "queue full")
        self.assertEqual(line["extra"], {"document_id": "s1"})

    def test_configure_writes_json_file(self):
        with tempfile.TemporaryDirectory() as log_dir:
            configure(LoggerConfig(level="debug", log_dir=log_dir, root_name="sessionrag_logtest", console=False))
            root = logging.getLogger("sessionrag_logtest")
            try:
                logger = get_logger("sessionrag_logtest.queue")
                logger.warning("queue full", extra=log_context(document_id="s1"))
                for handler in root.handlers:
                    handler.flush()
                with open(os.path.join(log_dir, "sessionrag.log"), encoding="utf-8") as fh:
                    line = json.loads(fh.readline())
                configure(LoggerConfig(root_name="sessionrag_logtest", console=False, log_dir=log_dir))
                self.assertEqual(len(root.handlers), 1)
            finally:
                for handler in root.handlers:
                    handler.close()
                root.handlers.clear()
        self.assertEqual(line["message"], "queue full")
        self.assertEqual(line["extra"], {"document_id": "s1"})
        self.assertFalse(root.propagate)


class TestRAGService(unittest.TestCase):
    def test_wired_from_config(self):
        config = RAGConfig(
            embedding_provider="hashing",
            embedding_dimensions=DIM,
            vector_store="memory",
            hierarchical_enabled=True,
            contextual_retrieval_enabled=False,
        )

        async def scenario():
            service = await RAGService.from_config(config)
            await service.start()
            await service.queue.submit(
                [
                    {"speaker": "therapist", "content": "How have you been sleeping?"},
                    {"speaker": "client", "content": "Badly, I wake up at night worrying about work."},
                ],
                {"document_id": "s1", "therapist_id": "t1"},
            )
            await service.queue.join()
            results = await service.orchestrator.search(
                "sleeping badly", SearchOptions(hierarchical=True, min_score=0.0),
            )
            health = await service.orchestrator.health_check()
            await service.close()
            return service, results, health

        service, results, health = _run(scenario())
        self.assertEqual(service.queue.processed, 1)
        self.assertFalse(service.queue.running)
        self.assertTrue(results)
        self.assertEqual(results[0].document_id, "s1")
        self.assertTrue(health["hierarchical"])
        self.assertEqual(health["provider"], "hashing")


if __name__ == "__main__":
    unittest.main()
