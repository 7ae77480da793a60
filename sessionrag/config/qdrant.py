"""
sessionrag.config.qdrant – Qdrant connection and collection config.

Env vars: QDRANT_URL, QDRANT_API_KEY, QDRANT_TIMEOUT, QDRANT_VECTOR_SIZE,
         QDRANT_COLLECTION_NAME, QDRANT_DOCUMENT_COLLECTION_NAME, QDRANT_DISTANCE.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

_VALID_DISTANCES = frozenset({"Cosine", "Dot", "Euclid"})


@dataclass(frozen=True)
class QdrantConfig:
    url: str
    api_key: str | None = None
    timeout: int = 30
    vector_size: int = 1024
    collection_name: str = "session_chunks"
    document_collection_name: str = "session_documents"
    distance: str = "Cosine"

    def __post_init__(self) -> None:
        url = (self.url or "").strip()
        if not url or not (url.startswith("http://") or url.startswith("https://")):
            raise ValueError("QDRANT_URL must start with http:// or https://")
        if not isinstance(self.timeout, int) or self.timeout < 1:
            raise ValueError(f"timeout must be a positive integer, got {self.timeout!r}")
        if not isinstance(self.vector_size, int) or self.vector_size < 1:
            raise ValueError(f"vector_size must be a positive integer, got {self.vector_size!r}")
        if self.distance not in _VALID_DISTANCES:
            raise ValueError(f"distance must be one of {sorted(_VALID_DISTANCES)}, got {self.distance!r}")
        for name in (self.collection_name, self.document_collection_name):
            if not name or not name.strip():
                raise ValueError("collection names must be non-empty strings")

    @classmethod
    def from_env(cls, **overrides: object) -> QdrantConfig:
        def _get(key: str, env: str, default: str) -> str:
            return str(overrides.get(key) or os.environ.get(env, default)).strip()

        raw_key = overrides.get("api_key") or os.environ.get("QDRANT_API_KEY")
        api_key = str(raw_key).strip() if raw_key else None
        return cls(
            url=_get("url", "QDRANT_URL", "http://localhost:6333").rstrip("/"),
            api_key=api_key or None,
            timeout=int(_get("timeout", "QDRANT_TIMEOUT", "30")),
            vector_size=int(_get("vector_size", "QDRANT_VECTOR_SIZE", "1024")),
            collection_name=_get("collection_name", "QDRANT_COLLECTION_NAME", "session_chunks"),
            document_collection_name=_get(
                "document_collection_name", "QDRANT_DOCUMENT_COLLECTION_NAME", "session_documents",
            ),
            distance=_get("distance", "QDRANT_DISTANCE", "Cosine"),
        )


def load_qdrant_config(**overrides: object) -> QdrantConfig:
    return QdrantConfig.from_env(**overrides)
