"""Embedding client interface: list of texts -> list of vectors, one provider call."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Union


class BaseEmbeddingClient(ABC):
    """Raw provider access. Batching, retries and validation live in ``sessionrag.rag.embedder``.

    Implementations raise ``ProviderError`` with ``retryable`` set for
    every provider-side failure.
    """

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider name (e.g. openai, gemini, hashing)."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Concrete model id (e.g. text-embedding-3-large)."""
        ...

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Output vector dimension for this model."""
        ...

    @property
    def normalized(self) -> bool:
        """True when the provider returns unit-length vectors."""
        return True

    @property
    def cost_per_1k_tokens(self) -> float:
        return 0.0

    @abstractmethod
    async def embed(self, text: Union[str, List[str]]) -> List[List[float]]:
        """Embed one or more texts. Returns one vector per input text, in order."""
        ...

    async def test_connection(self) -> bool:
        """Check that the client can reach the provider. Returns True if OK."""
        from sessionrag.core.exceptions import ProviderError

        try:
            await self.embed("test")
            return True
        except ProviderError:
            return False
