"""Token counting with the embedding model's own tokenizer (tiktoken).

When the encoding cannot be loaded (unknown model, BPE file unavailable
offline) the counter degrades to ``ceil(len(text) / 4)`` and reports
``approximate = True`` so chunk metadata can flag the estimate.
"""
from __future__ import annotations

import functools
import logging
import math
from typing import Any, Optional

import tiktoken

logger = logging.getLogger(__name__)

_FALLBACK_ENCODING = "cl100k_base"
_CHARS_PER_TOKEN = 4


@functools.lru_cache(maxsize=8)
def _load_encoding(model: str) -> Optional[Any]:
    try:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            return tiktoken.get_encoding(_FALLBACK_ENCODING)
    except Exception as exc:
        logger.warning(
            "tiktoken encoding for %s unavailable (%s); token counts are approximate", model, exc,
        )
        return None


class TokenCounter:
    """Counts tokens exactly when possible, approximately otherwise."""

    def __init__(self, model: str = "text-embedding-3-large", *, encoding: Any = None, load: bool = True) -> None:
        self._model = model
        if encoding is not None:
            self._encoding = encoding
        else:
            self._encoding = _load_encoding(model) if load else None

    @classmethod
    def approximate_only(cls) -> "TokenCounter":
        return cls(load=False)

    @property
    def model(self) -> str:
        return self._model

    @property
    def approximate(self) -> bool:
        return self._encoding is None

    def count(self, text: str) -> int:
        if not text:
            return 0
        if self._encoding is None:
            return math.ceil(len(text) / _CHARS_PER_TOKEN)
        return len(self._encoding.encode(text, disallowed_special=()))
