"""Embedding client configuration."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class EmbeddingConfig:
    """Configuration for one embedding client instance; fed to the registry builders."""

    model: str
    provider: str = "openai"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    dimensions: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, omitting None values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None}
