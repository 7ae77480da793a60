"""
sessionrag.config.database – SQL chunk table connection config.

Env vars: CHUNK_DATABASE_URL, CHUNK_DB_POOL_SIZE, CHUNK_DB_ECHO.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

_SUPPORTED_PREFIXES = ("postgresql://", "postgres://", "postgresql+asyncpg://", "sqlite+aiosqlite://")


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("CHUNK_DATABASE_URL is required and must be non-empty")
    if not url.startswith(_SUPPORTED_PREFIXES):
        raise ValueError(
            "CHUNK_DATABASE_URL must start with one of: " + ", ".join(_SUPPORTED_PREFIXES)
        )
    return url


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Connection settings for the chunk table.

    Postgres URLs are rewritten to the asyncpg driver by the engine builder;
    ``sqlite+aiosqlite://`` is accepted for local development and tests.
    """

    url: str
    pool_size: int = 5
    echo: bool = False

    def __post_init__(self) -> None:
        _validate_url(self.url)
        if not isinstance(self.pool_size, int) or self.pool_size < 1:
            raise ValueError(f"pool_size must be an integer >= 1, got {self.pool_size!r}")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @classmethod
    def from_env(cls, **overrides: object) -> DatabaseConfig:
        url = overrides.get("url") or os.environ.get(
            "CHUNK_DATABASE_URL", "postgresql://localhost/sessionrag",
        )
        pool_size = int(overrides.get("pool_size") or os.environ.get("CHUNK_DB_POOL_SIZE", "5"))
        raw_echo = overrides.get("echo")
        if raw_echo is None:
            echo = os.environ.get("CHUNK_DB_ECHO", "").strip().lower() in ("1", "true", "yes")
        else:
            echo = bool(raw_echo)
        return cls(url=str(url).strip(), pool_size=pool_size, echo=echo)


def load_database_config(**overrides: object) -> DatabaseConfig:
    """Load and validate the chunk-table config from env (overrides win)."""
    return DatabaseConfig.from_env(**overrides)
