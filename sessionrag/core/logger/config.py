"""
Logger configuration for sessionrag. Build explicitly or from env.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class LoggerConfig:
    """
    Configuration for the package logger.

    Use LoggerConfig.from_env() for env-based config, or build explicitly.
    """

    level: str = "INFO"
    # Rotating JSON file handler is skipped when log_dir is None
    log_dir: Optional[str] = None
    log_file_basename: str = "sessionrag"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5
    # Handlers are attached to this logger; module loggers inherit
    root_name: str = "sessionrag"
    console: bool = True
    file_rotating: bool = True

    @classmethod
    def from_env(cls) -> "LoggerConfig":
        """Build config from LOG_LEVEL, LOG_DIR, LOG_FILE_BASENAME, LOG_MAX_BYTES,
        LOG_BACKUP_COUNT, LOG_ROOT_NAME, LOG_CONSOLE and LOG_FILE_ROTATING."""
        env = os.environ
        return cls(
            level=env.get("LOG_LEVEL", "INFO").upper(),
            log_dir=env.get("LOG_DIR") or None,
            log_file_basename=env.get("LOG_FILE_BASENAME", "sessionrag"),
            max_bytes=int(env.get("LOG_MAX_BYTES", str(5 * 1024 * 1024))),
            backup_count=int(env.get("LOG_BACKUP_COUNT", "5")),
            root_name=env.get("LOG_ROOT_NAME", "sessionrag"),
            console=env.get("LOG_CONSOLE", "true").lower() in _TRUTHY,
            file_rotating=env.get("LOG_FILE_ROTATING", "true").lower() in _TRUTHY,
        )
