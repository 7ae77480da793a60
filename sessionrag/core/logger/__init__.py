"""
Package logger: console + optional rotating JSON file.

Usage:
    from sessionrag.core.logger import configure, LoggerConfig

    # Configure once at startup (LoggerConfig.from_env() if omitted)
    configure(LoggerConfig(level="DEBUG", log_dir="/var/log/sessionrag"))

    # Modules log through the stdlib
    logger = logging.getLogger(__name__)
    logger.warning("Context enrichment failed", extra=log_context(document_id="s-1"))
"""
from sessionrag.core.logger.config import LoggerConfig
from sessionrag.core.logger.formatters import JsonFormatter, PlainConsoleFormatter
from sessionrag.core.logger.setup import configure, get_logger, log_context

__all__ = [
    "LoggerConfig",
    "JsonFormatter",
    "PlainConsoleFormatter",
    "configure",
    "get_logger",
    "log_context",
]
