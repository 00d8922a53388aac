"""
Logging configuration for the application.

Every line carries the correlation id of the request being served, so a
caller-facing {"error", "correlationId"} response can be traced to the
full server-side detail. The id is held in a context variable: it flows
into tasks started with asyncio.gather/create_task and into
asyncio.to_thread workers without being passed around.

Supports per-module log levels via environment variables:
- LOG_LEVEL: Global log level (default: INFO)
- LOG_FORMAT: Log format - simple or structured (default: structured)
- LOG_LEVEL_<MODULE>: Per-module override (e.g., LOG_LEVEL_EXECUTOR=DEBUG)
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from vidforge.config import Settings


correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

NO_CORRELATION_ID = "-"

# Settings field suffix -> logger name
MODULE_LOGGERS = {
    "executor": "vidforge.services.executor",
    "broadcaster": "vidforge.services.broadcaster",
    "fanout": "vidforge.services.fanout",
    "media": "vidforge.services.media_engine",
    "storage": "vidforge.services.storage",
}


@contextmanager
def correlation_context(correlation_id: str | None) -> Iterator[None]:
    """
    Tag every log record emitted inside the block with a correlation id.

    Example:
        with correlation_context(cid):
            logger.info("Accepted clip.mp4")
            # 2026-10-19 12:00:00 | INFO     | processing      | 3f9c0a1b2c4d | Accepted clip.mp4
    """
    token = correlation_id_var.set(correlation_id)
    try:
        yield
    finally:
        correlation_id_var.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Copy the current correlation id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or NO_CORRELATION_ID
        return True


class StructuredFormatter(logging.Formatter):
    """
    Structured log formatter for easy parsing.

    Format: timestamp | level | logger | correlation id | message
    """

    def format(self, record: logging.LogRecord) -> str:
        logger_name = record.name
        if logger_name.startswith("vidforge.services."):
            logger_name = logger_name.removeprefix("vidforge.services.")
        elif logger_name.startswith("vidforge.api."):
            logger_name = "api." + logger_name.removeprefix("vidforge.api.")
        elif logger_name.startswith("vidforge."):
            logger_name = logger_name.removeprefix("vidforge.")

        correlation_id = getattr(record, "correlation_id", NO_CORRELATION_ID)
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")

        message = (
            f"{timestamp} | "
            f"{record.levelname:8} | "
            f"{logger_name:15} | "
            f"{correlation_id:12} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(settings: "Settings") -> None:
    """
    Configure logging based on settings.

    The handler itself does not filter by level, so a per-module override
    can be more verbose than LOG_LEVEL.

    Args:
        settings: Application settings with log configuration
    """
    root_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "structured":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)

    _configure_module_loggers(settings, root_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _configure_module_loggers(settings: "Settings", default_level: int) -> None:
    for module_key, logger_name in MODULE_LOGGERS.items():
        level_str = getattr(settings, f"log_level_{module_key}", None)
        if level_str:
            level = getattr(logging, level_str.upper(), default_level)
            logging.getLogger(logger_name).setLevel(level)
