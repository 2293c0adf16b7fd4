"""Structured logging configuration using structlog."""

import logging
import sys
from typing import Any, List

import structlog
from structlog.types import Processor

from locktime.config import get_settings

# Configure once flag
_configured = False


def _configure_structlog() -> None:
    """Configure structlog for the application."""
    global _configured
    if _configured:
        return

    log_level_str = get_settings().log_level.upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Console handler (stderr)
    if not any(getattr(h, "_locktime", False) for h in root_logger.handlers):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        console_handler._locktime = True  # type: ignore[attr-defined]
        root_logger.addHandler(console_handler)

    # Colored console output on a terminal, JSON lines otherwise
    is_development = sys.stderr.isatty()

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_development:
        processors: List[Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)
        **initial_context: Initial context values to bind to the logger

    Returns:
        Bound structlog logger

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("lock_paused", lock_id="abc123", remaining_seconds=82800)
    """
    _configure_structlog()

    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)

    if initial_context:
        logger = logger.bind(**initial_context)

    return logger


def bind_context(**context: Any) -> None:
    """
    Bind context variables that will be included in all log messages.

    Used by orchestrators to tag every event of one command with its
    request_id.
    """
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


__all__ = ["get_logger", "bind_context", "clear_context"]
