"""Structured logging configuration for Coachflow.

This module configures structlog with support for:
- JSON and console output formats
- File rotation based on size
- Correlation IDs for tracing a single turn through the engine
- Project and session context binding

The logging system integrates structlog with Python's stdlib logging
for handlers (file rotation), while using structlog exclusively for
actual log emission.

Example usage:
    >>> from coachflow.config import LoggingConfig
    >>> from coachflow.logging import setup_logging, get_logger, bind_session_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="json"))
    >>> logger = get_logger(__name__)
    >>> bind_session_context(project_id="P-1", session_id="S-1")
    >>> logger.info("turn_started", stage="BIG_IDEA")
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
from typing import Any

import structlog

from coachflow.config import LoggingConfig

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add correlation_id to log event if set in context.

    Args:
        logger: Logger instance (unused, required by structlog protocol)
        method_name: Log method name (unused, required by structlog protocol)
        event_dict: Current event dictionary to augment

    Returns:
        Event dictionary with correlation_id added if available
    """
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID for current context.

    The engine sets a fresh id at the start of every turn and clears it when
    the turn ends, so all events emitted while handling one utterance share
    it.

    Args:
        correlation_id: Correlation ID string or None to clear
    """
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get current correlation ID from context.

    Returns:
        Current correlation ID or None outside a turn
    """
    return _correlation_id.get()


def bind_session_context(project_id: str, session_id: str) -> None:
    """Bind project and session identifiers to all subsequent logs.

    Both ids are merged into every event emitted in the current context,
    including events from the domain modules that only log stage and intent
    details.

    Args:
        project_id: Project identifier to bind
        session_id: Conversation session identifier to bind
    """
    structlog.contextvars.bind_contextvars(project_id=project_id, session_id=session_id)


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog with the given configuration.

    Args:
        config: Logging configuration from CoachflowConfig

    Example:
        >>> from pathlib import Path
        >>> from coachflow.config import LoggingConfig
        >>>
        >>> # JSON lines to a rotating file while chatting in the terminal
        >>> setup_logging(
        ...     LoggingConfig(
        ...         level="INFO",
        ...         format="json",
        ...         file=Path("~/.local/state/coachflow/coachflow.log").expanduser(),
        ...         rotation_size_mb=10,
        ...         retention_count=3,
        ...     )
        ... )
        >>>
        >>> # Human-readable output on stderr for debugging a session
        >>> setup_logging(LoggingConfig(level="DEBUG", format="console"))
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler: logging.Handler
    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        # stderr keeps the interactive chat transcript on stdout clean
        handler = logging.StreamHandler(sys.stderr)

    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    if config.format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("stage_advanced", from_stage="BIG_IDEA", to_stage="ESSENTIAL_QUESTION")
    """
    return structlog.get_logger(name)
