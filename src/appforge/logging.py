"""Structured logging configuration for Appforge.

This module configures structlog with support for:
- JSON and console output formats
- File rotation based on size
- A per-run identifier bound to every event

Log records are written to stderr (or a file) because stdout carries the
serialized object list.

Example usage:
    >>> from appforge.config import LoggingConfig
    >>> from appforge.logging import setup_logging, get_logger, bind_run_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="console"))
    >>> bind_run_context(run_id="3f2a")
    >>> logger = get_logger(__name__)
    >>> logger.info("component_resolved", reference="mysql")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys

import structlog

from appforge.config import LoggingConfig


def bind_run_context(run_id: str) -> None:
    """Bind the run identifier to all subsequent logs.

    Args:
        run_id: Identifier of the current new-app run
    """
    structlog.contextvars.bind_contextvars(run_id=run_id)


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog with the given configuration.

    Args:
        config: Logging configuration from AppforgeConfig
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
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
    """
    return structlog.get_logger(name)
