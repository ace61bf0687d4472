"""Unit tests for logging configuration."""

from __future__ import annotations

import json
import logging
import logging.handlers
from io import StringIO
from pathlib import Path

import pytest
import structlog

from appforge.config import LoggingConfig
from appforge.logging import bind_run_context, get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_logging() -> None:
    """Reset logging configuration before each test."""
    root = logging.getLogger()
    root.handlers.clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def capture_stream() -> StringIO:
    """Create a StringIO stream for capturing log output."""
    return StringIO()


@pytest.fixture
def json_config() -> LoggingConfig:
    """Create a LoggingConfig for JSON output to stderr."""
    return LoggingConfig(level="INFO", format="json", file=None)


def test_json_output_format(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that JSON format produces valid JSON output."""
    setup_logging(json_config)
    root = logging.getLogger()
    root.handlers[0].stream = capture_stream

    logger = get_logger("test.module")
    logger.info("component_resolved", reference="mysql", builder=False)

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert log_entry["event"] == "component_resolved"
    assert log_entry["reference"] == "mysql"
    assert log_entry["builder"] is False
    assert log_entry["level"] == "info"
    assert log_entry["logger"] == "test.module"
    assert "timestamp" in log_entry


def test_console_output_format(capture_stream: StringIO) -> None:
    """Test that console format produces readable output."""
    setup_logging(LoggingConfig(level="DEBUG", format="console"))
    logging.getLogger().handlers[0].stream = capture_stream

    get_logger("test").debug("source_detected", path="/src")

    output = capture_stream.getvalue()
    assert "source_detected" in output
    assert "/src" in output


def test_default_handler_writes_to_stderr(json_config: LoggingConfig) -> None:
    """Test that logs never go to stdout, which carries the object list."""
    import sys

    setup_logging(json_config)
    handler = logging.getLogger().handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    assert handler.stream is sys.stderr


def test_level_filtering(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that events below the configured level are dropped."""
    setup_logging(json_config)
    logging.getLogger().handlers[0].stream = capture_stream

    logger = get_logger("test")
    logger.debug("hidden_event")
    logger.warning("visible_event")

    output = capture_stream.getvalue()
    assert "hidden_event" not in output
    assert "visible_event" in output


def test_run_context_binding(json_config: LoggingConfig, capture_stream: StringIO) -> None:
    """Test that the run identifier is attached to every event."""
    setup_logging(json_config)
    logging.getLogger().handlers[0].stream = capture_stream

    bind_run_context(run_id="3f2a9c")
    get_logger("test").info("objects_written", count=3)

    log_entry = json.loads(capture_stream.getvalue().strip())
    assert log_entry["run_id"] == "3f2a9c"
    assert log_entry["count"] == 3


def test_file_rotation(tmp_path: Path) -> None:
    """Test that a log file configures a rotating handler."""
    log_file = tmp_path / "logs" / "appforge.log"
    setup_logging(LoggingConfig(level="INFO", format="json", file=log_file, rotation_size_mb=1, retention_count=2))

    handler = logging.getLogger().handlers[0]
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert handler.maxBytes == 1024 * 1024
    assert handler.backupCount == 2
    assert log_file.parent.is_dir()

    get_logger("test").info("file_event")
    handler.flush()
    assert "file_event" in log_file.read_text()
