"""Tests for component loggers and formatters."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from platform_auth.utils.logging.iso_formatter import ISO8601Formatter
from platform_auth.utils.logging.logger import ConsoleFormatter, configure_logging, get_logger


@pytest.fixture
def restore_package_logger() -> Iterator[None]:
    """Undo configure_logging() side effects after the test."""
    package_logger = logging.getLogger("platform-auth")
    handlers = list(package_logger.handlers)
    level, propagate = package_logger.level, package_logger.propagate
    yield
    for handler in list(package_logger.handlers):
        if handler not in handlers:
            handler.close()
            package_logger.removeHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = propagate


def make_record(msg: object, level: int = logging.WARNING) -> logging.LogRecord:
    return logging.LogRecord("platform-auth.test", level, __file__, 1, msg, None, None)


class TestFormatters:
    """Tests for console and JSONL formatting of dict messages."""

    def test_console_uses_message(self) -> None:
        """Given a dict message, the console line shows its message field."""
        line = ConsoleFormatter().format(make_record({"event": "token_refresh", "message": "Refreshing"}))

        assert line == "WARNING: Refreshing"

    def test_console_falls_back_to_event(self) -> None:
        """Given a dict without message, the console line shows the event."""
        assert ConsoleFormatter().format(make_record({"event": "keyring_unavailable"})) == (
            "WARNING: keyring_unavailable"
        )

    def test_iso_formatter_writes_json(self) -> None:
        """Given a dict message, the JSONL line holds ISO time, level, logger and fields."""
        # Act
        line = ISO8601Formatter().format(make_record({"event": "token_store_saved", "path": "/x"}))

        # Assert
        data = json.loads(line)
        assert data["time"].endswith("Z")
        assert data["level"] == "WARNING"
        assert data["logger"] == "platform-auth.test"
        assert data["event"] == "token_store_saved"
        assert data["path"] == "/x"

    def test_iso_formatter_plain_message(self) -> None:
        """Given a string message, it is wrapped in a message field."""
        data = json.loads(ISO8601Formatter().format(make_record("plain text")))

        assert data["message"] == "plain text"


def test_get_logger_is_package_child() -> None:
    """Given a component name, the logger is a child of the package logger."""
    assert get_logger("auth").name == "platform-auth.auth"


def test_configure_logging_writes_file(tmp_path: Path, restore_package_logger: None) -> None:
    """Given a log file, component records are written there as JSONL."""
    # Arrange
    log_file = tmp_path / "logs" / "auth.jsonl"
    configure_logging(logging.DEBUG, log_file)

    # Act
    get_logger("auth").info({"event": "login", "message": "Logged in"})
    for handler in logging.getLogger("platform-auth").handlers:
        handler.flush()

    # Assert
    (line,) = log_file.read_text().splitlines()
    assert json.loads(line)["event"] == "login"
