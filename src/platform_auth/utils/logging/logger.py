"""Component loggers for platform-auth.

Every module logs through a child of the ``platform-auth`` logger using
structured dict messages:

    logger = get_logger("token_store")
    logger.warning({"event": "token_store_corrupt", "message": "...", "path": str(path)})

Nothing is printed until the host application calls configure_logging() (or
attaches its own handlers). Destinations set up by configure_logging():
- Console (stderr): human-readable "LEVEL: message"
- File (optional): JSONL with ISO 8601 timestamps
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_logging",
    "get_logger",
]

import logging
import sys
from pathlib import Path

from platform_auth.constants import APP_NAME
from platform_auth.utils.file_helpers import set_secure_permissions
from platform_auth.utils.logging.iso_formatter import ISO8601Formatter

_root_logger = logging.getLogger(APP_NAME)
_root_logger.addHandler(logging.NullHandler())


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


def get_logger(component: str) -> logging.Logger:
    """Get the logger for a component (e.g. "auth", "callback_server")."""
    return logging.getLogger(f"{APP_NAME}.{component}")


def configure_logging(level: int = logging.WARNING, log_file: Path | None = None) -> logging.Logger:
    """Attach console (and optionally JSONL file) handlers to the package logger.

    Safe to call more than once: previously installed handlers are replaced.

    Args:
        level: Minimum level for both handlers.
        log_file: Optional JSONL log destination. The parent directory is
            created with owner-only permissions.

    Returns:
        logging.Logger: The configured ``platform-auth`` logger.
    """
    for handler in list(_root_logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            handler.close()
            _root_logger.removeHandler(handler)

    _root_logger.setLevel(level)
    _root_logger.propagate = False

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(ConsoleFormatter())
    _root_logger.addHandler(stderr_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        set_secure_permissions(log_file.parent, is_directory=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(ISO8601Formatter())
        _root_logger.addHandler(file_handler)

    return _root_logger
