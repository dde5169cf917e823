"""Log formatting for JSONL output.

Provides ISO 8601 timestamp formatting for structured (dict) log messages.
"""

from __future__ import annotations

__all__ = ["ISO8601Formatter"]

import json
import logging
from datetime import datetime, timezone


class ISO8601Formatter(logging.Formatter):
    """Formatter writing one JSON object per record with a UTC ISO 8601 time.

    Format: {"time": "YYYY-MM-DDTHH:MM:SS.sssZ", "level": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        if isinstance(record.msg, dict):
            log_data = record.msg
        else:
            log_data = {"message": record.getMessage()}

        log_entry = {"time": timestamp, "level": record.levelname, "logger": record.name, **log_data}
        return json.dumps(log_entry, default=str)
