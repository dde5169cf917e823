"""Logging utilities.

This package provides logging infrastructure for platform-auth:
- iso_formatter: ISO 8601 timestamp formatting for JSONL logs
- logger: Component loggers, console formatter and handler setup

Import directly from submodules to avoid circular imports:
    from platform_auth.utils.logging.logger import get_logger
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
