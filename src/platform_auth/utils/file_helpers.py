"""File helpers for token store persistence."""

from __future__ import annotations

__all__ = [
    "atomic_write_text",
    "set_secure_permissions",
]

import os
import sys
import tempfile
from pathlib import Path


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Set owner-only permissions on a file (0o600) or directory (0o700).

    Does nothing on Windows. Silently ignores permission errors
    (some systems don't allow permission changes).
    """
    if sys.platform == "win32":
        return

    try:
        path.chmod(0o700 if is_directory else 0o600)
    except OSError:
        pass  # Permission changes might fail on some systems


def atomic_write_text(path: Path, content: str) -> None:
    """Write a file atomically with owner-only permissions.

    The content goes to a temp file in the same directory which is then
    renamed over the target, so readers never observe a partial file.
    The parent directory is created (0o700) if needed.

    Raises:
        OSError: If the directory cannot be created or the write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    set_secure_permissions(path.parent, is_directory=True)

    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(temp_path, 0o600)
        os.replace(temp_path, path)

    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
