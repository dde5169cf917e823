"""Shared utilities for platform-auth.

- helpers: form/URL building and secret masking for OAuth requests
- file_helpers: secure permissions and atomic writes
- logging: structured logger and formatters

Import directly from submodules:
    from platform_auth.utils.helpers import prepare_form
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
