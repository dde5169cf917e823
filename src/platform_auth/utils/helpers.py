"""Small helpers for building OAuth requests.

- Form bodies: snake_case keys, sorted, None values dropped
- URLs: query string appended with the right separator
- Secret masking for log output
"""

from __future__ import annotations

__all__ = [
    "SECRET_FORM_FIELDS",
    "create_url",
    "mask_form",
    "now_ms",
    "prepare_form",
    "to_snake_case",
]

import re
import time
from typing import Any, Mapping
from urllib.parse import urlencode

# Form fields never written to logs in clear text
SECRET_FORM_FIELDS: frozenset[str] = frozenset(
    {
        "client_assertion",
        "client_secret",
        "code",
        "code_verifier",
        "password",
        "refresh_token",
    }
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_snake_case(key: str) -> str:
    """Convert a camelCase key to snake_case. snake_case keys pass through."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def prepare_form(params: Mapping[str, Any]) -> dict[str, str]:
    """Build a form-encoded request body.

    Keys are converted to snake_case and sorted, None values are dropped.

    Args:
        params: Request parameters.

    Returns:
        Ordered dict ready to pass as ``data=`` to httpx.
    """
    form: dict[str, str] = {}
    for key in sorted(params, key=to_snake_case):
        value = params[key]
        if value is not None:
            form[to_snake_case(key)] = str(value)
    return form


def create_url(url: str, params: Mapping[str, Any] | None = None) -> str:
    """Append encoded query params to a URL.

    Uses ``&`` when the URL already carries a query string.
    """
    form = prepare_form(params or {})
    if not form:
        return url
    return f"{url}{'&' if '?' in url else '?'}{urlencode(form)}"


def mask_form(form: Mapping[str, str]) -> dict[str, str]:
    """Copy of a form body with secret values replaced by asterisks."""
    return {key: "********" if key in SECRET_FORM_FIELDS else value for key, value in form.items()}
