"""httpx client helpers."""

from __future__ import annotations

__all__ = ["borrow_client"]

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx


@asynccontextmanager
async def borrow_client(client: httpx.AsyncClient | None, timeout: float) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the shared client, or a short-lived one closed on exit.

    Args:
        client: Caller-owned client, left open.
        timeout: Timeout for the short-lived client.
    """
    if client is not None:
        yield client
    else:
        async with httpx.AsyncClient(timeout=timeout) as owned:
            yield owned
