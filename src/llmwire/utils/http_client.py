"""
HTTP client utilities for llmwire.

Drivers and the OAuth client accept an optional shared ``httpx.AsyncClient``;
when none is given a short-lived client is opened per call.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import httpx

from ..core import get_settings


def create_async_client(
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` with the application's defaults."""
    settings = get_settings()
    default_headers = {
        "User-Agent": f"{settings.app_name}/{settings.app_version}",
    }
    if headers:
        default_headers.update(headers)

    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers=default_headers,
        follow_redirects=True,
    )


@asynccontextmanager
async def client_session(
    client: Optional[httpx.AsyncClient],
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a fresh one that is closed afterwards."""
    if client is not None:
        yield client
        return

    async with create_async_client(timeout) as owned:
        yield owned


def error_body(response: httpx.Response) -> str:
    """Best-effort text of an error response body."""
    try:
        return response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""
