"""
Utility modules for llmwire.
"""

from __future__ import annotations

from .http_client import client_session, create_async_client, error_body

__all__ = [
    "client_session",
    "create_async_client",
    "error_body",
]
