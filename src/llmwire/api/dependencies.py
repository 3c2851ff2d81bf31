"""
FastAPI dependencies resolving the objects owned by the application.
"""

from __future__ import annotations

from fastapi import Request

from ..auth import CodexOAuthManager
from ..core import ConfigurationError
from ..drivers import LlmDriver


def get_oauth_manager(request: Request) -> CodexOAuthManager:
    manager = getattr(request.app.state, "oauth_manager", None)
    if manager is None:
        raise ConfigurationError("OAuth manager is not initialized")
    return manager


def get_driver(request: Request) -> LlmDriver:
    driver = getattr(request.app.state, "driver", None)
    if driver is None:
        raise ConfigurationError("No LLM driver chain is configured")
    return driver
