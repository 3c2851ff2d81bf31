"""
llmwire - Multi-provider LLM completion layer.

This package provides one driver contract over the ChatGPT Codex Responses
backend and the Gemini generateContent API, a fallback chain across
drivers, and the OAuth credential lifecycle the Codex backend needs.
"""

from __future__ import annotations

__version__ = "0.1.0"
__description__ = "Multi-provider LLM completion layer with Codex OAuth"

# Core exports
from .core import get_settings, get_logger
from .drivers import (
    CodexDriver,
    DriverConfig,
    FallbackDriver,
    GeminiDriver,
    LlmDriver,
    create_driver,
    create_fallback_driver,
)
from .main import create_app

__all__ = [
    "__version__",
    "__description__",
    "get_settings",
    "get_logger",
    "LlmDriver",
    "CodexDriver",
    "GeminiDriver",
    "FallbackDriver",
    "DriverConfig",
    "create_driver",
    "create_fallback_driver",
    "create_app",
]
