"""
LLM drivers for llmwire.

Every driver implements ``LlmDriver``; ``FallbackDriver`` composes several
of them behind the same interface.
"""

from __future__ import annotations

from .base import LlmDriver
from .codex import CodexDriver, SseFrameParser
from .factory import (
    DriverConfig,
    create_driver,
    create_fallback_driver,
    driver_configs_from_settings,
)
from .fallback import FallbackDriver
from .gemini import GeminiDriver
from .schema import enforce_strict_object_schema, normalize_schema_for_provider

__all__ = [
    "LlmDriver",
    "CodexDriver",
    "GeminiDriver",
    "FallbackDriver",
    "DriverConfig",
    "SseFrameParser",
    "create_driver",
    "create_fallback_driver",
    "driver_configs_from_settings",
    "enforce_strict_object_schema",
    "normalize_schema_for_provider",
]
