"""
Driver construction from configuration.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..core import ConfigurationError, Settings, get_logger, get_settings
from .base import LlmDriver
from .codex import CodexDriver
from .fallback import FallbackDriver
from .gemini import GeminiDriver

CODEX_PROVIDERS = ("openai-codex", "codex")
GEMINI_PROVIDERS = ("gemini", "google")

logger = get_logger(__name__)


class DriverConfig(BaseModel):
    """Settings for one driver. The API key is masked in ``repr``."""

    model_config = ConfigDict(extra="forbid")

    provider: str = Field(..., description="Provider name", min_length=1)
    api_key: Optional[SecretStr] = Field(None, description="API key or access token")
    base_url: Optional[str] = Field(None, description="Base URL override")
    model: Optional[str] = Field(None, description="Model override for this driver")

    def secret(self) -> Optional[str]:
        return self.api_key.get_secret_value() if self.api_key else None


def create_driver(
    config: DriverConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> LlmDriver:
    """Build the adapter for ``config.provider``."""
    provider = config.provider.strip().lower()
    if provider in CODEX_PROVIDERS:
        return CodexDriver(
            access_token=config.secret(),
            base_url=config.base_url,
            http_client=http_client,
        )
    if provider in GEMINI_PROVIDERS:
        return GeminiDriver(
            api_key=config.secret(),
            base_url=config.base_url,
            model=config.model,
            http_client=http_client,
        )
    raise ConfigurationError(
        f"Unknown LLM provider: {config.provider}",
        details={"supported": list(CODEX_PROVIDERS + GEMINI_PROVIDERS)},
    )


def create_fallback_driver(
    configs: Sequence[DriverConfig],
    http_client: Optional[httpx.AsyncClient] = None,
) -> FallbackDriver:
    return FallbackDriver([create_driver(c, http_client) for c in configs])


def driver_configs_from_settings(settings: Optional[Settings] = None) -> List[DriverConfig]:
    """Driver chain described by ``LLM_PROVIDERS`` and the per-provider settings."""
    settings = settings or get_settings()
    configs = []
    for name in settings.llm.providers:
        provider = name.strip().lower()
        if provider in CODEX_PROVIDERS:
            configs.append(DriverConfig(provider=provider, base_url=settings.codex.base_url))
        elif provider in GEMINI_PROVIDERS:
            configs.append(
                DriverConfig(
                    provider=provider,
                    api_key=settings.gemini.api_key,
                    base_url=settings.gemini.base_url,
                    model=settings.gemini.model,
                )
            )
        else:
            raise ConfigurationError(f"Unknown LLM provider in chain: {name}")
    logger.info("Driver chain configured", chain=[repr(c) for c in configs])
    return configs
