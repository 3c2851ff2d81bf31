"""
Configuration management for llmwire.

This module handles all application configuration using Pydantic Settings
for environment variable management and validation.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OAuthConfig(BaseSettings):
    """OpenAI Codex OAuth configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_OAUTH_",
        case_sensitive=False,
        extra="forbid"
    )

    client_id: str = Field(
        default="app_EMoamEEZ73f0CkXaXp7hrann",
        description="OAuth client ID used for the Codex login flow"
    )
    redirect_uri: str = Field(
        default="http://localhost:1455/auth/callback",
        description="OAuth redirect URI (loopback URIs get a local listener)"
    )
    auth_url: str = Field(
        default="https://auth.openai.com/oauth/authorize",
        description="Authorization endpoint"
    )
    token_url: Optional[str] = Field(
        default=None,
        description="Token endpoint override; when set it is the only endpoint tried"
    )
    primary_token_url: str = Field(
        default="https://auth.openai.com/oauth/token",
        description="Primary token endpoint"
    )
    fallback_token_url: str = Field(
        default="https://auth0.openai.com/oauth/token",
        description="Token endpoint tried when the primary one fails"
    )
    scopes: str = Field(
        default="openid profile email offline_access",
        description="OAuth scopes, separated by spaces or commas"
    )
    originator: str = Field(
        default="pi",
        description="Originator tag sent with authorize and Responses requests"
    )

    # PKCE / token lifecycle
    pending_ttl_seconds: int = Field(
        default=15 * 60,
        description="Age after which an unfinished PKCE login is discarded",
        ge=1,
        le=86400
    )
    refresh_skew_seconds: int = Field(
        default=60,
        description="Refresh proactively when the token expires within this window",
        ge=0,
        le=3600
    )
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for token endpoint calls",
        gt=0
    )

    @field_validator("scopes")
    @classmethod
    def normalize_scopes(cls, v: str) -> str:
        """Accept comma separated scopes and emit them space separated."""
        return " ".join(v.replace(",", " ").split())

    def token_urls(self) -> List[str]:
        """Token endpoints to try, in order."""
        if self.token_url and self.token_url.strip():
            return [self.token_url.strip()]
        return [self.primary_token_url, self.fallback_token_url]


class CodexConfig(BaseSettings):
    """Codex Responses backend settings."""

    model_config = SettingsConfigDict(
        env_prefix="CODEX_",
        case_sensitive=False,
        extra="forbid"
    )

    base_url: str = Field(
        default="https://chatgpt.com/backend-api/codex",
        description="Responses API base URL"
    )
    model: str = Field(
        default="gpt-5.3-codex",
        description="Default model reported by the auth status endpoint"
    )
    timeout: float = Field(
        default=300.0,
        description="Request timeout in seconds",
        gt=0
    )
    default_instructions: str = Field(
        default="You are a helpful assistant.",
        description="Instructions sent when the request carries no system prompt"
    )


class GeminiConfig(BaseSettings):
    """Gemini generateContent backend settings."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        case_sensitive=False,
        extra="forbid"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key"
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Gemini API base URL"
    )
    model: str = Field(
        default="gemini-2.5-flash",
        description="Model substituted when the fallback chain reaches Gemini"
    )
    max_retries: int = Field(
        default=3,
        description="Retries on 429/503 before giving up",
        ge=0,
        le=10
    )
    retry_step_ms: int = Field(
        default=2000,
        description="Linear backoff step between retries in milliseconds",
        ge=0
    )
    retry_after_ms: int = Field(
        default=5000,
        description="Suggested retry delay reported once retries are exhausted",
        ge=0
    )
    timeout: float = Field(
        default=120.0,
        description="Request timeout in seconds",
        gt=0
    )


class LlmConfig(BaseSettings):
    """Driver chain settings."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
        extra="forbid"
    )

    providers: List[str] = Field(
        default=["openai-codex", "gemini"],
        description="Fallback chain order, primary first"
    )


class ServerConfig(BaseSettings):
    """Server configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
        extra="forbid"
    )

    host: str = Field(
        default="127.0.0.1",
        description="Server host address"
    )
    port: int = Field(
        default=4200,
        description="Server port",
        ge=1,
        le=65535
    )
    reload: bool = Field(
        default=False,
        description="Enable auto-reload in development"
    )

    # CORS settings
    cors_origins: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )
    cors_methods: List[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        description="Allowed CORS methods"
    )
    cors_headers: List[str] = Field(
        default=["*"],
        description="Allowed CORS headers"
    )


class LoggingConfig(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
        extra="forbid"
    )

    level: str = Field(
        default="INFO",
        description="Logging level"
    )
    format: str = Field(
        default="json",
        description="Log format (json or text)"
    )
    file_path: Optional[str] = Field(
        default=None,
        description="Log file path (optional)"
    )
    max_file_size: int = Field(
        default=10485760,  # 10MB
        description="Maximum log file size in bytes",
        ge=1048576,
        le=104857600
    )
    backup_count: int = Field(
        default=5,
        description="Number of backup log files",
        ge=1,
        le=20
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {"json", "text"}
        if v.lower() not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v.lower()


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application info
    app_name: str = Field(
        default="llmwire",
        description="Application name"
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version"
    )
    app_description: str = Field(
        default="Multi-provider LLM completion layer with Codex OAuth",
        description="Application description"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Home directory; credentials live under <home_dir>/auth
    home_dir: Path = Field(
        default=Path.home() / ".llmwire",
        description="Home directory for persisted state"
    )

    # Sub-configurations
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    codex: CodexConfig = Field(default_factory=CodexConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    llm: LlmConfig = Field(default_factory=LlmConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        valid_envs = {"development", "staging", "production", "testing"}
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()

    @property
    def auth_dir(self) -> Path:
        """Directory holding persisted OAuth credentials."""
        return self.home_dir / "auth"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
