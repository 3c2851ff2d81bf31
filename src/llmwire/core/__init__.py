"""
Core modules for llmwire.

This package contains the core infrastructure components including
configuration, exceptions, logging, and security utilities.
"""

from __future__ import annotations

from .config import (
    CodexConfig,
    GeminiConfig,
    LlmConfig,
    LoggingConfig,
    OAuthConfig,
    ServerConfig,
    Settings,
    get_settings,
    reload_settings,
)
from .exceptions import (
    LlmwireError,
    ConfigurationError,
    LlmError,
    HttpError,
    ApiError,
    RateLimitedError,
    OverloadedError,
    ParseError,
    MissingApiKeyError,
    OAuthError,
    OAuthCallbackError,
    InvalidStateError,
    TokenEndpointError,
    MissingOrgContextError,
    CredentialStorageError,
    CredentialImportError,
)
from .logging import (
    get_logger,
    setup_logging,
    log_request,
    log_auth_event,
    log_api_call,
    log_error,
)
from .security import (
    generate_pkce_codes,
    pkce_challenge,
    verify_pkce_challenge,
    generate_state,
    generate_request_id,
    generate_call_id,
    mask_token,
)

__all__ = [
    # Config
    "CodexConfig",
    "GeminiConfig",
    "LlmConfig",
    "LoggingConfig",
    "OAuthConfig",
    "ServerConfig",
    "Settings",
    "get_settings",
    "reload_settings",
    # Exceptions
    "LlmwireError",
    "ConfigurationError",
    "LlmError",
    "HttpError",
    "ApiError",
    "RateLimitedError",
    "OverloadedError",
    "ParseError",
    "MissingApiKeyError",
    "OAuthError",
    "OAuthCallbackError",
    "InvalidStateError",
    "TokenEndpointError",
    "MissingOrgContextError",
    "CredentialStorageError",
    "CredentialImportError",
    # Logging
    "get_logger",
    "setup_logging",
    "log_request",
    "log_auth_event",
    "log_api_call",
    "log_error",
    # Security
    "generate_pkce_codes",
    "pkce_challenge",
    "verify_pkce_challenge",
    "generate_state",
    "generate_request_id",
    "generate_call_id",
    "mask_token",
]
