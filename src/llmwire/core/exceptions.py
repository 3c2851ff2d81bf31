"""
Custom exceptions for llmwire.

This module defines the driver error taxonomy shared by every provider
adapter and the OAuth domain errors raised by the credential manager.
All errors serialize to the same ``{"error": {...}}`` shape.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LlmwireError(Exception):
    """Base exception for all llmwire errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "llmwire_error",
        error_code: Optional[str] = None,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        error_dict: Dict[str, Any] = {
            "message": self.message,
            "type": self.error_type,
        }

        if self.error_code:
            error_dict["code"] = self.error_code

        if self.details:
            error_dict.update(self.details)

        return {"error": error_dict}


class ConfigurationError(LlmwireError):
    """Configuration errors."""

    def __init__(
        self,
        message: str = "Configuration error",
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message=message,
            error_type="configuration_error",
            status_code=500,
            details=details
        )


# Driver errors


class LlmError(LlmwireError):
    """
    Base class of the closed driver error taxonomy.

    Only ``RateLimitedError`` and ``OverloadedError`` are retryable; a
    fallback chain must surface those to the caller instead of moving on
    to the next driver.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        error_type: str = "llm_error",
        error_code: Optional[str] = None,
        status_code: int = 502,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message=message,
            error_type=error_type,
            error_code=error_code,
            status_code=status_code,
            details=details
        )


class HttpError(LlmError):
    """Transport level failure talking to a backend."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message=f"HTTP error: {reason}",
            error_type="http_error",
            error_code="transport_failure"
        )
        self.reason = reason


class ApiError(LlmError):
    """Non-2xx backend response that is not otherwise classified."""

    def __init__(self, status: int, api_message: str) -> None:
        super().__init__(
            message=f"API error ({status}): {api_message}",
            error_type="api_error",
            error_code="upstream_error",
            status_code=status if 400 <= status <= 599 else 502,
            details={"upstream_status": status}
        )
        self.status = status
        self.api_message = api_message


class RateLimitedError(LlmError):
    """Backend rate limit; retry after the suggested delay."""

    retryable = True

    def __init__(self, retry_after_ms: int) -> None:
        super().__init__(
            message=f"Rate limited, retry after {retry_after_ms}ms",
            error_type="rate_limit_exceeded",
            error_code="rate_limited",
            status_code=429,
            details={"retry_after_ms": retry_after_ms}
        )
        self.retry_after_ms = retry_after_ms


class OverloadedError(LlmError):
    """Backend overloaded; retry after the suggested delay."""

    retryable = True

    def __init__(self, retry_after_ms: int) -> None:
        super().__init__(
            message=f"Model overloaded, retry after {retry_after_ms}ms",
            error_type="overloaded",
            error_code="overloaded",
            status_code=503,
            details={"retry_after_ms": retry_after_ms}
        )
        self.retry_after_ms = retry_after_ms


class ParseError(LlmError):
    """Backend response did not have the expected shape."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message=f"Parse error: {reason}",
            error_type="parse_error",
            error_code="invalid_response"
        )
        self.reason = reason


class MissingApiKeyError(LlmError):
    """No credential available for the backend."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message=f"Missing API key: {reason}",
            error_type="authentication_error",
            error_code="missing_api_key",
            status_code=401
        )
        self.reason = reason


# OAuth errors


class OAuthError(LlmwireError):
    """OAuth credential lifecycle errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(
            message=message,
            error_type="oauth_error",
            error_code=error_code,
            status_code=status_code,
            details=details
        )


class OAuthCallbackError(OAuthError):
    """The provider redirect carried an error or was incomplete."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="invalid_callback")


class InvalidStateError(OAuthError):
    """No pending PKCE login matches the supplied state."""

    def __init__(self, message: str = "Unknown or expired state") -> None:
        super().__init__(message, error_code="invalid_state")


class TokenEndpointError(OAuthError):
    """Every token endpoint failed; the message aggregates each failure."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="token_endpoint_failed", status_code=502)


class MissingOrgContextError(OAuthError):
    """The credential cannot be scoped to a ChatGPT account."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="missing_org_context", status_code=401)


class CredentialStorageError(OAuthError):
    """Reading or writing the persisted credential failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="storage_failed", status_code=500)


class CredentialImportError(OAuthError):
    """No external credential could be imported."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="import_failed", status_code=404)
