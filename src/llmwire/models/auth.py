"""
Authentication related Pydantic models for llmwire.

This module contains the persisted Codex OAuth credential record, the
pending PKCE login entry, the token endpoint payload and the request and
response bodies of the OAuth HTTP endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CredentialSource = Literal[
    "pkce_callback",
    "pkce_manual_code",
    "codex_cli_import",
    "refresh_token",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StoredCodexAuth(BaseModel):
    """
    Persisted Codex OAuth credential.

    The on-disk record is the only long-lived copy; instances in memory
    live for a single operation.
    """

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True, extra="ignore")

    chatgpt_account_id: Optional[str] = Field(None, description="ChatGPT account (org) identifier")
    access_token: str = Field("", description="Bearer access token")
    refresh_token: Optional[str] = Field(None, description="Refresh token")
    id_token: Optional[str] = Field(None, description="OpenID Connect ID token")
    token_type: str = Field("Bearer", description="Token type")
    scope: str = Field("", description="Granted scopes, space separated")
    client_id: Optional[str] = Field(None, description="OAuth client the tokens belong to")
    issued_at: datetime = Field(default_factory=utc_now, description="When the token was issued")
    expires_at: Optional[datetime] = Field(None, description="When the access token expires")
    source: CredentialSource = Field(..., description="How the credential was obtained")

    def expires_within(self, seconds: float, now: Optional[datetime] = None) -> bool:
        """True if the token has a known expiry inside the given window."""
        if self.expires_at is None:
            return False
        now = now or utc_now()
        return (self.expires_at - now).total_seconds() <= seconds


class PendingPkce(BaseModel):
    """An unfinished PKCE login, keyed by its state token."""

    model_config = ConfigDict(extra="forbid")

    verifier: str = Field(..., description="PKCE code verifier", min_length=43, max_length=128)
    redirect_uri: str = Field(..., description="Redirect URI sent to the authorize endpoint")
    client_id: str = Field(..., description="Client ID sent to the authorize endpoint")
    created_at: datetime = Field(default_factory=utc_now)


class TokenResponse(BaseModel):
    """Token endpoint response body."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: str = ""
    scope: str = ""
    expires_in: Optional[int] = None


class StartLoginRequest(BaseModel):
    """Optional overrides for a login start."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    client_id: Optional[str] = Field(None, description="Override the OAuth client ID")
    redirect_uri: Optional[str] = Field(None, description="Override the redirect URI")


class StartLoginResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    auth_url: str = Field(..., description="URL to open in a browser")
    state: str = Field(..., description="State token identifying this login")
    redirect_uri: str
    client_id: str
    instructions: str


class PasteCodeRequest(BaseModel):
    """Authorization code copied by hand from the redirect URL."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    code: str = Field(..., min_length=1, description="Authorization code")
    state: Optional[str] = Field(None, description="State token; latest pending login if omitted")


class ConnectedResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["connected"] = "connected"
    source: CredentialSource


class LogoutResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["logged_out"] = "logged_out"


class CodexAuthStatus(BaseModel):
    """Connection status reported by the status endpoint."""

    model_config = ConfigDict(extra="forbid")

    connected: bool
    provider: Literal["openai-codex"] = "openai-codex"
    model: str
    source: Optional[CredentialSource] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    has_refresh_token: bool = False
    account_id: Optional[str] = None
    reason: Optional[str] = None
