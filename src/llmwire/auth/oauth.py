"""
OAuth client for the OpenAI Codex login flow.

This module builds the PKCE authorization URL and talks to the token
endpoint for code exchange and refresh, trying each configured token host
in turn.
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Dict, List, Optional
from urllib.parse import urlencode, urlparse, urlunparse

import httpx
from pydantic import ValidationError

from ..core import OAuthConfig, TokenEndpointError, get_logger, get_settings, log_api_call
from ..models import CredentialSource, StoredCodexAuth, TokenResponse
from ..models.auth import utc_now
from ..utils import client_session, error_body
from .jwt import jwt_account_id, jwt_client_id, jwt_scope


def normalize_authorize_url(auth_url: str) -> str:
    """Map the bare ``/authorize`` path on auth.openai.com to ``/oauth/authorize``."""
    parsed = urlparse(auth_url)
    if parsed.hostname == "auth.openai.com" and parsed.path.rstrip("/") == "/authorize":
        return urlunparse(parsed._replace(path="/oauth/authorize"))
    return auth_url


def normalize_token_url(token_url: str) -> str:
    """Map the bare ``/token`` path on auth.openai.com to ``/oauth/token``."""
    parsed = urlparse(token_url)
    if parsed.hostname == "auth.openai.com" and parsed.path == "/token":
        return urlunparse(parsed._replace(path="/oauth/token"))
    return token_url


def merge_token_response(
    auth: StoredCodexAuth,
    token: TokenResponse,
    source: CredentialSource = "refresh_token",
) -> StoredCodexAuth:
    """
    Fold a token endpoint response into an existing credential.

    The access token always replaces the stored one. Refresh and ID tokens,
    token type and scope are only replaced when the response carries them,
    so a backend that does not re-issue a refresh token never erases it.
    """
    merged = auth.model_copy()
    now = utc_now()

    merged.access_token = token.access_token
    merged.chatgpt_account_id = jwt_account_id(token.access_token) or auth.chatgpt_account_id
    if token.refresh_token:
        merged.refresh_token = token.refresh_token
    if token.id_token:
        merged.id_token = token.id_token
    if token.token_type.strip():
        merged.token_type = token.token_type
    if token.scope.strip():
        merged.scope = token.scope
    if not merged.scope:
        merged.scope = jwt_scope(token.access_token) or ""

    merged.issued_at = now
    merged.expires_at = now + timedelta(seconds=token.expires_in) if token.expires_in else None
    merged.source = source
    merged.client_id = jwt_client_id(merged.id_token) or auth.client_id
    return merged


def credential_from_token(token: TokenResponse, client_id: str, source: CredentialSource) -> StoredCodexAuth:
    """A fresh credential built from a code exchange response."""
    now = utc_now()
    return StoredCodexAuth(
        chatgpt_account_id=jwt_account_id(token.access_token) or jwt_account_id(token.id_token),
        access_token=token.access_token,
        refresh_token=token.refresh_token,
        id_token=token.id_token,
        token_type=token.token_type or "Bearer",
        scope=token.scope or jwt_scope(token.access_token) or "",
        client_id=jwt_client_id(token.id_token) or client_id,
        issued_at=now,
        expires_at=now + timedelta(seconds=token.expires_in) if token.expires_in else None,
        source=source,
    )


class OAuthClient:
    """OAuth client for OpenAI Codex authentication."""

    def __init__(
        self,
        config: Optional[OAuthConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_settings().oauth
        self.logger = get_logger(__name__)
        self.http_client = http_client

    def build_authorization_url(
        self,
        client_id: str,
        redirect_uri: str,
        code_challenge: str,
        state: str,
    ) -> str:
        """
        Build the authorization URL for a PKCE login.

        Args:
            client_id: OAuth client ID
            redirect_uri: Where the provider sends the browser back to
            code_challenge: S256 challenge of the PKCE verifier
            state: Opaque state token identifying the login

        Returns:
            Fully encoded authorization URL
        """
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": self.config.scopes,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "id_token_add_organizations": "true",
            "codex_cli_simplified_flow": "true",
            "originator": self.config.originator,
            "state": state,
        }
        return f"{normalize_authorize_url(self.config.auth_url)}?{urlencode(params)}"

    async def exchange_code(
        self,
        code: str,
        code_verifier: str,
        redirect_uri: str,
        client_id: str,
    ) -> TokenResponse:
        """Exchange an authorization code for tokens."""
        data = {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": redirect_uri,
        }
        return await self._post_token(data, "Token exchange failed on all token endpoints")

    async def refresh(self, refresh_token: str, client_id: str) -> TokenResponse:
        """Redeem a refresh token for a new access token."""
        data = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "refresh_token": refresh_token,
        }
        return await self._post_token(data, "Refresh failed on all token endpoints")

    async def _post_token(self, data: Dict[str, str], failure_prefix: str) -> TokenResponse:
        errors: List[str] = []
        async with client_session(self.http_client, self.config.http_timeout) as client:
            for url in map(normalize_token_url, self.config.token_urls()):
                start_time = time.time()
                try:
                    response = await client.post(
                        url,
                        data=data,
                        headers={"Accept": "application/json"},
                    )
                except httpx.HTTPError as e:
                    errors.append(f"{url}: request failed: {e}")
                    self.logger.warning("Token endpoint unreachable", url=url, error=str(e))
                    continue

                log_api_call(
                    self.logger,
                    "oauth",
                    url,
                    "POST",
                    response.status_code,
                    (time.time() - start_time) * 1000,
                )
                if not response.is_success:
                    errors.append(f"{url}: {response.status_code} {error_body(response)}")
                    continue

                try:
                    return TokenResponse.model_validate(response.json())
                except (ValueError, ValidationError) as e:
                    errors.append(f"{url}: parse failed: {e}")

        raise TokenEndpointError(f"{failure_prefix}: {' | '.join(errors)}")
