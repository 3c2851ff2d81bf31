"""
Authentication modules for llmwire.

This package contains the Codex OAuth credential lifecycle: PKCE login,
the loopback callback listener, token exchange and refresh, CLI import,
persistence and the runtime credential slot read by the Codex driver.
"""

from __future__ import annotations

from .importers import CodexCliImporter, CredentialImporter, import_first_available
from .jwt import (
    decode_jwt_payload,
    jwt_account_id,
    jwt_client_id,
    jwt_expiry,
    jwt_scope,
)
from .loopback import LoopbackListener, LoopbackTarget, parse_loopback_target
from .manager import CodexOAuthManager
from .oauth import OAuthClient, credential_from_token, merge_token_response
from .pending import PendingLoginStore
from .runtime import CODEX_ACCESS_TOKEN_ENV, CODEX_ACCOUNT_ID_ENV, RuntimeCredentials
from .storage import CredentialStore

__all__ = [
    # JWT
    "decode_jwt_payload",
    "jwt_account_id",
    "jwt_client_id",
    "jwt_expiry",
    "jwt_scope",
    # OAuth
    "OAuthClient",
    "credential_from_token",
    "merge_token_response",
    # State
    "PendingLoginStore",
    "CredentialStore",
    "RuntimeCredentials",
    "CODEX_ACCESS_TOKEN_ENV",
    "CODEX_ACCOUNT_ID_ENV",
    # Import
    "CredentialImporter",
    "CodexCliImporter",
    "import_first_available",
    # Listener
    "LoopbackListener",
    "LoopbackTarget",
    "parse_loopback_target",
    # Manager
    "CodexOAuthManager",
]
