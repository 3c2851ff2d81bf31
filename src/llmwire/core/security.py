"""
Security utilities for llmwire.

This module provides the PKCE primitives and random identifiers used by the
OAuth credential manager.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import uuid
from typing import Optional, Tuple


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode('utf-8').rstrip('=')


def pkce_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a verifier."""
    return _b64url(hashlib.sha256(code_verifier.encode('utf-8')).digest())


def generate_pkce_codes() -> Tuple[str, str]:
    """
    Generate PKCE code verifier and challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    # 32 random bytes -> 43 character verifier
    code_verifier = _b64url(secrets.token_bytes(32))
    return code_verifier, pkce_challenge(code_verifier)


def verify_pkce_challenge(code_verifier: str, code_challenge: str) -> bool:
    """
    Verify PKCE code challenge against verifier.

    Args:
        code_verifier: The original code verifier
        code_challenge: The code challenge to verify

    Returns:
        True if challenge matches verifier
    """
    return secrets.compare_digest(code_challenge, pkce_challenge(code_verifier))


def generate_state() -> str:
    """
    Generate a secure random state parameter for OAuth.

    Returns:
        Random state string
    """
    return _b64url(secrets.token_bytes(16))


def generate_request_id() -> str:
    """Generate a request ID for log correlation."""
    return f"req_{uuid.uuid4().hex[:16]}"


def generate_call_id() -> str:
    """Generate a tool call ID for backends that do not supply one."""
    return f"call_{uuid.uuid4().hex}"


def mask_token(token: Optional[str], visible_chars: int = 4) -> str:
    """Mask a secret for display, keeping only a short prefix."""
    if not token:
        return ""
    if len(token) <= visible_chars * 2:
        return "*" * len(token)
    return token[:visible_chars] + "..." + "*" * 4
