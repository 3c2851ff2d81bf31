"""
JWT claim extraction.

Payloads are decoded but never verified. The tokens only travel over TLS
between this process and the issuer, so they are read for routing hints
(account, client, scope, expiry) and not trusted for anything else.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ACCOUNT_ID_CLAIM = "https://api.openai.com/auth.chatgpt_account_id"
AUTH_NAMESPACE_CLAIM = "https://api.openai.com/auth"


def decode_jwt_payload(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode the middle segment of a JWT; ``None`` if it is not one."""
    if not token:
        return None
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return None

    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload.encode("ascii"))
        claims = json.loads(decoded.decode("utf-8"))
    except (ValueError, UnicodeError):
        return None
    return claims if isinstance(claims, dict) else None


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def jwt_client_id(token: Optional[str]) -> Optional[str]:
    """The ``aud`` claim, or the first non-empty entry of an ``aud`` list."""
    claims = decode_jwt_payload(token)
    if claims is None:
        return None
    aud = claims.get("aud")
    if isinstance(aud, list):
        for entry in aud:
            if _clean(entry):
                return _clean(entry)
        return None
    return _clean(aud)


def jwt_account_id(token: Optional[str]) -> Optional[str]:
    """ChatGPT account id from the flat, plain or namespaced claim."""
    claims = decode_jwt_payload(token)
    if claims is None:
        return None
    namespaced = claims.get(AUTH_NAMESPACE_CLAIM)
    return (
        _clean(claims.get(ACCOUNT_ID_CLAIM))
        or _clean(claims.get("chatgpt_account_id"))
        or (_clean(namespaced.get("chatgpt_account_id")) if isinstance(namespaced, dict) else None)
    )


def jwt_scope(token: Optional[str]) -> Optional[str]:
    """Granted scopes from ``scope`` or the ``scp`` list."""
    claims = decode_jwt_payload(token)
    if claims is None:
        return None
    scope = _clean(claims.get("scope"))
    if scope:
        return scope
    scp = claims.get("scp")
    if isinstance(scp, list):
        parts = [s.strip() for s in scp if isinstance(s, str) and s.strip()]
        if parts:
            return " ".join(parts)
    return None


def jwt_expiry(token: Optional[str]) -> Optional[datetime]:
    """Expiry from the ``exp`` claim."""
    claims = decode_jwt_payload(token)
    if claims is None:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
