"""
Import of credentials written by other tools.
"""

from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from ..core import get_logger
from ..models import StoredCodexAuth
from ..models.auth import utc_now
from .jwt import jwt_account_id, jwt_client_id, jwt_expiry, jwt_scope

ACCESS_TOKEN_POINTERS = (
    "/access_token",
    "/accessToken",
    "/token",
    "/token/access_token",
    "/tokens/access_token",
    "/credentials/access_token",
)
REFRESH_TOKEN_POINTERS = (
    "/refresh_token",
    "/refreshToken",
    "/token/refresh_token",
    "/tokens/refresh_token",
    "/credentials/refresh_token",
)
ID_TOKEN_POINTERS = ("/id_token", "/idToken", "/token/id_token", "/tokens/id_token")
ACCOUNT_ID_POINTERS = (
    "/account_id",
    "/accountId",
    "/chatgpt_account_id",
    "/token/account_id",
    "/tokens/account_id",
    "/credentials/account_id",
)
SCOPE_POINTERS = ("/scope", "/token/scope", "/tokens/scope")
EXPIRES_AT_POINTERS = ("/expires_at", "/expiresAt", "/token/expires_at", "/tokens/expires_at")
EXPIRES_IN_POINTERS = ("/expires_in", "/token/expires_in")

# Epoch values above this are milliseconds.
_MILLIS_THRESHOLD = 2_000_000_000_000


def resolve_pointer(document: Any, pointer: str) -> Any:
    """Resolve a JSON pointer (RFC 6901) against ``document``."""
    node = document
    for raw in pointer.lstrip("/").split("/"):
        key = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict):
            if key not in node:
                return None
            node = node[key]
        elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
            node = node[int(key)]
        else:
            return None
    return node


def first_string(document: Any, pointers: Iterable[str]) -> Optional[str]:
    for pointer in pointers:
        value = resolve_pointer(document, pointer)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def extract_expiry(document: Any, access_token: Optional[str], now: datetime) -> Optional[datetime]:
    """Absolute expiry, then relative expiry, then the token's ``exp`` claim."""
    for pointer in EXPIRES_AT_POINTERS:
        parsed = _parse_timestamp(resolve_pointer(document, pointer))
        if parsed is not None:
            return parsed
    for pointer in EXPIRES_IN_POINTERS:
        value = resolve_pointer(document, pointer)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return now + timedelta(seconds=value)
    return jwt_expiry(access_token)


class CredentialImporter(ABC):
    """A source of credentials created outside this process."""

    name = "unknown"

    @abstractmethod
    def load(self) -> Optional[StoredCodexAuth]:
        """Return a credential, or ``None`` if the source has none."""


class CodexCliImporter(CredentialImporter):
    """Reads the Codex CLI's ``auth.json``."""

    name = "codex_cli"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else self.default_path()
        self.logger = get_logger(__name__)

    @staticmethod
    def default_path() -> Path:
        codex_home = os.environ.get("CODEX_HOME", "").strip()
        base = Path(codex_home) if codex_home else Path.home() / ".codex"
        return base / "auth.json"

    def load(self) -> Optional[StoredCodexAuth]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            self.logger.warning("Codex CLI auth file unreadable", path=str(self.path), error=str(e))
            return None
        return self.parse(document)

    @staticmethod
    def parse(document: Any, now: Optional[datetime] = None) -> Optional[StoredCodexAuth]:
        """Build a credential from an ``auth.json`` document."""
        access_token = first_string(document, ACCESS_TOKEN_POINTERS)
        if not access_token:
            return None

        now = now or utc_now()
        id_token = first_string(document, ID_TOKEN_POINTERS)
        return StoredCodexAuth(
            chatgpt_account_id=(
                first_string(document, ACCOUNT_ID_POINTERS) or jwt_account_id(access_token)
            ),
            access_token=access_token,
            refresh_token=first_string(document, REFRESH_TOKEN_POINTERS),
            id_token=id_token,
            scope=first_string(document, SCOPE_POINTERS) or jwt_scope(access_token) or "",
            client_id=jwt_client_id(id_token),
            issued_at=now,
            expires_at=extract_expiry(document, access_token, now),
            source="codex_cli_import",
        )


def import_first_available(importers: Sequence[CredentialImporter]) -> Optional[StoredCodexAuth]:
    """First credential produced by ``importers``, in order."""
    for importer in importers:
        auth = importer.load()
        if auth is not None:
            return auth
    return None
