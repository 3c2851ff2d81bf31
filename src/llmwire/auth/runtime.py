"""
Process-wide runtime credentials.

The active Codex token and account id live in environment variables, which
``CodexDriver`` re-reads on every call.
"""

from __future__ import annotations

import os
from typing import Optional, Tuple

from ..core import get_logger
from ..models import StoredCodexAuth

CODEX_ACCESS_TOKEN_ENV = "OPENAI_CODEX_ACCESS_TOKEN"
CODEX_ACCOUNT_ID_ENV = "OPENAI_CODEX_ACCOUNT_ID"

MISSING_ORG_CONTEXT_MESSAGE = (
    "OAuth token is missing organization context (chatgpt_account_id). "
    "Reconnect through the Codex OAuth login or import ~/.codex/auth.json."
)


class RuntimeCredentials:
    """Writes and clears the credentials adapters pick up at call time."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)

    def apply(self, auth: StoredCodexAuth) -> None:
        account_id = auth.chatgpt_account_id
        os.environ[CODEX_ACCESS_TOKEN_ENV] = auth.access_token
        if account_id:
            os.environ[CODEX_ACCOUNT_ID_ENV] = account_id
        else:
            os.environ.pop(CODEX_ACCOUNT_ID_ENV, None)
        self.logger.debug("Runtime Codex credentials applied", has_account_id=bool(account_id))

    def clear(self) -> None:
        os.environ.pop(CODEX_ACCESS_TOKEN_ENV, None)
        os.environ.pop(CODEX_ACCOUNT_ID_ENV, None)
        self.logger.debug("Runtime Codex credentials cleared")

    def current(self) -> Tuple[Optional[str], Optional[str]]:
        return (
            os.environ.get(CODEX_ACCESS_TOKEN_ENV) or None,
            os.environ.get(CODEX_ACCOUNT_ID_ENV) or None,
        )
