"""
Pending PKCE login store.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from ..core import get_logger
from ..models import PendingPkce
from ..models.auth import utc_now


class PendingLoginStore:
    """
    Unfinished PKCE logins keyed by state token.

    ``take`` removes and returns an entry under a lock, so when a browser
    callback and a pasted code race for the same state exactly one wins.
    Entries older than ``ttl_seconds`` are swept by ``cleanup``, which runs
    on every insert and lookup.
    """

    def __init__(self, ttl_seconds: int = 15 * 60):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.logger = get_logger(__name__)
        self._entries: Dict[str, PendingPkce] = {}
        self._lock = threading.Lock()

    def put(self, state: str, pending: PendingPkce) -> None:
        self.cleanup()
        with self._lock:
            self._entries[state] = pending

    def take(self, state: str) -> Optional[PendingPkce]:
        """Claim the entry for ``state``; ``None`` if unknown or expired."""
        self.cleanup()
        with self._lock:
            return self._entries.pop(state, None)

    def take_latest(self) -> Optional[Tuple[str, PendingPkce]]:
        """Claim the most recently created entry."""
        self.cleanup()
        with self._lock:
            if not self._entries:
                return None
            state = max(self._entries, key=lambda s: self._entries[s].created_at)
            return state, self._entries.pop(state)

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Drop expired entries and return how many were removed."""
        cutoff = (now or utc_now()) - self.ttl
        with self._lock:
            expired = [s for s, p in self._entries.items() if p.created_at < cutoff]
            for state in expired:
                del self._entries[state]
        if expired:
            self.logger.info("Expired PKCE logins removed", count=len(expired))
        return len(expired)

    def __contains__(self, state: object) -> bool:
        with self._lock:
            return state in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
