'''
Unit tests for the pending PKCE login store.
'''

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from llmwire.auth import PendingLoginStore
from llmwire.models import PendingPkce

VERIFIER = 'v' * 43


def _pending(created_at: Optional[datetime] = None) -> PendingPkce:
    data = {'verifier': VERIFIER, 'redirect_uri': 'http://localhost:1455/auth/callback', 'client_id': 'app'}
    if created_at is not None:
        data['created_at'] = created_at
    return PendingPkce(**data)


class TestPendingLoginStore:
    '''
    Test put, take and expiry semantics.
    '''

    def test_take_is_single_use(self) -> None:
        store = PendingLoginStore()
        store.put('state-1', _pending())

        assert 'state-1' in store
        assert store.take('state-1') is not None
        assert 'state-1' not in store
        assert store.take('state-1') is None

    def test_take_latest_picks_newest(self) -> None:
        store = PendingLoginStore()
        now = datetime.now(timezone.utc)
        store.put('old', _pending(now - timedelta(seconds=30)))
        store.put('new', _pending(now))

        state, _ = store.take_latest()

        assert state == 'new'
        assert len(store) == 1

    def test_take_latest_empty(self) -> None:
        assert PendingLoginStore().take_latest() is None

    def test_cleanup_removes_expired(self) -> None:
        store = PendingLoginStore(ttl_seconds=60)
        now = datetime.now(timezone.utc)
        store.put('fresh', _pending(now))
        store.put('stale', _pending(now - timedelta(seconds=120)))

        # put() sweeps before inserting, so the stale entry waits for this pass.
        removed = store.cleanup(now)

        assert removed == 1
        assert 'stale' not in store
        assert 'fresh' in store

    def test_expired_entry_gone_without_explicit_removal(self) -> None:
        store = PendingLoginStore(ttl_seconds=60)
        store.put('stale', _pending(datetime.now(timezone.utc) - timedelta(seconds=61)))

        assert store.take('stale') is None

    def test_concurrent_take_has_one_winner(self) -> None:
        store = PendingLoginStore()
        store.put('race', _pending())
        results = []
        barrier = threading.Barrier(8)

        def claim() -> None:
            barrier.wait()
            results.append(store.take('race'))

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r is not None) == 1
