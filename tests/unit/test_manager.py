'''
Unit tests for the Codex OAuth credential manager.
'''

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from llmwire.auth import (
    CodexOAuthManager,
    CredentialImporter,
    CredentialStore,
    LoopbackTarget,
    OAuthClient,
)
from llmwire.auth.runtime import CODEX_ACCESS_TOKEN_ENV, CODEX_ACCOUNT_ID_ENV
from llmwire.core import (
    CredentialImportError,
    InvalidStateError,
    MissingOrgContextError,
    OAuthCallbackError,
    OAuthError,
)
from llmwire.models import StartLoginRequest, StoredCodexAuth

DEFAULT_CLIENT_ID = 'app_EMoamEEZ73f0CkXaXp7hrann'


class StubListener:
    def __init__(self) -> None:
        self.targets: List[LoopbackTarget] = []
        self.stopped = False

    async def ensure(self, target, handler) -> None:
        self.targets.append(target)

    async def stop(self) -> None:
        self.stopped = True


class StubImporter(CredentialImporter):
    def __init__(self, auth: Optional[StoredCodexAuth] = None) -> None:
        self.auth = auth

    def load(self) -> Optional[StoredCodexAuth]:
        return self.auth


class TokenEndpoint:
    '''
    Scripted token endpoint; replies are consumed in order.
    '''

    def __init__(self, *replies: dict) -> None:
        self.replies = list(replies)
        self.grants: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.grants.append(parse_qs(request.content.decode())['grant_type'][0])
        reply = self.replies.pop(0)
        if 'status' in reply:
            return httpx.Response(reply['status'], text='failure')
        return httpx.Response(200, json=reply)


@pytest.fixture
def endpoint() -> TokenEndpoint:
    return TokenEndpoint()


@pytest.fixture
def listener() -> StubListener:
    return StubListener()


@pytest.fixture
def manager(settings, endpoint, listener) -> CodexOAuthManager:
    client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    return CodexOAuthManager(
        settings,
        listener=listener,
        oauth_client=OAuthClient(settings.oauth, http_client=client),
        importers=[],
    )


class TestStartLogin:
    '''
    Test login start.
    '''

    @pytest.mark.asyncio
    async def test_defaults(self, manager) -> None:
        response = await manager.start_login()
        params = parse_qs(urlparse(response.auth_url).query)

        assert params['client_id'] == [DEFAULT_CLIENT_ID]
        assert params['state'] == [response.state]
        assert response.client_id == DEFAULT_CLIENT_ID
        assert response.state in manager.pending

    @pytest.mark.asyncio
    async def test_request_overrides_win(self, manager) -> None:
        response = await manager.start_login(
            StartLoginRequest(client_id='app_custom', redirect_uri='https://x.example.com/cb')
        )

        assert response.client_id == 'app_custom'
        assert response.redirect_uri == 'https://x.example.com/cb'
        assert manager.pending.take(response.state).client_id == 'app_custom'

    @pytest.mark.asyncio
    async def test_loopback_redirect_starts_listener(self, manager, listener) -> None:
        await manager.start_login(StartLoginRequest(redirect_uri='http://localhost:1455/auth/callback'))

        assert listener.targets == [LoopbackTarget(host='localhost', port=1455, path='/auth/callback')]

    @pytest.mark.asyncio
    async def test_remote_redirect_needs_no_listener(self, manager, listener) -> None:
        await manager.start_login()

        assert listener.targets == []

    @pytest.mark.asyncio
    async def test_invalid_redirect(self, manager) -> None:
        with pytest.raises(OAuthError):
            await manager.start_login(StartLoginRequest(redirect_uri='not a url'))


class TestCallback:
    '''
    Test the authorization code exchange paths.
    '''

    @pytest.mark.asyncio
    async def test_success_persists_and_applies(self, manager, endpoint, jwt_factory) -> None:
        access = jwt_factory({'chatgpt_account_id': 'acct-1'})
        endpoint.replies.append({'access_token': access, 'refresh_token': 'r', 'expires_in': 3600})
        start = await manager.start_login()

        auth = await manager.handle_callback('code', start.state)

        assert auth.source == 'pkce_callback'
        assert auth.chatgpt_account_id == 'acct-1'
        assert manager.store.load().access_token == access
        assert os.environ[CODEX_ACCESS_TOKEN_ENV] == access
        assert os.environ[CODEX_ACCOUNT_ID_ENV] == 'acct-1'
        assert start.state not in manager.pending

    @pytest.mark.asyncio
    async def test_state_is_single_use(self, manager, endpoint, jwt_factory) -> None:
        endpoint.replies.append({'access_token': jwt_factory({'chatgpt_account_id': 'a'})})
        start = await manager.start_login()
        await manager.handle_callback('code', start.state)

        with pytest.raises(InvalidStateError, match='Unknown or expired state'):
            await manager.handle_callback('code', start.state)

    @pytest.mark.asyncio
    async def test_provider_error(self, manager) -> None:
        with pytest.raises(OAuthCallbackError, match='access_denied'):
            await manager.handle_callback(None, None, error='access_denied')

    @pytest.mark.asyncio
    async def test_missing_code(self, manager) -> None:
        start = await manager.start_login()

        with pytest.raises(OAuthCallbackError):
            await manager.handle_callback(None, start.state)
        # A rejected callback does not consume the login
        assert start.state in manager.pending

    @pytest.mark.asyncio
    async def test_missing_account_triggers_one_refresh(self, manager, endpoint, jwt_factory) -> None:
        endpoint.replies.extend([
            {'access_token': 'opaque', 'refresh_token': 'r1'},
            {'access_token': jwt_factory({'chatgpt_account_id': 'acct-2'})},
        ])
        start = await manager.start_login()

        auth = await manager.handle_callback('code', start.state)

        assert endpoint.grants == ['authorization_code', 'refresh_token']
        assert auth.chatgpt_account_id == 'acct-2'
        assert auth.refresh_token == 'r1'
        assert auth.source == 'pkce_callback'

    @pytest.mark.asyncio
    async def test_missing_account_without_refresh_token(self, manager, endpoint) -> None:
        endpoint.replies.append({'access_token': 'opaque'})
        start = await manager.start_login()

        with pytest.raises(MissingOrgContextError):
            await manager.handle_callback('code', start.state)
        assert not manager.store.exists()

    @pytest.mark.asyncio
    async def test_failed_context_refresh_reports_missing_org(self, manager, endpoint) -> None:
        endpoint.replies.extend([
            {'access_token': 'opaque', 'refresh_token': 'r1'},
            {'status': 500},
            {'status': 500},
        ])
        start = await manager.start_login()

        with pytest.raises(MissingOrgContextError):
            await manager.handle_callback('code', start.state)
        assert endpoint.grants == ['authorization_code', 'refresh_token', 'refresh_token']
        assert not manager.store.exists()

    @pytest.mark.asyncio
    async def test_callback_page_after_failed_context_refresh(self, manager, endpoint) -> None:
        endpoint.replies.extend([
            {'access_token': 'opaque', 'refresh_token': 'r1'},
            {'status': 500},
            {'status': 500},
        ])
        start = await manager.start_login()

        page = await manager.callback_page('code', start.state)

        assert b'organization context' in page.body
        assert b'Refresh failed' not in page.body

    @pytest.mark.asyncio
    async def test_callback_page_statuses(self, manager, endpoint) -> None:
        bad_state = await manager.callback_page('code', 'nope')
        assert bad_state.status_code == 400

        endpoint.replies.extend([{'status': 500}, {'status': 500}])
        start = await manager.start_login()
        failed = await manager.callback_page('code', start.state)
        assert failed.status_code == 502
        assert b'Token exchange failed' in failed.body

    @pytest.mark.asyncio
    async def test_callback_page_escapes_message(self, manager) -> None:
        page = await manager.callback_page(None, None, error='<script>x</script>')

        assert b'<script>x</script>' not in page.body
        assert b'&lt;script&gt;' in page.body


class TestPasteCode:
    '''
    Test manual code submission.
    '''

    @pytest.mark.asyncio
    async def test_latest_pending_login_used(self, manager, endpoint, jwt_factory) -> None:
        endpoint.replies.append({'access_token': jwt_factory({'chatgpt_account_id': 'a'})})
        older = await manager.start_login()
        entry = manager.pending.take(older.state)
        manager.pending.put(older.state, entry.model_copy(update={'created_at': entry.created_at - timedelta(seconds=5)}))
        latest = await manager.start_login()

        auth = await manager.paste_code('code')

        assert auth.source == 'pkce_manual_code'
        assert latest.state not in manager.pending
        assert len(manager.pending) == 1

    @pytest.mark.asyncio
    async def test_full_redirect_url_accepted(self, manager, endpoint, jwt_factory) -> None:
        endpoint.replies.append({'access_token': jwt_factory({'chatgpt_account_id': 'a'})})
        first = await manager.start_login()
        await manager.start_login()

        await manager.paste_code(f'http://localhost:1455/auth/callback?code=abc&state={first.state}')

        assert first.state not in manager.pending

    @pytest.mark.asyncio
    async def test_no_pending_login(self, manager) -> None:
        with pytest.raises(InvalidStateError, match='No pending PKCE login found'):
            await manager.paste_code('code')

    @pytest.mark.asyncio
    async def test_unknown_state(self, manager) -> None:
        await manager.start_login()

        with pytest.raises(InvalidStateError, match='Unknown or expired state'):
            await manager.paste_code('code', state='other')


class TestImportAndStatus:
    '''
    Test CLI import, status checks and logout.
    '''

    @pytest.mark.asyncio
    async def test_import_cli(self, manager, jwt_factory) -> None:
        manager.importers = [StubImporter(StoredCodexAuth(
            access_token=jwt_factory({'chatgpt_account_id': 'cli-acct'}),
            source='codex_cli_import',
        ))]

        auth = await manager.import_cli()

        assert auth.chatgpt_account_id == 'cli-acct'
        assert manager.store.load().source == 'codex_cli_import'
        assert os.environ[CODEX_ACCOUNT_ID_ENV] == 'cli-acct'

    @pytest.mark.asyncio
    async def test_import_cli_nothing_found(self, manager) -> None:
        manager.importers = [StubImporter(None)]

        with pytest.raises(CredentialImportError):
            await manager.import_cli()

    @pytest.mark.asyncio
    async def test_status_not_connected(self, manager) -> None:
        status = await manager.status()

        assert status.connected is False
        assert status.provider == 'openai-codex'
        assert status.reason

    @pytest.mark.asyncio
    async def test_status_refreshes_near_expiry(self, manager, endpoint, jwt_factory) -> None:
        manager.store.save(StoredCodexAuth(
            access_token='old',
            refresh_token='r',
            chatgpt_account_id='acct',
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=10),
            source='pkce_callback',
        ))
        endpoint.replies.append({'access_token': 'fresh', 'expires_in': 3600})

        status = await manager.status()

        assert status.connected is True
        assert status.source == 'refresh_token'
        assert status.has_refresh_token is True
        assert manager.store.load().access_token == 'fresh'
        assert os.environ[CODEX_ACCESS_TOKEN_ENV] == 'fresh'

    @pytest.mark.asyncio
    async def test_status_heals_runtime_state(self, manager, endpoint) -> None:
        manager.store.save(StoredCodexAuth(
            access_token='tok',
            chatgpt_account_id='acct',
            source='pkce_callback',
        ))

        status = await manager.status()

        assert status.connected is True
        assert endpoint.grants == []
        assert os.environ[CODEX_ACCESS_TOKEN_ENV] == 'tok'
        assert os.environ[CODEX_ACCOUNT_ID_ENV] == 'acct'

    @pytest.mark.asyncio
    async def test_status_missing_org_context(self, manager) -> None:
        manager.store.save(StoredCodexAuth(access_token='opaque', source='pkce_callback'))

        status = await manager.status()

        assert status.connected is False
        assert 'organization context' in status.reason

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_valid_token(self, manager, endpoint) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=30)
        manager.store.save(StoredCodexAuth(
            access_token='tok',
            refresh_token='r',
            chatgpt_account_id='acct',
            expires_at=expires_at,
            source='pkce_callback',
        ))
        endpoint.replies.extend([{'status': 500}, {'status': 500}])

        status = await manager.status()

        assert status.connected is True
        assert status.source == 'pkce_callback'
        assert endpoint.grants == ['refresh_token', 'refresh_token']
        assert manager.store.load().access_token == 'tok'
        assert os.environ[CODEX_ACCESS_TOKEN_ENV] == 'tok'
        assert os.environ[CODEX_ACCOUNT_ID_ENV] == 'acct'

    @pytest.mark.asyncio
    async def test_status_failed_context_refresh(self, manager, endpoint) -> None:
        manager.store.save(StoredCodexAuth(access_token='opaque', refresh_token='r', source='pkce_callback'))
        endpoint.replies.extend([{'status': 500}, {'status': 500}])

        status = await manager.status()

        assert status.connected is False
        assert 'organization context' in status.reason
        assert endpoint.grants == ['refresh_token', 'refresh_token']

    @pytest.mark.asyncio
    async def test_failed_status_clears_runtime(self, manager, monkeypatch) -> None:
        monkeypatch.setenv(CODEX_ACCESS_TOKEN_ENV, 'stale')
        monkeypatch.setenv(CODEX_ACCOUNT_ID_ENV, 'stale-acct')
        manager.store.save(StoredCodexAuth(access_token='opaque', source='pkce_callback'))

        status = await manager.status()

        assert status.connected is False
        assert CODEX_ACCESS_TOKEN_ENV not in os.environ
        assert CODEX_ACCOUNT_ID_ENV not in os.environ

    @pytest.mark.asyncio
    async def test_missing_credentials_clear_runtime(self, manager, monkeypatch) -> None:
        monkeypatch.setenv(CODEX_ACCESS_TOKEN_ENV, 'stale')

        status = await manager.status()

        assert status.connected is False
        assert CODEX_ACCESS_TOKEN_ENV not in os.environ

    @pytest.mark.asyncio
    async def test_status_imports_when_nothing_stored(self, manager, jwt_factory) -> None:
        manager.importers = [StubImporter(StoredCodexAuth(
            access_token=jwt_factory({'chatgpt_account_id': 'cli'}),
            source='codex_cli_import',
        ))]

        status = await manager.status()

        assert status.connected is True
        assert status.source == 'codex_cli_import'
        assert manager.store.exists()

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, manager, monkeypatch) -> None:
        manager.store.save(StoredCodexAuth(access_token='tok', source='pkce_callback'))
        monkeypatch.setenv(CODEX_ACCESS_TOKEN_ENV, 'tok')

        await manager.logout()
        await manager.logout()

        assert not manager.store.exists()
        assert CODEX_ACCESS_TOKEN_ENV not in os.environ

    def test_restore_applies_persisted_record(self, settings, jwt_factory) -> None:
        store = CredentialStore(settings.auth_dir)
        access = jwt_factory({'chatgpt_account_id': 'restored'})
        store.save(StoredCodexAuth(access_token=access, source='pkce_callback'))

        auth = CodexOAuthManager(settings, store=store, importers=[]).restore()

        assert auth.chatgpt_account_id == 'restored'
        assert os.environ[CODEX_ACCESS_TOKEN_ENV] == access

    @pytest.mark.asyncio
    async def test_shutdown_stops_listener(self, manager, listener) -> None:
        await manager.shutdown()

        assert listener.stopped
