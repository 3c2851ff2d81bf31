"""
Codex OAuth credential manager.

This module owns the whole credential lifecycle: PKCE login start, the
browser callback or a pasted code, Codex CLI import, proactive refresh,
status reporting and logout. Every successful operation persists the
credential and applies it to the runtime environment read by the Codex
driver.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlparse

import httpx
from fastapi.responses import HTMLResponse

from ..core import (
    CredentialImportError,
    CredentialStorageError,
    InvalidStateError,
    LlmwireError,
    MissingOrgContextError,
    OAuthCallbackError,
    OAuthError,
    Settings,
    generate_pkce_codes,
    generate_state,
    get_logger,
    get_settings,
    log_auth_event,
    log_error,
)
from ..models import (
    CodexAuthStatus,
    CredentialSource,
    LogoutResponse,
    PendingPkce,
    StartLoginRequest,
    StartLoginResponse,
    StoredCodexAuth,
)
from .importers import CodexCliImporter, CredentialImporter, import_first_available
from .jwt import jwt_account_id
from .loopback import LoopbackListener, parse_loopback_target
from .oauth import OAuthClient, credential_from_token, merge_token_response
from .pages import error_page, success_page
from .pending import PendingLoginStore
from .runtime import MISSING_ORG_CONTEXT_MESSAGE, RuntimeCredentials
from .storage import CredentialStore

MISSING_ACCESS_TOKEN_MESSAGE = "OAuth access token is missing. Log in again or import ~/.codex/auth.json."


def split_pasted_code(value: str) -> Tuple[str, Optional[str]]:
    """Accept a bare code or the whole redirect URL it was copied from."""
    value = value.strip()
    if "code=" not in value:
        return value, None
    query = urlparse(value).query or value.lstrip("?")
    params = parse_qs(query)
    code = (params.get("code") or [value])[0]
    state = (params.get("state") or [None])[0]
    return code, state


class CodexOAuthManager:
    """Credential lifecycle for the Codex Responses backend."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[CredentialStore] = None,
        pending: Optional[PendingLoginStore] = None,
        listener: Optional[LoopbackListener] = None,
        runtime: Optional[RuntimeCredentials] = None,
        oauth_client: Optional[OAuthClient] = None,
        importers: Optional[Sequence[CredentialImporter]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)
        self.store = store or CredentialStore(self.settings.auth_dir)
        self.pending = pending or PendingLoginStore(self.settings.oauth.pending_ttl_seconds)
        self.listener = listener or LoopbackListener()
        self.runtime = runtime or RuntimeCredentials()
        self.oauth = oauth_client or OAuthClient(self.settings.oauth, http_client=http_client)
        self.importers: List[CredentialImporter] = (
            list(importers) if importers is not None else [CodexCliImporter()]
        )

    # Login

    async def start_login(self, request: Optional[StartLoginRequest] = None) -> StartLoginResponse:
        """
        Begin a PKCE login.

        The client ID and redirect URI come from the request, then from
        configuration. A loopback redirect URI gets a local listener.

        Raises:
            OAuthError: If the redirect URI is unusable or the listener cannot bind
        """
        request = request or StartLoginRequest()
        client_id = request.client_id or self.settings.oauth.client_id
        redirect_uri = request.redirect_uri or self.settings.oauth.redirect_uri

        parsed = urlparse(redirect_uri)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise OAuthError(f"Invalid redirect_uri: {redirect_uri}", error_code="invalid_redirect_uri")

        target = parse_loopback_target(redirect_uri)
        if target is not None:
            await self.listener.ensure(target, self.callback_page)

        verifier, challenge = generate_pkce_codes()
        state = generate_state()
        self.pending.put(
            state,
            PendingPkce(verifier=verifier, redirect_uri=redirect_uri, client_id=client_id),
        )
        auth_url = self.oauth.build_authorization_url(client_id, redirect_uri, challenge, state)

        log_auth_event(
            self.logger,
            "login_started",
            success=True,
            details={"redirect_uri": redirect_uri, "loopback": target is not None},
        )
        return StartLoginResponse(
            auth_url=auth_url,
            state=state,
            redirect_uri=redirect_uri,
            client_id=client_id,
            instructions=(
                "Open auth_url in a browser and sign in. If the redirect does not reach "
                "this server, copy the code from the redirect URL and submit it to "
                "/v1/auth/codex/paste-code."
            ),
        )

    async def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> StoredCodexAuth:
        """Finish a login from the provider redirect."""
        if error:
            log_auth_event(self.logger, "callback_rejected", success=False, details={"error": error})
            raise OAuthCallbackError(f"OAuth provider returned an error: {error_description or error}")
        if not code or not state:
            raise OAuthCallbackError("Missing code or state in OAuth callback")

        pending = self.pending.take(state)
        if pending is None:
            raise InvalidStateError()
        return await self._complete_exchange(code, pending, "pkce_callback")

    async def callback_page(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> HTMLResponse:
        """``handle_callback`` rendered for a browser tab."""
        try:
            await self.handle_callback(code, state, error, error_description)
        except (OAuthCallbackError, InvalidStateError) as e:
            return error_page(e.message, status_code=400)
        except CredentialStorageError as e:
            log_error(self.logger, e, {"operation": "callback"})
            return error_page(e.message, status_code=500)
        except LlmwireError as e:
            log_error(self.logger, e, {"operation": "callback"})
            return error_page(e.message, status_code=502)
        return success_page()

    async def paste_code(self, code: str, state: Optional[str] = None) -> StoredCodexAuth:
        """
        Finish a login from a code copied by hand.

        Without a state the most recently started login is used.
        """
        code, pasted_state = split_pasted_code(code)
        state = state or pasted_state
        if not code:
            raise OAuthCallbackError("Missing authorization code")

        if state:
            pending = self.pending.take(state)
            if pending is None:
                raise InvalidStateError()
        else:
            latest = self.pending.take_latest()
            if latest is None:
                raise InvalidStateError("No pending PKCE login found")
            _, pending = latest

        return await self._complete_exchange(code, pending, "pkce_manual_code")

    async def import_cli(self) -> StoredCodexAuth:
        """Adopt the credential written by the Codex CLI."""
        auth = import_first_available(self.importers)
        if auth is None:
            log_auth_event(self.logger, "cli_import_failed", success=False)
            raise CredentialImportError(
                "No Codex CLI credentials found in $CODEX_HOME/auth.json or ~/.codex/auth.json"
            )

        auth = await self.ensure_access_token(auth)
        self._persist(auth)
        log_auth_event(self.logger, "cli_import", account_id=auth.chatgpt_account_id, success=True)
        return auth

    async def _complete_exchange(
        self,
        code: str,
        pending: PendingPkce,
        source: CredentialSource,
    ) -> StoredCodexAuth:
        try:
            token = await self.oauth.exchange_code(
                code,
                pending.verifier,
                pending.redirect_uri,
                pending.client_id,
            )
        except OAuthError:
            log_auth_event(self.logger, "code_exchange_failed", success=False, details={"source": source})
            raise

        auth = credential_from_token(token, pending.client_id, source)
        if not auth.chatgpt_account_id and auth.refresh_token:
            self.logger.info("Token lacks account context, refreshing once")
            auth = await self._refresh_quietly(auth, source=source)
        if not auth.chatgpt_account_id:
            raise MissingOrgContextError(MISSING_ORG_CONTEXT_MESSAGE)

        self._persist(auth)
        log_auth_event(
            self.logger,
            "login_completed",
            account_id=auth.chatgpt_account_id,
            success=True,
            details={"source": source},
        )
        return auth

    # Refresh

    async def refresh(
        self,
        auth: StoredCodexAuth,
        source: CredentialSource = "refresh_token",
    ) -> StoredCodexAuth:
        """Redeem the stored refresh token and merge the result."""
        if not auth.refresh_token:
            raise OAuthError("No refresh token available", error_code="missing_refresh_token", status_code=401)

        client_id = auth.client_id or self.settings.oauth.client_id
        try:
            token = await self.oauth.refresh(auth.refresh_token, client_id)
        except OAuthError:
            log_auth_event(self.logger, "token_refresh", account_id=auth.chatgpt_account_id, success=False)
            raise

        merged = merge_token_response(auth, token, source)
        log_auth_event(self.logger, "token_refresh", account_id=merged.chatgpt_account_id, success=True)
        return merged

    async def _refresh_quietly(
        self,
        auth: StoredCodexAuth,
        source: CredentialSource = "refresh_token",
    ) -> StoredCodexAuth:
        # A failed refresh leaves the record as it was
        try:
            return await self.refresh(auth, source=source)
        except OAuthError as e:
            log_auth_event(
                self.logger,
                "token_refresh_skipped",
                account_id=auth.chatgpt_account_id,
                success=False,
                details={"reason": e.message},
            )
            return auth

    async def refresh_if_possible(self, auth: StoredCodexAuth) -> StoredCodexAuth:
        """
        Refresh when the token expires within the configured skew.

        Failures are logged and the current record is returned unchanged.
        """
        if auth.refresh_token and auth.expires_within(self.settings.oauth.refresh_skew_seconds):
            return await self._refresh_quietly(auth)
        return auth

    async def ensure_access_token(self, auth: StoredCodexAuth) -> StoredCodexAuth:
        """
        Return a credential with an access token and an account id.

        At most one refresh is made, whether for expiry, a missing access
        token or missing account context. Only the refresh for a missing
        access token may fail loudly; the others keep the current record.

        Raises:
            OAuthError: If no access token can be obtained
            MissingOrgContextError: If no account id can be resolved
        """
        refreshed = bool(auth.refresh_token) and auth.expires_within(
            self.settings.oauth.refresh_skew_seconds
        )
        auth = await self.refresh_if_possible(auth)

        if not auth.access_token:
            if not auth.refresh_token or refreshed:
                raise OAuthError(MISSING_ACCESS_TOKEN_MESSAGE, error_code="missing_access_token", status_code=401)
            auth = await self.refresh(auth)
            refreshed = True

        if not auth.chatgpt_account_id:
            auth.chatgpt_account_id = jwt_account_id(auth.access_token) or jwt_account_id(auth.id_token)
        if not auth.chatgpt_account_id and auth.refresh_token and not refreshed:
            auth = await self._refresh_quietly(auth)
        if not auth.chatgpt_account_id:
            raise MissingOrgContextError(MISSING_ORG_CONTEXT_MESSAGE)
        return auth

    # Status

    async def status(self) -> CodexAuthStatus:
        """
        Report the connection state, healing it on the way.

        A usable credential is written back to disk and to the runtime
        environment on every call.
        """
        model = self.settings.codex.model
        try:
            auth = self.store.load()
        except CredentialStorageError as e:
            log_error(self.logger, e, {"operation": "status"})
            self.runtime.clear()
            return CodexAuthStatus(connected=False, model=model, reason=e.message)

        if auth is None:
            auth = import_first_available(self.importers)
        if auth is None:
            self.runtime.clear()
            return CodexAuthStatus(connected=False, model=model, reason="No Codex credentials found")

        try:
            auth = await self.ensure_access_token(auth)
            self._persist(auth)
        except OAuthError as e:
            log_auth_event(self.logger, "status_check", success=False, details={"reason": e.message})
            self.runtime.clear()
            return CodexAuthStatus(
                connected=False,
                model=model,
                source=auth.source,
                issued_at=auth.issued_at,
                expires_at=auth.expires_at,
                has_refresh_token=bool(auth.refresh_token),
                account_id=auth.chatgpt_account_id,
                reason=e.message,
            )

        return CodexAuthStatus(
            connected=True,
            model=model,
            source=auth.source,
            issued_at=auth.issued_at,
            expires_at=auth.expires_at,
            has_refresh_token=bool(auth.refresh_token),
            account_id=auth.chatgpt_account_id,
        )

    # Lifecycle

    async def logout(self) -> LogoutResponse:
        removed = self.store.delete()
        self.runtime.clear()
        log_auth_event(self.logger, "logout", success=True, details={"file_removed": removed})
        return LogoutResponse()

    def restore(self) -> Optional[StoredCodexAuth]:
        """Apply the persisted credential at startup, without network calls."""
        try:
            auth = self.store.load()
        except CredentialStorageError as e:
            log_error(self.logger, e, {"operation": "restore"})
            return None
        if auth is None or not auth.access_token:
            return None

        if not auth.chatgpt_account_id:
            auth.chatgpt_account_id = jwt_account_id(auth.access_token)
        self.runtime.apply(auth)
        self.logger.info("Persisted Codex credential restored", source=auth.source)
        return auth

    async def shutdown(self) -> None:
        await self.listener.stop()

    def _persist(self, auth: StoredCodexAuth) -> None:
        self.store.save(auth)
        self.runtime.apply(auth)
