"""
Codex OAuth API endpoints for llmwire.

This module implements the login start, browser callback, manual code
paste, Codex CLI import, status and logout endpoints.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from ...auth import CodexOAuthManager
from ...core import get_logger, log_auth_event
from ...models import (
    CodexAuthStatus,
    ConnectedResponse,
    ErrorResponse,
    LogoutResponse,
    PasteCodeRequest,
    StartLoginRequest,
    StartLoginResponse,
)
from ..dependencies import get_oauth_manager

# Create router
router = APIRouter(prefix="/auth/codex", tags=["authentication"])
logger = get_logger(__name__)


@router.post(
    "/start",
    response_model=StartLoginResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
    summary="Start Codex login",
    description="Start a PKCE login and return the authorization URL.",
)
async def start_login(
    http_request: Request,
    request: Optional[StartLoginRequest] = None,
    manager: CodexOAuthManager = Depends(get_oauth_manager),
) -> StartLoginResponse:
    """
    Start a Codex OAuth login.

    When the redirect URI is a loopback address a local listener is started
    to receive the provider redirect.
    """
    client_ip = http_request.client.host if http_request.client else "unknown"
    response = await manager.start_login(request)
    log_auth_event(logger, "login_requested", success=True, details={"client_ip": client_ip})
    return response


@router.get(
    "/callback",
    response_class=HTMLResponse,
    summary="OAuth callback",
    description="Handle the provider redirect and render the result page.",
)
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    manager: CodexOAuthManager = Depends(get_oauth_manager),
) -> HTMLResponse:
    return await manager.callback_page(code, state, error, error_description)


@router.post(
    "/paste-code",
    response_model=ConnectedResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown state or bad code"},
        502: {"model": ErrorResponse, "description": "Token endpoint failure"},
    },
    summary="Submit authorization code",
    description="Finish a login with a code copied from the redirect URL.",
)
async def paste_code(
    request: PasteCodeRequest,
    manager: CodexOAuthManager = Depends(get_oauth_manager),
) -> ConnectedResponse:
    auth = await manager.paste_code(request.code, request.state)
    return ConnectedResponse(source=auth.source)


@router.post(
    "/import-cli",
    response_model=ConnectedResponse,
    responses={
        404: {"model": ErrorResponse, "description": "No Codex CLI credentials"},
        401: {"model": ErrorResponse, "description": "Missing organization context"},
    },
    summary="Import Codex CLI credentials",
    description="Adopt the credential stored by the Codex CLI in its auth.json.",
)
async def import_cli(
    manager: CodexOAuthManager = Depends(get_oauth_manager),
) -> ConnectedResponse:
    auth = await manager.import_cli()
    return ConnectedResponse(source=auth.source)


@router.get(
    "/status",
    response_model=CodexAuthStatus,
    summary="Connection status",
    description="Report the Codex connection, refreshing the token when it is about to expire.",
)
async def status(
    manager: CodexOAuthManager = Depends(get_oauth_manager),
) -> CodexAuthStatus:
    return await manager.status()


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Logout",
    description="Delete the stored credential and clear the runtime token.",
)
async def logout(
    manager: CodexOAuthManager = Depends(get_oauth_manager),
) -> LogoutResponse:
    return await manager.logout()
