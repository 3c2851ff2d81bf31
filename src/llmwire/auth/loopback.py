"""
Loopback HTTP listener that receives the OAuth redirect.

When the redirect URI points at ``localhost`` the provider sends the browser
back to a port nobody else is serving, so a small uvicorn server is run on
that port for the lifetime of the login.
"""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from ..core import OAuthError, get_logger

DEFAULT_CALLBACK_PATH = "/auth/callback"
LOOPBACK_HOSTS = ("localhost", "127.0.0.1")

CallbackHandler = Callable[
    [Optional[str], Optional[str], Optional[str], Optional[str]],
    Awaitable[HTMLResponse],
]


@dataclass(frozen=True)
class LoopbackTarget:
    host: str
    port: int
    path: str


def parse_loopback_target(redirect_uri: str) -> Optional[LoopbackTarget]:
    """Listener target for a loopback ``http`` redirect URI, else ``None``."""
    parsed = urlparse(redirect_uri)
    if parsed.scheme != "http" or parsed.hostname not in LOOPBACK_HOSTS:
        return None
    try:
        port = parsed.port or 80
    except ValueError:
        return None
    return LoopbackTarget(host=parsed.hostname, port=port, path=parsed.path or DEFAULT_CALLBACK_PATH)


def _bind(target: LoopbackTarget) -> socket.socket:
    host = "127.0.0.1" if target.host == "localhost" else target.host
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, target.port))
        sock.listen(100)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class LoopbackListener:
    """Owns at most one running callback server."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self._lock = asyncio.Lock()
        self._target: Optional[LoopbackTarget] = None
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def target(self) -> Optional[LoopbackTarget]:
        return self._target if self.is_running else None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def ensure(self, target: LoopbackTarget, handler: CallbackHandler) -> None:
        """
        Make sure a listener is serving ``target``.

        A listener already serving the same target is left alone. One serving
        a different target is stopped before the new socket is bound.
        """
        async with self._lock:
            if self.is_running and self._target == target:
                return
            await self._stop_locked()

            try:
                sock = _bind(target)
            except OSError as e:
                raise OAuthError(
                    f"Failed to bind OAuth callback listener on {target.host}:{target.port}: {e}",
                    error_code="listener_bind_failed",
                    status_code=500,
                ) from e

            config = uvicorn.Config(
                self._build_app(target, handler),
                log_level="error",
                lifespan="off",
            )
            self._server = uvicorn.Server(config)
            self._task = asyncio.create_task(self._server.serve(sockets=[sock]))
            self._target = target
            self.logger.info(
                "OAuth callback listener started",
                host=target.host,
                port=target.port,
                path=target.path,
            )

    async def stop(self) -> None:
        async with self._lock:
            await self._stop_locked()

    async def _stop_locked(self) -> None:
        if self._task is None:
            return
        if self._server is not None:
            self._server.should_exit = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            self.logger.warning("OAuth callback listener exited with error", error=str(e))
        self.logger.info("OAuth callback listener stopped", port=self._target.port if self._target else None)
        self._task = None
        self._server = None
        self._target = None

    @staticmethod
    def _build_app(target: LoopbackTarget, handler: CallbackHandler) -> FastAPI:
        app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

        async def callback(request: Request) -> HTMLResponse:
            params = request.query_params
            return await handler(
                params.get("code"),
                params.get("state"),
                params.get("error"),
                params.get("error_description"),
            )

        paths = {target.path, DEFAULT_CALLBACK_PATH}
        for path in sorted(paths):
            app.add_api_route(path, callback, methods=["GET"], response_class=HTMLResponse)
        return app
