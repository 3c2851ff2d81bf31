#!/usr/bin/env python3
"""
Codex login helper for llmwire.

Runs the OAuth credential manager in-process: starts a PKCE login with the
loopback callback listener, opens the browser and waits until the
credential has been stored. With ``--import-cli`` it adopts the Codex
CLI's auth.json instead.
"""

import asyncio
import sys
import webbrowser

from dotenv import load_dotenv

from llmwire.auth import CodexOAuthManager
from llmwire.core import LlmwireError, get_settings, mask_token, reload_settings, setup_logging


class CodexLogin:
    """Terminal front end for the Codex OAuth login."""

    def __init__(self, timeout: float = 300):
        self.settings = get_settings()
        self.manager = CodexOAuthManager(self.settings)
        self.timeout = timeout

    def print_banner(self):
        print("=" * 60)
        print("llmwire Codex login")
        print("=" * 60)
        print()

    async def login(self) -> bool:
        """Browser login through the loopback listener."""
        start = await self.manager.start_login()
        print(f"Authorization URL: {start.auth_url}")
        print(f"Waiting for the redirect to {start.redirect_uri} ...")
        try:
            webbrowser.open(start.auth_url)
        except webbrowser.Error as e:
            print(f"Could not open a browser ({e}); open the URL above manually.")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while start.state in self.manager.pending:
            if loop.time() > deadline:
                print("Timed out waiting for the OAuth callback.")
                return False
            await asyncio.sleep(1)
        # The state leaves the pending store when the callback arrives;
        # give the exchange a moment to write the credential.
        for _ in range(30):
            if self.manager.store.exists():
                return True
            await asyncio.sleep(1)
        return self.manager.store.exists()

    async def import_cli(self) -> bool:
        try:
            await self.manager.import_cli()
        except LlmwireError as e:
            print(f"Import failed: {e.message}")
            return False
        return True

    async def show_status(self):
        status = await self.manager.status()
        print()
        print(f"Connected:      {status.connected}")
        print(f"Source:         {status.source or '-'}")
        print(f"Account:        {mask_token(status.account_id) or '-'}")
        print(f"Expires at:     {status.expires_at or '-'}")
        print(f"Refresh token:  {'yes' if status.has_refresh_token else 'no'}")
        if status.reason:
            print(f"Reason:         {status.reason}")

    async def run(self, import_cli: bool) -> int:
        self.print_banner()
        try:
            ok = await self.import_cli() if import_cli else await self.login()
            await self.show_status()
            return 0 if ok else 1
        except KeyboardInterrupt:
            print("\nLogin interrupted.")
            return 1
        finally:
            await self.manager.shutdown()


async def main() -> int:
    """Main entry point."""
    # Nested settings only read the process environment
    load_dotenv()
    reload_settings()
    setup_logging()

    login = CodexLogin()
    return await login.run(import_cli="--import-cli" in sys.argv[1:])


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
