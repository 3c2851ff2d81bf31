"""
HTML pages returned to the browser at the end of an OAuth redirect.
"""

from __future__ import annotations

import html

from fastapi.responses import HTMLResponse

POPUP_MESSAGE_TYPE = "llmwire:codex_oauth"

_SUCCESS_PAGE = """<!doctype html>
<html>
<head><title>Codex connected</title></head>
<body>
    <h1>Codex account connected</h1>
    <p>You can close this window.</p>
    <script>
    (function () {
        if (window.opener) {
            window.opener.postMessage({type: "%(message_type)s", status: "connected"}, "*");
            window.close();
        } else {
            window.location.replace("/");
        }
    })();
    </script>
</body>
</html>
"""

_ERROR_PAGE = """<!doctype html>
<html>
<head><title>Codex login failed</title></head>
<body>
    <h1>Codex login failed</h1>
    <p>%(message)s</p>
    <p>You can close this window and try again.</p>
</body>
</html>
"""


def success_page() -> HTMLResponse:
    """Notify the opener window and close, or redirect when not a popup."""
    return HTMLResponse(_SUCCESS_PAGE % {"message_type": POPUP_MESSAGE_TYPE})


def error_page(message: str, status_code: int = 400) -> HTMLResponse:
    return HTMLResponse(_ERROR_PAGE % {"message": html.escape(message)}, status_code=status_code)
