'''
Shared fixtures for llmwire tests.
'''

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any, Dict

import pytest

from llmwire.auth.runtime import CODEX_ACCESS_TOKEN_ENV, CODEX_ACCOUNT_ID_ENV
from llmwire.core import OAuthConfig, Settings


def make_jwt(claims: Dict[str, Any], pad: bool = False) -> str:
    '''
    Build an unsigned JWT carrying ``claims``.

    Signatures are never checked by llmwire, so the third segment is junk.
    '''
    def segment(data: Dict[str, Any]) -> str:
        raw = base64.urlsafe_b64encode(json.dumps(data).encode('utf-8')).decode('ascii')
        return raw if pad else raw.rstrip('=')

    return f"{segment({'alg': 'none', 'typ': 'JWT'})}.{segment(claims)}.sig"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    '''
    Keep ambient credentials out of every test.
    '''
    for name in (
        CODEX_ACCESS_TOKEN_ENV,
        CODEX_ACCOUNT_ID_ENV,
        'OPENAI_OAUTH_CLIENT_ID',
        'OPENAI_OAUTH_REDIRECT_URI',
        'OPENAI_OAUTH_TOKEN_URL',
        'GEMINI_API_KEY',
        'CODEX_HOME',
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    '''
    Settings rooted in a temporary home directory.
    '''
    return Settings(
        home_dir=tmp_path / 'home',
        oauth=OAuthConfig(redirect_uri='https://app.example.com/v1/auth/codex/callback'),
    )


@pytest.fixture
def jwt_factory():
    '''
    Factory for unsigned JWTs.
    '''
    return make_jwt
