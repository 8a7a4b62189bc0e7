"""
Shared fixtures for gateway tests.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import jwt
import pytest
from starlette.requests import Request

from oidc_gateway.config import Settings
from oidc_gateway.session import CookieSessionStorage, SessionState

SESSION_SECRET = "test-session-secret-0123456789abcdef"
ID_TOKEN_SIGNING_KEY = "test-signing-key-0123456789abcdef"


@pytest.fixture
def settings() -> Settings:
    """Explicit settings; the environment and .env are not consulted."""
    return Settings(
        _env_file=None,
        OIDC_CLIENT_ID="gateway-client",
        OIDC_CLIENT_SECRET="gateway-client-secret",
        OIDC_AUTHORIZATION_ENDPOINT="https://idp.example.com/authorize",
        OIDC_TOKEN_ENDPOINT="https://idp.example.com/token",
        OIDC_END_SESSION_ENDPOINT="https://idp.example.com/logout",
        SESSION_SECRET=SESSION_SECRET,
        UPSTREAM_URL="http://upstream.internal:9000",
        POST_LOGIN_REDIRECT_URIS="/,https://*.example.com/*",
        POST_LOGOUT_REDIRECT_URIS="/,https://app.example.com/bye",
        LOG_LEVEL="DEBUG",
    )


def make_id_token(sub: str = "user-123", **claims) -> str:
    return jwt.encode({"sub": sub, **claims}, ID_TOKEN_SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def session_state() -> SessionState:
    """Authorized session whose access token never expires."""
    return SessionState(
        id="5f0c2b7e-3f4d-4e0a-9a43-2b0a8c1d9e11",
        refreshed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        access_token="access-token-abc",
        id_token=make_id_token(),
        refresh_token="refresh-token-xyz",
        is_authorized=True,
        token_expires_in=0,
    )


@pytest.fixture
def session_ticket(session_state: SessionState) -> str:
    return CookieSessionStorage(SESSION_SECRET).store_session(session_state.id, session_state)


@pytest.fixture
def make_request():
    """Factory for bare Starlette requests with the given cookies/headers."""

    def _make_request(
        cookies: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        path: str = "/",
        scheme: str = "http",
    ) -> Request:
        raw_headers: List = [(b"host", b"gateway.example.com")]
        if cookies:
            cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
            raw_headers.append((b"cookie", cookie_header.encode("latin-1")))
        for name, value in (headers or {}).items():
            raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))

        return Request({
            "type": "http",
            "method": "GET",
            "scheme": scheme,
            "server": ("gateway.example.com", 80),
            "path": path,
            "root_path": "",
            "query_string": b"",
            "headers": raw_headers,
        })

    return _make_request


def cookie_header_from(set_cookie_headers: List[str]) -> str:
    """Turn Set-Cookie values into the Cookie header a browser would send."""
    pairs = []
    for header in set_cookie_headers:
        if "Max-Age=0" in header:
            continue
        pairs.append(header.split(";", 1)[0])
    return "; ".join(pairs)
