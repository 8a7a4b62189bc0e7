"""
Proxy Routes - Upstream Request Forwarding
==========================================

Every path not handled by the gateway itself is forwarded to UPSTREAM_URL
once the caller has a valid session.

Security Model:
---------------
1. The session cookie is resolved by ``get_session_state``
2. Browsers without a session are sent to /oidc/login with the current
   path as the post-login target; API clients get 401
3. Hop-by-hop headers and the gateway's own cookies are dropped
4. The session access token is sent as ``Authorization: Bearer``
5. ``X-Forwarded-User`` carries the ``sub`` claim of the ID token

Upstream failures are not retried: timeouts map to 504, network errors
to 503.
"""

import logging
from typing import Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response

from oidc_gateway.auth.dependencies import get_session_state, write_session_cookie
from oidc_gateway.auth.tokens import get_subject
from oidc_gateway.config import Settings
from oidc_gateway.dependencies import get_app_state, get_upstream_client
from oidc_gateway.error_pages import ErrorPageData, write_problem_detail
from oidc_gateway.session import SessionState
from oidc_gateway.utils.urls import is_html_request

logger = logging.getLogger(__name__)

proxy_router = APIRouter()

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Recomputed by the HTTP client / server on each side
_REQUEST_DROP_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length", "cookie", "x-forwarded-user"}
_RESPONSE_DROP_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


# ============================================================================
# Header Security Functions
# ============================================================================

def build_upstream_headers(
    settings: Settings,
    request: Request,
    session: SessionState,
) -> Dict[str, str]:
    """
    Build headers for the upstream request.

    Args:
        settings: Application settings
        request: Incoming request
        session: Authenticated session

    Returns:
        Headers dict for the upstream request
    """
    headers = {
        k: v for k, v in request.headers.items()
        if k.lower() not in _REQUEST_DROP_HEADERS
    }

    cookie_header = strip_gateway_cookies(request.cookies, settings.COOKIE_NAME_PREFIX)
    if cookie_header:
        headers["cookie"] = cookie_header

    if settings.FORWARD_ACCESS_TOKEN and session.access_token:
        headers["authorization"] = f"Bearer {session.access_token}"

    subject = get_subject(session.id_token)
    if subject:
        headers["x-forwarded-user"] = subject

    headers.setdefault("x-forwarded-proto", request.url.scheme)
    headers.setdefault("x-forwarded-host", request.headers.get("host", ""))
    return headers


def strip_gateway_cookies(cookies: Dict[str, str], prefix: str) -> Optional[str]:
    """Rebuild the Cookie header without any ``<prefix>.*`` cookie."""
    kept = [
        f"{name}={value}"
        for name, value in cookies.items()
        if not name.startswith(f"{prefix}.")
    ]
    return "; ".join(kept) if kept else None


def _login_redirect(request: Request) -> RedirectResponse:
    # Origin-relative; /oidc/login accepts these without an allow-list entry
    current = request.url.path
    if request.url.query:
        current = f"{current}?{request.url.query}"
    return RedirectResponse(
        url=f"/oidc/login?{urlencode({'redirect_url': current})}",
        status_code=302,
    )


# ============================================================================
# Proxy Endpoint
# ============================================================================

@proxy_router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy(
    request: Request,
    path: str,
    session: Optional[SessionState] = Depends(get_session_state),
):
    """
    Forward the request upstream, or start authentication.

    Returns:
        The upstream response (status, body, end-to-end headers)
    """
    app_state = get_app_state(request)
    settings = app_state.settings

    if session is None:
        if is_html_request(request):
            return _login_redirect(request)
        response = write_problem_detail(
            ErrorPageData(title="Unauthorized", description="Authentication required", status_code=401)
        )
        response.headers["WWW-Authenticate"] = "Bearer"
        return response

    upstream_client = get_upstream_client(request)
    url = f"/{path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"

    try:
        upstream = await upstream_client.request(
            request.method,
            url,
            headers=build_upstream_headers(settings, request, session),
            content=await request.body(),
        )
    except httpx.TimeoutException:
        logger.error(
            "Upstream request timeout",
            extra={"path": request.url.path, "session_id": session.id},
        )
        return write_problem_detail(
            ErrorPageData(title="Gateway Timeout", description="Upstream service timeout", status_code=504)
        )
    except httpx.TransportError as e:
        logger.error(
            "Upstream network error",
            extra={"path": request.url.path, "error_type": type(e).__name__},
        )
        return write_problem_detail(
            ErrorPageData(title="Service Unavailable", description="Cannot reach upstream service", status_code=503)
        )

    logger.debug(
        "Proxied request",
        extra={"path": request.url.path, "status_code": upstream.status_code},
    )

    response = Response(
        content=upstream.content,
        status_code=upstream.status_code,
    )
    for name, value in upstream.headers.multi_items():
        if name.lower() not in _RESPONSE_DROP_HEADERS:
            response.headers.append(name, value)

    refreshed_ticket = getattr(request.state, "session_ticket", None)
    if refreshed_ticket:
        write_session_cookie(app_state, request, response, refreshed_ticket)

    return response
