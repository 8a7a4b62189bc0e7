"""
Authentication decision for proxied requests.

Turns the session cookie into a SessionState or None. Every cookie and
ticket failure degrades to None, which forces a fresh login; only an
unavailable external session store propagates (as SessionStorageError).
"""

import logging
from typing import Optional

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import Response

from oidc_gateway.auth.tokens import refresh_tokens
from oidc_gateway.cookies import (
    clear_chunked_cookies,
    get_session_cookie_name,
    read_chunked_cookie,
    replace_chunked_cookies,
)
from oidc_gateway.dependencies import AppState, get_app_state
from oidc_gateway.exceptions import (
    CookieNotFoundError,
    IncompleteCookieChunksError,
    InvalidSessionTicketError,
    TokenExchangeError,
)
from oidc_gateway.session import SessionState, apply_token_refresh, is_token_expired

logger = logging.getLogger(__name__)


async def load_session(request: Request, app_state: AppState) -> Optional[SessionState]:
    """
    Read and resolve the session cookie without refreshing tokens.

    Returns:
        The authorized session, or None

    Raises:
        SessionStorageError: If the external session store fails
    """
    settings = app_state.settings
    cookie_name = get_session_cookie_name(settings.COOKIE_NAME_PREFIX)

    try:
        ticket = read_chunked_cookie(request, cookie_name, settings.SESSION_COOKIE_MAX_CHUNKS)
    except CookieNotFoundError:
        return None
    except IncompleteCookieChunksError:
        # already logged with the missing index
        return None

    try:
        session = await run_in_threadpool(app_state.session_storage.try_get_session, ticket)
    except InvalidSessionTicketError:
        return None

    if session is None or not session.is_authorized:
        return None
    return session


async def get_session_state(request: Request) -> Optional[SessionState]:
    """
    Dependency resolving the caller's session, refreshing it when expired.

    A refreshed session is stored again and its new ticket is left on
    ``request.state.session_ticket`` for the route to write back.
    """
    app_state = get_app_state(request)
    session = await load_session(request, app_state)
    if session is None or not is_token_expired(session):
        return session

    if not session.refresh_token:
        logger.info("Session expired without refresh token", extra={"session_id": session.id})
        return None

    try:
        token_response = await refresh_tokens(
            app_state.settings,
            session.refresh_token,
            client=app_state.provider_client,
        )
    except TokenExchangeError:
        logger.info("Token refresh failed, session dropped", extra={"session_id": session.id})
        return None

    session = apply_token_refresh(session, token_response)
    request.state.session_ticket = await run_in_threadpool(
        app_state.session_storage.store_session, session.id, session
    )
    logger.info("Refreshed session tokens", extra={"session_id": session.id})
    return session


# =============================================================================
# Session Cookie Helpers
# =============================================================================

def write_session_cookie(app_state: AppState, request: Request, response: Response, ticket: str) -> None:
    settings = app_state.settings
    replace_chunked_cookies(
        settings.session_cookie,
        request,
        response,
        get_session_cookie_name(settings.COOKIE_NAME_PREFIX),
        ticket,
    )


def clear_session_cookie(app_state: AppState, request: Request, response: Response) -> None:
    settings = app_state.settings
    clear_chunked_cookies(
        settings.session_cookie,
        request,
        response,
        get_session_cookie_name(settings.COOKIE_NAME_PREFIX),
    )
