"""
Authentication routes for the OIDC login, callback and logout flows.

This module implements the OAuth 2.0 / OIDC authorization code flow against
any standards-compliant identity provider:

- /oidc/login:    validate the post-login target, start the provider redirect
- /oidc/callback: finish login (code exchange) or logout, then redirect
- /oidc/logout:   drop the session and end it at the provider

Redirect targets are always checked against the configured allow-lists, both
before leaving for the provider and again when the state comes back.
Origin-relative login targets (``/app/page``) never leave the gateway's host
and are accepted without an allow-list entry.

Each login carries a random nonce in the state and in an encrypted cookie, so
a callback is only honoured in the browser that started the login.
"""

import hmac
import logging
import secrets
from typing import Callable, Optional
from urllib.parse import urlencode, urlsplit

from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from oidc_gateway.auth.dependencies import (
    clear_session_cookie,
    load_session,
    write_session_cookie,
)
from oidc_gateway.auth.state import OidcAction, OidcState, decode_state, encode_state
from oidc_gateway.auth.tokens import (
    exchange_code_for_tokens,
    generate_code_challenge,
    generate_code_verifier,
)
from oidc_gateway.config import Settings
from oidc_gateway.cookies import (
    clear_chunked_cookies,
    get_code_verifier_cookie_name,
    get_login_nonce_cookie_name,
    read_chunked_cookie,
    set_chunked_cookies,
)
from oidc_gateway.dependencies import get_app_state
from oidc_gateway.error_pages import ErrorPageData, write_error
from oidc_gateway.exceptions import (
    CookieError,
    DecryptionError,
    InvalidRedirectUriError,
    SessionStorageError,
    StateError,
    TokenExchangeError,
)
from oidc_gateway.session import create_session_state
from oidc_gateway.utils.crypto import decrypt, encrypt
from oidc_gateway.utils.urls import get_full_host, is_local_path, validate_redirect_uri

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/oidc",
    tags=["authentication"],
)


def _error(
    request: Request,
    settings: Settings,
    title: str,
    description: str,
    status_code: int = 400,
) -> Response:
    return write_error(
        request,
        ErrorPageData(title=title, description=description, status_code=status_code),
        redirect_to=settings.ERROR_PAGE_REDIRECT_URL,
        template_path=settings.ERROR_PAGE_TEMPLATE_PATH,
    )


def validate_login_redirect(redirect_url: str, settings: Settings) -> str:
    """
    Accept an origin-relative target, otherwise require an allow-list match.

    Raises:
        InvalidRedirectUriError: If the target is absolute and not allowed
    """
    if is_local_path(redirect_url):
        return redirect_url
    return validate_redirect_uri(redirect_url, settings.post_login_redirect_uris_list)


def get_callback_url(request: Request, settings: Settings) -> str:
    """Absolute callback URL; relative settings resolve against the public host."""
    if urlsplit(settings.OIDC_CALLBACK_URI).netloc:
        return settings.OIDC_CALLBACK_URI
    return f"{get_full_host(request)}{settings.OIDC_CALLBACK_URI}"


# =============================================================================
# Login Endpoint
# =============================================================================

@auth_router.get("/login")
async def login(
    request: Request,
    redirect_url: str = Query("/", description="Where to go after a successful login"),
):
    """
    Initiate the OIDC login flow by redirecting to the identity provider.

    This endpoint:
    1. Validates ``redirect_url`` (origin-relative or POST_LOGIN_REDIRECT_URIS)
    2. Generates a PKCE verifier and stores it encrypted in a cookie
    3. Encodes the login state (action + redirect target + nonce)
    4. Redirects the browser to the authorization endpoint
    """
    app_state = get_app_state(request)
    settings = app_state.settings

    try:
        validate_login_redirect(redirect_url, settings)
    except InvalidRedirectUriError as e:
        return _error(request, settings, "Invalid Redirect", e.message)

    nonce = secrets.token_urlsafe(16)
    try:
        state = encode_state(
            OidcState(action=OidcAction.LOGIN.value, redirect_url=redirect_url, nonce=nonce)
        )
    except StateError as e:
        return _error(request, settings, "Invalid Request", e.message)
    except ValidationError:
        return _error(request, settings, "Invalid Redirect", "redirect_url contains control characters")

    params = {
        "client_id": settings.OIDC_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": get_callback_url(request, settings),
        "scope": settings.OIDC_SCOPES,
        "state": state,
    }

    code_verifier = None
    if settings.OIDC_USE_PKCE:
        code_verifier = generate_code_verifier()
        params["code_challenge"] = generate_code_challenge(code_verifier)
        params["code_challenge_method"] = "S256"

    authorization_url = f"{settings.OIDC_AUTHORIZATION_ENDPOINT}?{urlencode(params)}"
    response = RedirectResponse(url=authorization_url, status_code=302)

    set_chunked_cookies(
        settings.session_cookie,
        response,
        get_login_nonce_cookie_name(settings.COOKIE_NAME_PREFIX),
        encrypt(nonce, settings.SESSION_SECRET),
    )
    if code_verifier:
        set_chunked_cookies(
            settings.session_cookie,
            response,
            get_code_verifier_cookie_name(settings.COOKIE_NAME_PREFIX),
            encrypt(code_verifier, settings.SESSION_SECRET),
        )

    logger.info("Redirecting to identity provider for login")
    return response


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.get("/callback")
async def callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from the provider"),
    state: Optional[str] = Query(None, description="Encoded gateway state"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
):
    """
    Handle the provider redirect after login or logout.

    Login flow:
    1. Decode and validate the state
    2. Re-check the redirect target (origin-relative or allow-listed)
    3. Match the state nonce against the login cookie
    4. Exchange the code (with the PKCE verifier from the cookie)
    5. Store the new session and write its ticket cookie
    6. Redirect to the target

    Logout flow: redirect to the validated post-logout target.
    """
    app_state = get_app_state(request)
    settings = app_state.settings

    # Handle authentication errors from the provider
    if error:
        logger.warning("Provider returned an error", extra={"error": error})
        return _error(
            request,
            settings,
            "Authentication Failed",
            f"Unable to authenticate: {error_description or error}",
        )

    try:
        oidc_state = decode_state(state or "")
    except StateError as e:
        return _error(request, settings, "Invalid State", e.message)

    if oidc_state.action == OidcAction.LOGOUT.value:
        try:
            validate_redirect_uri(oidc_state.redirect_url, settings.post_logout_redirect_uris_list)
        except InvalidRedirectUriError as e:
            return _error(request, settings, "Invalid Redirect", e.message)
        return RedirectResponse(url=oidc_state.redirect_url, status_code=302)

    if oidc_state.action != OidcAction.LOGIN.value:
        return _error(request, settings, "Invalid State", f"Unknown action: {oidc_state.action}")

    try:
        validate_login_redirect(oidc_state.redirect_url, settings)
    except InvalidRedirectUriError as e:
        return _error(request, settings, "Invalid Redirect", e.message)

    if not code:
        return _error(request, settings, "Invalid Request", "Missing required parameter: code")

    expected_nonce = _read_encrypted_cookie(request, settings, get_login_nonce_cookie_name)
    if expected_nonce is None:
        return _error(
            request,
            settings,
            "Login Expired",
            "The login attempt could not be verified. Please try again.",
        )
    if not oidc_state.nonce or not hmac.compare_digest(oidc_state.nonce, expected_nonce):
        logger.warning("State nonce does not match the login cookie")
        return _error(request, settings, "Invalid State", "State does not belong to this login")

    code_verifier = None
    if settings.OIDC_USE_PKCE:
        code_verifier = _read_encrypted_cookie(request, settings, get_code_verifier_cookie_name)
        if code_verifier is None:
            return _error(
                request,
                settings,
                "Login Expired",
                "The login attempt could not be verified. Please try again.",
            )

    try:
        token_response = await exchange_code_for_tokens(
            settings,
            code=code,
            redirect_uri=get_callback_url(request, settings),
            code_verifier=code_verifier,
            client=app_state.provider_client,
        )
    except TokenExchangeError as e:
        return _error(request, settings, "Authentication Failed", e.message, status_code=e.status_code)

    session = create_session_state(token_response)
    ticket = await run_in_threadpool(app_state.session_storage.store_session, session.id, session)

    response = RedirectResponse(url=oidc_state.redirect_url, status_code=302)
    write_session_cookie(app_state, request, response, ticket)
    for cookie_name in (
        get_login_nonce_cookie_name(settings.COOKIE_NAME_PREFIX),
        get_code_verifier_cookie_name(settings.COOKIE_NAME_PREFIX),
    ):
        clear_chunked_cookies(settings.session_cookie, request, response, cookie_name)

    logger.info("Login completed", extra={"session_id": session.id})
    return response


def _read_encrypted_cookie(
    request: Request,
    settings: Settings,
    cookie_name_for: Callable[[str], str],
) -> Optional[str]:
    cookie_name = cookie_name_for(settings.COOKIE_NAME_PREFIX)
    try:
        encrypted = read_chunked_cookie(request, cookie_name, settings.SESSION_COOKIE_MAX_CHUNKS)
        return decrypt(encrypted, settings.SESSION_SECRET)
    except (CookieError, DecryptionError) as e:
        logger.warning(
            "Login cookie unusable",
            extra={"cookie_name": cookie_name, "error_type": type(e).__name__},
        )
        return None


# =============================================================================
# Logout Endpoint
# =============================================================================

@auth_router.get("/logout")
async def logout(
    request: Request,
    redirect_url: str = Query("/", description="Where to go after logout"),
):
    """
    Clear the session cookie and end the session at the provider.

    Without an end-session endpoint the browser goes straight to
    ``redirect_url``. Otherwise the provider sends it back to the callback
    with a logout state, which then redirects to ``redirect_url``.
    """
    app_state = get_app_state(request)
    settings = app_state.settings

    try:
        validate_redirect_uri(redirect_url, settings.post_logout_redirect_uris_list)
    except InvalidRedirectUriError as e:
        return _error(request, settings, "Invalid Redirect", e.message)

    if settings.OIDC_END_SESSION_ENDPOINT:
        try:
            session = await load_session(request, app_state)
        except SessionStorageError:
            logger.warning("Session store unavailable during logout, sending no id_token_hint")
            session = None

        try:
            state = encode_state(OidcState(action=OidcAction.LOGOUT.value, redirect_url=redirect_url))
        except StateError as e:
            return _error(request, settings, "Invalid Request", e.message)

        params = {
            "client_id": settings.OIDC_CLIENT_ID,
            "post_logout_redirect_uri": get_callback_url(request, settings),
            "state": state,
        }
        if session and session.id_token:
            params["id_token_hint"] = session.id_token
        target = f"{settings.OIDC_END_SESSION_ENDPOINT}?{urlencode(params)}"
    else:
        target = redirect_url

    response = RedirectResponse(url=target, status_code=302)
    clear_session_cookie(app_state, request, response)

    logger.info("Logged out")
    return response
