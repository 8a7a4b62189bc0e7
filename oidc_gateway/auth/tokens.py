"""
Identity provider token endpoint client.

Implements the two grants the gateway uses:
- authorization_code (with optional PKCE verifier) after login
- refresh_token when a session's access token has expired

Also holds the PKCE helpers and unverified ID token inspection. The gateway
only reads the ``sub`` claim for the X-Forwarded-User header; ID tokens are
obtained directly from the token endpoint over TLS and are not re-verified.
"""

import hashlib
import logging
import secrets
from typing import Any, Dict, Optional

import httpx
import jwt
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError

from oidc_gateway.config import Settings
from oidc_gateway.exceptions import TokenExchangeError
from oidc_gateway.models import TokenResponse
from oidc_gateway.utils.encoding import b64url_encode

logger = logging.getLogger(__name__)

TOKEN_REQUEST_TIMEOUT_SECONDS = 10.0


# =============================================================================
# PKCE Helper Functions
# =============================================================================

def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43 characters)
    """
    return b64url_encode(secrets.token_bytes(32))


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    return b64url_encode(hashlib.sha256(verifier.encode("utf-8")).digest())


# =============================================================================
# Token Endpoint
# =============================================================================

async def exchange_code_for_tokens(
    settings: Settings,
    code: str,
    redirect_uri: str,
    code_verifier: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenResponse:
    """
    Exchange an authorization code for tokens.

    Args:
        settings: Application settings (client credentials, token endpoint)
        code: Authorization code from the callback
        redirect_uri: Redirect URI (must match the one used in login)
        code_verifier: PKCE code verifier
        client: Shared HTTP client; a short-lived one is created when omitted

    Raises:
        TokenExchangeError: If the provider rejects the request, is
            unreachable, or returns an unusable response
    """
    payload = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }
    if code_verifier:
        payload["code_verifier"] = code_verifier

    return await _request_tokens(settings, payload, client)


async def refresh_tokens(
    settings: Settings,
    refresh_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenResponse:
    """
    Redeem a refresh token for a new access token.

    Raises:
        TokenExchangeError: Same conditions as :func:`exchange_code_for_tokens`
    """
    payload = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
    }
    return await _request_tokens(settings, payload, client)


async def _request_tokens(
    settings: Settings,
    payload: Dict[str, str],
    client: Optional[httpx.AsyncClient],
) -> TokenResponse:
    payload = {"client_id": settings.OIDC_CLIENT_ID, **payload}

    # Add client secret if available (confidential client)
    if settings.OIDC_CLIENT_SECRET:
        payload["client_secret"] = settings.OIDC_CLIENT_SECRET

    grant_type = payload["grant_type"]

    try:
        if client is None:
            async with httpx.AsyncClient() as owned_client:
                response = await _post_token_request(owned_client, settings, payload)
        else:
            response = await _post_token_request(client, settings, payload)
    except httpx.HTTPError as e:
        logger.error(
            "Token endpoint unreachable",
            extra={"grant_type": grant_type, "error_type": type(e).__name__},
        )
        raise TokenExchangeError(f"Unable to reach token endpoint: {type(e).__name__}") from e

    if not response.is_success:
        error_data = _json_or_empty(response)
        error_msg = error_data.get("error_description") or error_data.get("error") or "Token request failed"
        logger.warning(
            "Token endpoint rejected request",
            extra={"grant_type": grant_type, "status_code": response.status_code, "error": error_data.get("error")},
        )
        raise TokenExchangeError(f"Token request failed: {error_msg}")

    try:
        return TokenResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error("Token endpoint returned an invalid response", extra={"grant_type": grant_type})
        raise TokenExchangeError("Token endpoint returned an invalid response") from e


async def _post_token_request(
    client: httpx.AsyncClient,
    settings: Settings,
    payload: Dict[str, str],
) -> httpx.Response:
    return await client.post(
        settings.OIDC_TOKEN_ENDPOINT,
        data=payload,
        headers={"Accept": "application/json"},
        timeout=TOKEN_REQUEST_TIMEOUT_SECONDS,
    )


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    if not response.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# =============================================================================
# ID Token Inspection
# =============================================================================

def get_unverified_claims(token: str) -> Dict[str, Any]:
    """
    Decode a JWT payload without checking its signature.

    Returns an empty dict for anything that is not a well-formed JWT.
    """
    if not token:
        return {}
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except InvalidTokenError:
        logger.debug("Token is not a decodable JWT")
        return {}


def get_subject(id_token: str) -> Optional[str]:
    sub = get_unverified_claims(id_token).get("sub")
    return str(sub) if sub else None
