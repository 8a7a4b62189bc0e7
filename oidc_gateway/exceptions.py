"""
Gateway Exceptions
==================

Error taxonomy shared by the cookie, crypto, state, redirect and session
layers. Every error raised by the gateway core derives from GatewayError so
the HTTP layer can turn it into an error page with a single handler.

Recoverable errors (cookie/session read failures) are translated into an
"unauthenticated" decision by the auth dependency. Redirect and state errors
end the current login/logout flow.
"""

from typing import Optional


class GatewayError(Exception):
    """Base exception for all gateway errors"""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


# =============================================================================
# Cookies
# =============================================================================

class CookieError(GatewayError):
    status_code = 401


class CookieNotFoundError(CookieError):
    """No cookie and no chunk-count cookie present for the requested name."""


class IncompleteCookieChunksError(CookieError):
    """A chunk-count cookie is present but the fragment set is unusable."""


class CookieTooLargeError(CookieError):
    """A value would need more cookie fragments than the configured maximum."""

    status_code = 500

    def __init__(self, chunk_count: int, max_chunks: int):
        super().__init__(
            f"Cookie value needs {chunk_count} chunks, maximum is {max_chunks}"
        )
        self.chunk_count = chunk_count
        self.max_chunks = max_chunks


# =============================================================================
# Crypto
# =============================================================================

class CryptoError(GatewayError):
    pass


class EncryptionError(CryptoError):
    pass


class DecryptionError(CryptoError):
    status_code = 401


# =============================================================================
# Login flow
# =============================================================================

class InvalidRedirectUriError(GatewayError):
    """The requested redirect target is not on the allow-list."""

    status_code = 400

    def __init__(self, redirect_uri: str):
        super().__init__(f"Redirect URI is not allowed: {redirect_uri}")
        self.redirect_uri = redirect_uri


class StateError(GatewayError):
    status_code = 400


class StateEncodeError(StateError):
    pass


class StateDecodeError(StateError):
    pass


class TokenExchangeError(GatewayError):
    """The provider token endpoint rejected the request or was unreachable."""

    status_code = 502


# =============================================================================
# Sessions
# =============================================================================

class SessionError(GatewayError):
    pass


class InvalidSessionTicketError(SessionError):
    """Empty, malformed or undecryptable ticket. Treated as "no session"."""

    status_code = 401


class SessionStorageError(SessionError):
    """The external session store failed. Not a missing session."""

    status_code = 503


__all__ = [
    "GatewayError",
    "CookieError",
    "CookieNotFoundError",
    "IncompleteCookieChunksError",
    "CookieTooLargeError",
    "CryptoError",
    "EncryptionError",
    "DecryptionError",
    "InvalidRedirectUriError",
    "StateError",
    "StateEncodeError",
    "StateDecodeError",
    "TokenExchangeError",
    "SessionError",
    "InvalidSessionTicketError",
    "SessionStorageError",
]
