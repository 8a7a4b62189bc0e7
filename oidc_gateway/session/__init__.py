"""
Session Package

Session state and the two interchangeable stores:
- CookieSessionStorage: encrypted state travels in the cookie
- ExternalSessionStorage: state lives in a key/value service, the cookie
  carries a random ticket
"""

from .cookie_storage import CookieSessionStorage
from .external_storage import ExternalSessionStorage, SessionBackend
from .state import (
    SessionState,
    apply_token_refresh,
    create_session_state,
    generate_session_id,
    is_token_expired,
)
from .storage import SessionStorage, create_session_storage

__all__ = [
    "SessionState",
    "SessionStorage",
    "SessionBackend",
    "CookieSessionStorage",
    "ExternalSessionStorage",
    "create_session_storage",
    "create_session_state",
    "apply_token_refresh",
    "generate_session_id",
    "is_token_expired",
]
