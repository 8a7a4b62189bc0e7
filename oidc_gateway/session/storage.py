"""
Session storage contract and startup-time selection of the implementation.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

from oidc_gateway.config import Settings
from oidc_gateway.session.cookie_storage import CookieSessionStorage
from oidc_gateway.session.external_storage import ExternalSessionStorage
from oidc_gateway.session.state import SessionState

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionStorage(Protocol):
    """
    Capability every session store provides.

    ``store_session`` returns the ticket written into the session cookie;
    ``try_get_session`` resolves it again. Both stores satisfy
    ``try_get_session(store_session(id, s)) == s``.

    ``try_get_session`` returns None when there is no session (absent ticket,
    unknown ticket) and raises InvalidSessionTicketError for an empty or
    corrupt ticket. Only SessionStorageError signals a real storage failure.
    """

    def store_session(self, session_id: str, state: SessionState) -> str:
        ...

    def try_get_session(self, ticket: Optional[str]) -> Optional[SessionState]:
        ...


def create_session_storage(settings: Settings, backend=None) -> SessionStorage:
    """
    Select the session store configured by SESSION_STORAGE.

    Args:
        settings: Application settings
        backend: SessionBackend used by the external store (required when
            SESSION_STORAGE is "external")

    Raises:
        ValueError: If the external store is selected without a backend
    """
    if settings.SESSION_STORAGE == "external":
        if backend is None:
            raise ValueError("SESSION_STORAGE=external requires a session backend")
        logger.info("Using external session storage")
        return ExternalSessionStorage(
            backend,
            ttl_seconds=settings.EXTERNAL_SESSION_TTL_SECONDS,
            timeout=settings.EXTERNAL_SESSION_TIMEOUT_SECONDS,
        )

    logger.info("Using cookie session storage")
    return CookieSessionStorage(settings.SESSION_SECRET)
