"""
Server-side session store.

Session state lives in an external key/value service (Redis, Memcached, a
database table...). The cookie only carries a random ticket that names the
record. The service is reached through the small SessionBackend protocol so
the gateway does not depend on any particular client library.

Every backend call is bounded by a timeout. A failing or slow backend is a
SessionStorageError and is never retried here; callers decide what a
storage outage means for the request.
"""

import logging
import re
import secrets
from typing import Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from oidc_gateway.exceptions import InvalidSessionTicketError, SessionStorageError
from oidc_gateway.session.state import SessionState

logger = logging.getLogger(__name__)

KEY_PREFIX = "session:"
TICKET_BYTES = 32

_TICKET_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


@runtime_checkable
class SessionBackend(Protocol):
    """Minimal key/value contract the external store needs."""

    def get(self, key: str, timeout: float) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: int, timeout: float) -> None:
        ...


class ExternalSessionStorage:
    """
    SessionStorage backed by an external key/value service.

    Args:
        backend: Key/value client implementing SessionBackend
        ttl_seconds: Lifetime of stored records
        timeout: Default per-call timeout in seconds
    """

    def __init__(self, backend: SessionBackend, ttl_seconds: int = 3600, timeout: float = 5.0):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._backend = backend
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout

    def _key(self, ticket: str) -> str:
        return f"{KEY_PREFIX}{ticket}"

    def store_session(
        self,
        session_id: str,
        state: SessionState,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Persist ``state`` under a fresh random ticket.

        Raises:
            SessionStorageError: If the backend fails or times out
        """
        if session_id != state.id:
            raise ValueError("session_id does not match state.id")

        ticket = secrets.token_urlsafe(TICKET_BYTES)
        try:
            self._backend.set(
                self._key(ticket),
                state.model_dump_json(),
                ttl_seconds=self._ttl_seconds,
                timeout=timeout or self._timeout,
            )
        except Exception as e:
            logger.error(
                "Session backend write failed",
                extra={"session_id": session_id, "error_type": type(e).__name__},
            )
            raise SessionStorageError(f"Failed to store session: {type(e).__name__}") from e

        return ticket

    def try_get_session(
        self,
        ticket: Optional[str],
        timeout: Optional[float] = None,
    ) -> Optional[SessionState]:
        """
        Load the session a ticket refers to.

        Returns:
            The session; None when no ticket was supplied or the backend has
            no record for it (expired or never issued)

        Raises:
            InvalidSessionTicketError: If the ticket is empty or malformed
            SessionStorageError: If the backend fails, times out, or returns
                a record that is not a valid session
        """
        if ticket is None:
            return None
        if not ticket:
            raise InvalidSessionTicketError("Session ticket is empty")
        if not _TICKET_PATTERN.match(ticket):
            logger.warning("Rejected malformed session ticket")
            raise InvalidSessionTicketError("Session ticket is malformed")

        try:
            payload = self._backend.get(self._key(ticket), timeout=timeout or self._timeout)
        except Exception as e:
            logger.error(
                "Session backend read failed",
                extra={"error_type": type(e).__name__},
            )
            raise SessionStorageError(f"Failed to load session: {type(e).__name__}") from e

        if payload is None:
            logger.debug("Session ticket not found in backend")
            return None

        try:
            return SessionState.model_validate_json(payload)
        except ValidationError as e:
            logger.error(
                "Session backend returned an invalid record",
                extra={"error_count": e.error_count()},
            )
            raise SessionStorageError("Stored session record is corrupt") from e
