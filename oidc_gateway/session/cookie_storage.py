"""
Client-side session store.

The whole SessionState is serialised to JSON and encrypted with the session
secret; the ciphertext is the ticket. Nothing is kept on the server, so any
gateway replica holding the same secret can resolve any ticket.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from oidc_gateway.exceptions import DecryptionError, InvalidSessionTicketError
from oidc_gateway.session.state import SessionState
from oidc_gateway.utils.crypto import decrypt, encrypt

logger = logging.getLogger(__name__)


class CookieSessionStorage:
    """SessionStorage that keeps the encrypted session in the ticket itself."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._secret = secret

    def store_session(self, session_id: str, state: SessionState) -> str:
        """
        Encrypt ``state`` into a ticket.

        ``session_id`` is only checked against ``state.id``; the ticket
        carries the id inside the encrypted payload.
        """
        if session_id != state.id:
            raise ValueError("session_id does not match state.id")
        return encrypt(state.model_dump_json(), self._secret)

    def try_get_session(self, ticket: Optional[str]) -> Optional[SessionState]:
        """
        Decrypt a ticket back into a SessionState.

        Returns:
            The session, or None when no ticket was supplied

        Raises:
            InvalidSessionTicketError: On an empty, tampered or otherwise
                undecodable ticket
        """
        if ticket is None:
            return None
        if not ticket:
            raise InvalidSessionTicketError("Session ticket is empty")

        try:
            payload = decrypt(ticket, self._secret)
        except DecryptionError as e:
            logger.warning(
                "Rejected session ticket",
                extra={"reason": e.message},
            )
            raise InvalidSessionTicketError("Session ticket could not be decrypted") from e

        try:
            return SessionState.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(
                "Session ticket has invalid content",
                extra={"error_count": e.error_count()},
            )
            raise InvalidSessionTicketError("Session ticket has invalid content") from e
