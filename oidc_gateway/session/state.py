"""
Session state model and token-refresh helpers.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from oidc_gateway.models import TokenResponse


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(BaseModel):
    """
    Authenticated session record.

    Frozen: the id never changes after login, and a token refresh produces a
    new record via :func:`apply_token_refresh`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Opaque unique session identifier")
    refreshed_at: datetime = Field(default_factory=_utcnow, description="Time of the last token refresh")
    access_token: str = Field(default="")
    id_token: str = Field(default="")
    refresh_token: str = Field(default="")
    is_authorized: bool = Field(default=False)
    token_expires_in: int = Field(default=0, ge=0, description="Seconds the access token was valid for at refresh time")


def generate_session_id() -> str:
    """Generate a new random session id (UUID4 string)."""
    return str(uuid.uuid4())


def create_session_state(
    token_response: TokenResponse,
    now: Optional[datetime] = None,
) -> SessionState:
    """Build the session for a successful authorization-code exchange."""
    return SessionState(
        id=generate_session_id(),
        refreshed_at=now or _utcnow(),
        access_token=token_response.access_token,
        id_token=token_response.id_token or "",
        refresh_token=token_response.refresh_token or "",
        is_authorized=True,
        token_expires_in=token_response.expires_in or 0,
    )


def is_token_expired(
    state: SessionState,
    now: Optional[datetime] = None,
    leeway_seconds: int = 10,
) -> bool:
    """
    Check whether the session's access token has expired.

    A session without a known lifetime (``token_expires_in == 0``) never
    expires here; the upstream decides.
    """
    if state.token_expires_in <= 0:
        return False

    now = now or _utcnow()
    expires_at = state.refreshed_at + timedelta(seconds=state.token_expires_in)
    return now + timedelta(seconds=leeway_seconds) >= expires_at


def apply_token_refresh(
    state: SessionState,
    token_response: TokenResponse,
    now: Optional[datetime] = None,
) -> SessionState:
    """
    Return a copy of ``state`` updated from a refresh-token grant.

    The id is kept; providers that do not rotate refresh tokens or omit the
    ID token leave the previous values in place.
    """
    return state.model_copy(
        update={
            "refreshed_at": now or _utcnow(),
            "access_token": token_response.access_token,
            "id_token": token_response.id_token or state.id_token,
            "refresh_token": token_response.refresh_token or state.refresh_token,
            "token_expires_in": token_response.expires_in or 0,
        }
    )
