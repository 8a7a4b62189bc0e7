"""
OIDC State Codec
================

The ``state`` parameter carries what the gateway must remember across the
round trip to the identity provider: which flow is being continued and where
the browser goes afterwards. The record is serialised as compact JSON and
encoded with unpadded URL-safe base64 so it can be placed in a query string
without escaping.
"""

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from oidc_gateway.exceptions import StateDecodeError, StateEncodeError
from oidc_gateway.utils.encoding import b64url_decode, b64url_encode

logger = logging.getLogger(__name__)

MAX_ENCODED_STATE_LENGTH = 2048


class OidcAction(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"


class OidcState(BaseModel):
    """Transient record threaded through the provider redirect."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: str = Field(..., description="Flow being continued (login or logout)")
    redirect_url: str = Field(..., description="Post-flow destination")
    nonce: Optional[str] = Field(None, description="Binds a login to the browser that started it")

    @field_validator("action", "redirect_url", "nonce")
    @classmethod
    def reject_control_characters(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in v):
            raise ValueError("Control characters are not allowed")
        return v


def encode_state(state: OidcState) -> str:
    """
    Encode an OidcState for the provider's ``state`` parameter.

    Raises:
        StateEncodeError: If the encoded form exceeds MAX_ENCODED_STATE_LENGTH
    """
    encoded = b64url_encode(state.model_dump_json(exclude_none=True).encode("utf-8"))

    if len(encoded) > MAX_ENCODED_STATE_LENGTH:
        raise StateEncodeError(
            f"Encoded state is {len(encoded)} characters, "
            f"maximum is {MAX_ENCODED_STATE_LENGTH}"
        )

    return encoded


def decode_state(token: str) -> OidcState:
    """
    Decode a value produced by :func:`encode_state`.

    Raises:
        StateDecodeError: On an empty token, invalid base64, or content that
            is not a valid OidcState record
    """
    if not token:
        raise StateDecodeError("State parameter is empty")

    if len(token) > MAX_ENCODED_STATE_LENGTH:
        raise StateDecodeError("State parameter is too long")

    try:
        raw = b64url_decode(token)
    except ValueError as e:
        logger.warning("State parameter is not valid base64")
        raise StateDecodeError("State parameter is not valid base64") from e

    try:
        return OidcState.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(
            "State parameter has invalid content",
            extra={"error_count": e.error_count()},
        )
        raise StateDecodeError("State parameter has invalid content") from e
