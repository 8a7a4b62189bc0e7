"""Unpadded URL-safe base64 helpers shared by the crypto and state codecs."""

import base64
import binascii
import re

_B64URL_PATTERN = re.compile(r"[A-Za-z0-9_-]*")


def b64url_encode(data: bytes) -> str:
    """Encode bytes as URL-safe base64 without '=' padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    """
    Decode unpadded URL-safe base64.

    Raises:
        ValueError: If the value contains characters outside the URL-safe
            alphabet or has an impossible length.
    """
    if not _B64URL_PATTERN.fullmatch(value) or len(value) % 4 == 1:
        raise ValueError("Invalid URL-safe base64 input")

    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid URL-safe base64 input: {e}") from e
