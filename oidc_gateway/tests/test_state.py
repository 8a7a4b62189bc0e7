"""
Tests for the OIDC state codec.
"""

import json

import pytest

from oidc_gateway.auth.state import (
    MAX_ENCODED_STATE_LENGTH,
    OidcAction,
    OidcState,
    decode_state,
    encode_state,
)
from oidc_gateway.exceptions import StateDecodeError, StateEncodeError
from oidc_gateway.utils.encoding import b64url_decode, b64url_encode


def test_encode_decode_login_state():
    state = OidcState(action=OidcAction.LOGIN.value, redirect_url="https://app.example.com/page?x=1")

    assert decode_state(encode_state(state)) == state


def test_encoded_state_is_url_safe():
    encoded = encode_state(OidcState(action="logout", redirect_url="/?a=b&c=d"))

    assert all(ch.isalnum() or ch in "-_" for ch in encoded)


def test_encoded_state_is_json_record():
    encoded = encode_state(OidcState(action="login", redirect_url="/"))

    assert json.loads(b64url_decode(encoded)) == {"action": "login", "redirect_url": "/"}


def test_nonce_travels_with_state():
    state = OidcState(action="login", redirect_url="/", nonce="n0nce-value")
    encoded = encode_state(state)

    assert json.loads(b64url_decode(encoded))["nonce"] == "n0nce-value"
    assert decode_state(encoded) == state


def test_encode_rejects_oversized_state():
    state = OidcState(action="login", redirect_url="/" + "a" * MAX_ENCODED_STATE_LENGTH)

    with pytest.raises(StateEncodeError):
        encode_state(state)


def test_control_characters_rejected():
    with pytest.raises(ValueError):
        OidcState(action="login", redirect_url="/\r\nSet-Cookie: x=y")


@pytest.mark.parametrize("token", [
    "",
    "!!!not-base64!!!",
    b64url_encode(b"not json"),
    b64url_encode(b'{"action": "login"}'),
    b64url_encode(b'{"action": "login", "redirect_url": "/", "extra": 1}'),
    b64url_encode(b'{"action": 1, "redirect_url": "/"}'),
    encode_state(OidcState(action="login", redirect_url="/")) + "\n",
    "a" * (MAX_ENCODED_STATE_LENGTH + 4),
])
def test_decode_rejects_malformed_state(token):
    with pytest.raises(StateDecodeError):
        decode_state(token)
