"""
Symmetric encryption for client-side session payloads.

Payloads are protected with AES-256-GCM, so tampering surfaces as a
DecryptionError instead of silently corrupted plaintext. Operators supply a
secret of any length; the 32-byte key is its SHA-256 digest.

Wire format (unpadded URL-safe base64):
    nonce (12 bytes) || ciphertext || tag (16 bytes)
"""

import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from oidc_gateway.exceptions import DecryptionError, EncryptionError
from oidc_gateway.utils.encoding import b64url_decode, b64url_encode

logger = logging.getLogger(__name__)

NONCE_LENGTH = 12
TAG_LENGTH = 16


def derive_key(secret: str) -> bytes:
    """Derive the fixed-size AES key from an operator-supplied secret."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(plaintext: str, secret: str) -> str:
    """
    Encrypt a string with a key derived from ``secret``.

    Args:
        plaintext: Value to protect (may be empty)
        secret: Non-empty key material

    Returns:
        URL-safe base64 ciphertext, safe to place in a cookie

    Raises:
        EncryptionError: If the secret is empty or encryption fails
    """
    if not secret:
        raise EncryptionError("Encryption secret must not be empty")

    try:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = AESGCM(derive_key(secret)).encrypt(
            nonce, plaintext.encode("utf-8"), None
        )
    except Exception as e:
        logger.error(f"Encryption failed: {type(e).__name__}")
        raise EncryptionError(f"Failed to encrypt payload: {e}") from e

    return b64url_encode(nonce + sealed)


def decrypt(ciphertext: str, secret: str) -> str:
    """
    Decrypt a value produced by :func:`encrypt`.

    Raises:
        DecryptionError: On an empty, malformed or tampered ciphertext, a
            wrong secret, or a payload that is not valid UTF-8
    """
    if not secret:
        raise DecryptionError("Decryption secret must not be empty")
    if not ciphertext:
        raise DecryptionError("Ciphertext is empty")

    try:
        raw = b64url_decode(ciphertext)
    except ValueError as e:
        raise DecryptionError("Ciphertext is not valid base64") from e

    if len(raw) < NONCE_LENGTH + TAG_LENGTH:
        raise DecryptionError("Ciphertext is too short")

    nonce, sealed = raw[:NONCE_LENGTH], raw[NONCE_LENGTH:]
    try:
        plaintext = AESGCM(derive_key(secret)).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        raise DecryptionError("Ciphertext failed authentication") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted payload is not valid UTF-8") from e
