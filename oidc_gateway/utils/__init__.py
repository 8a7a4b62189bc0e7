"""
Utilities Package

Stateless helpers used across the gateway:
- crypto: authenticated encryption of cookie payloads
- encoding: unpadded URL-safe base64
- urls: redirect URI allow-list matching, URL parsing, Accept negotiation
"""

from .crypto import decrypt, encrypt
from .urls import validate_redirect_uri

__all__ = [
    "encrypt",
    "decrypt",
    "validate_redirect_uri",
]
