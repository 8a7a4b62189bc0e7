"""
OIDC Gateway

Authenticating reverse proxy: browser sessions are established with an
OpenID Connect provider and kept in encrypted, chunked cookies; requests
are forwarded to the upstream service with the session's access token.
"""

__version__ = "1.0.0"
