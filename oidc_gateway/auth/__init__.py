"""
Authentication Package

This package handles the OpenID Connect side of the gateway.

Key responsibilities:
- OIDC login flow initiation and callback handling (PKCE, code exchange)
- State encoding for the provider round trip
- Logout with provider end-session
- Turning the session cookie into an authentication decision, refreshing
  expired access tokens

Modules:
- routes: Public endpoints (/oidc/login, /oidc/callback, /oidc/logout)
- state: OIDC state codec
- tokens: Token endpoint client and PKCE helpers
- dependencies: Session resolution for protected routes

The authentication flow:
1. An unauthenticated browser request is redirected to /oidc/login
2. The user authenticates with the identity provider
3. The gateway receives the code via /oidc/callback and exchanges it
4. The session is stored and its ticket written as a (chunked) cookie
5. Later requests are proxied upstream with the session's access token
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
