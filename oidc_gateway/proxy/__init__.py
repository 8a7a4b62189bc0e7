"""
Proxy Package
=============

Forwards authenticated requests to the protected upstream service.

Main Components:
----------------
- routes.py: catch-all FastAPI router

Security Features:
------------------
- Session enforcement (login redirect for browsers, 401 otherwise)
- Hop-by-hop header stripping
- Gateway cookies never reach the upstream
- Access token forwarded as a Bearer token

Usage:
------
    from oidc_gateway.proxy import proxy_router
    app.include_router(proxy_router)  # include last, it matches every path
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
