"""
Shared application state and the FastAPI dependencies that expose it.

Everything in AppState is created once at startup and only read afterwards,
so concurrent requests share it without locking.
"""

from typing import Optional

import httpx
from fastapi import HTTPException, Request, status

from oidc_gateway.config import Settings
from oidc_gateway.session import SessionStorage


class AppState:
    """
    Application state container.

    Holds settings, the active session store and the HTTP clients.
    """

    def __init__(self, settings: Settings, session_storage: SessionStorage):
        self.settings = settings
        self.session_storage = session_storage
        self.upstream_client: Optional[httpx.AsyncClient] = None
        self.provider_client: Optional[httpx.AsyncClient] = None


def get_app_state(request: Request) -> AppState:
    if not hasattr(request.app.state, "app_state"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway not initialized",
        )
    return request.app.state.app_state


def get_upstream_client(request: Request) -> httpx.AsyncClient:
    """
    Dependency to get the upstream HTTP client from app state.

    Raises:
        HTTPException: 503 before startup has created the client
    """
    client = get_app_state(request).upstream_client
    if not client:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream client not available",
        )
    return client
