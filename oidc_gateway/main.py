"""
OIDC Gateway - FastAPI Application Entry Point

This module initializes and configures the FastAPI application for the
gateway. The gateway sits in front of an upstream service and:
- Authenticates browser users against an OpenID Connect provider
- Keeps the session in encrypted, chunked cookies (or an external store)
- Forwards authenticated requests upstream with the user's access token

Architecture:
    Browser → OIDC Gateway → Upstream service
                  ↓
           Identity provider (login, token, end-session)

Key Components:
    - Auth Router: /oidc/login, /oidc/callback, /oidc/logout
    - Proxy Router: every other path, session required
    - Health Check: /health

Environment Variables Required:
    - OIDC_CLIENT_ID: Client ID registered with the provider
    - OIDC_AUTHORIZATION_ENDPOINT / OIDC_TOKEN_ENDPOINT: Provider endpoints
    - SESSION_SECRET: Secret for session cookie encryption (32+ characters)
    - UPSTREAM_URL: Protected upstream service

Usage:
    # Development
    uvicorn --factory oidc_gateway.main:create_app --reload --port 8080

    # Production
    uvicorn --factory oidc_gateway.main:create_app --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from oidc_gateway.auth import auth_router
from oidc_gateway.config import Settings, get_settings, validate_configuration
from oidc_gateway.dependencies import AppState
from oidc_gateway.error_pages import ErrorPageData, write_error
from oidc_gateway.exceptions import GatewayError
from oidc_gateway.models import HealthResponse
from oidc_gateway.proxy import proxy_router
from oidc_gateway.session import SessionBackend, create_session_storage

SERVICE_NAME = "oidc-gateway"
SERVICE_VERSION = "1.0.0"


# Configure structured logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Validate security-relevant configuration
        - Create the upstream and provider HTTP clients

    Shutdown tasks:
        - Close the HTTP clients created here
    """
    app_state: AppState = app.state.app_state
    settings = app_state.settings
    logger = logging.getLogger("oidc_gateway.main")

    status = validate_configuration(settings)
    for warning in status["warnings"]:
        logger.warning(warning)
    for error in status["errors"]:
        logger.error(error)

    owned_clients = []
    if app_state.upstream_client is None:
        app_state.upstream_client = httpx.AsyncClient(
            base_url=settings.upstream_url_str,
            timeout=httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS, connect=10.0),
            follow_redirects=False,
        )
        owned_clients.append(app_state.upstream_client)
    if app_state.provider_client is None:
        app_state.provider_client = httpx.AsyncClient()
        owned_clients.append(app_state.provider_client)

    logger.info(
        "OIDC gateway started",
        extra={
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "upstream_url": settings.upstream_url_str,
            "session_storage": settings.SESSION_STORAGE,
        }
    )

    yield

    # Shutdown
    logger.info("Shutting down OIDC gateway")
    for client in owned_clients:
        await client.aclose()
    app_state.upstream_client = None
    app_state.provider_client = None
    logger.info("OIDC gateway shutdown complete")


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    session_backend: Optional[SessionBackend] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings to use; loaded from the environment when omitted
        session_backend: Key/value backend for SESSION_STORAGE=external

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="OIDC Gateway",
        description="OpenID Connect authentication gateway for upstream services",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.state.app_state = AppState(
        settings=settings,
        session_storage=create_session_storage(settings, backend=session_backend),
    )

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """
        Health check endpoint.

        Returns service status and basic metadata.
        """
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
            checks={"session_storage": settings.SESSION_STORAGE},
        )

    app.include_router(auth_router)
    # Catch-all, must stay last
    app.include_router(proxy_router, tags=["Upstream Proxy"])

    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(request: Request, exc: GatewayError):
        """
        Render gateway errors that escaped a route as an error page.
        """
        logger = logging.getLogger("oidc_gateway.main")
        logger.warning(
            "Gateway error",
            extra={
                "path": request.url.path,
                "exception_type": type(exc).__name__,
                "status_code": exc.status_code,
            },
        )
        return write_error(
            request,
            ErrorPageData(
                title=type(exc).__name__,
                description=exc.message,
                status_code=exc.status_code,
            ),
            redirect_to=settings.ERROR_PAGE_REDIRECT_URL,
            template_path=settings.ERROR_PAGE_TEMPLATE_PATH,
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("oidc_gateway.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None
            }
        )

    return app


def run() -> None:
    """
    Console entry point (``oidc-gateway``), also used by
    ``python -m oidc_gateway.main``.
    """
    settings = get_settings()

    uvicorn.run(
        "oidc_gateway.main:create_app",
        factory=True,
        host=settings.GATEWAY_HOST,
        port=settings.GATEWAY_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
