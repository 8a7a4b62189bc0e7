"""
Configuration module for the OIDC Gateway.

This module uses Pydantic Settings to load and validate environment variables
for the OIDC provider, session cookies, redirect allow-lists, upstream
forwarding and logging.

Settings are frozen after construction. The gateway core never reads
configuration from globals; values are passed explicitly into each call.

Environment variables are loaded from .env file or system environment.
"""

import os
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from oidc_gateway.utils.urls import parse_url

DEFAULT_COOKIE_CHUNK_LIMIT = 20

_SAME_SITE_MODES = ("default", "none", "lax", "strict")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SessionCookieConfig(BaseModel):
    """
    Attributes applied to every session cookie (and each of its chunks).

    Immutable so one instance can be shared by concurrent requests.
    """

    model_config = ConfigDict(frozen=True)

    path: str = "/"
    domain: str = ""
    secure: bool = True
    http_only: bool = True
    same_site: str = "default"
    max_age: int = Field(default=0, ge=0)
    max_chunks: int = Field(default=DEFAULT_COOKIE_CHUNK_LIMIT, ge=1)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    # =========================================================================
    # OIDC Provider
    # =========================================================================

    OIDC_CLIENT_ID: str = Field(
        ...,
        description="Client ID registered with the identity provider",
        min_length=1,
    )

    OIDC_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Client secret (optional for public clients using PKCE)",
    )

    OIDC_AUTHORIZATION_ENDPOINT: str = Field(
        ...,
        description="Provider authorization endpoint URL",
    )

    OIDC_TOKEN_ENDPOINT: str = Field(
        ...,
        description="Provider token endpoint URL",
    )

    OIDC_END_SESSION_ENDPOINT: Optional[str] = Field(
        None,
        description="Provider end-session (logout) endpoint URL",
    )

    OIDC_SCOPES: str = Field(
        default="openid profile email",
        description="Space-separated scopes requested at login",
    )

    OIDC_CALLBACK_URI: str = Field(
        default="/oidc/callback",
        description="Callback URI; relative values are resolved against the request host",
    )

    OIDC_USE_PKCE: bool = Field(
        default=True,
        description="Send an S256 PKCE challenge with the authorization request",
    )

    # =========================================================================
    # Session Cookies
    # =========================================================================

    SESSION_SECRET: str = Field(
        ...,
        description="Secret used to encrypt session cookies",
        min_length=32,
    )

    COOKIE_NAME_PREFIX: str = Field(
        default="OidcGateway",
        description="Prefix for every cookie written by the gateway",
        min_length=1,
    )

    SESSION_COOKIE_PATH: str = Field(default="/")
    SESSION_COOKIE_DOMAIN: str = Field(default="")
    SESSION_COOKIE_SECURE: bool = Field(default=True)
    SESSION_COOKIE_HTTP_ONLY: bool = Field(default=True)
    SESSION_COOKIE_SAME_SITE: str = Field(
        default="default",
        description="default, none, lax or strict ('default' omits the attribute)",
    )
    SESSION_COOKIE_MAX_AGE: int = Field(
        default=0,
        description="Cookie Max-Age in seconds (0 = browser session cookie)",
        ge=0,
    )
    SESSION_COOKIE_MAX_CHUNKS: int = Field(
        default=DEFAULT_COOKIE_CHUNK_LIMIT,
        description="Maximum number of chunk cookies per value",
        ge=1,
        le=50,
    )

    SESSION_STORAGE: Literal["cookie", "external"] = Field(
        default="cookie",
        description="Where session state lives: in the cookie or in an external store",
    )

    EXTERNAL_SESSION_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    EXTERNAL_SESSION_TTL_SECONDS: int = Field(default=3600, ge=60)

    # =========================================================================
    # Redirect Allow-Lists
    # =========================================================================

    POST_LOGIN_REDIRECT_URIS: str = Field(
        default="/",
        description="Comma-separated allow-list of post-login redirect targets",
    )

    POST_LOGOUT_REDIRECT_URIS: str = Field(
        default="/",
        description="Comma-separated allow-list of post-logout redirect targets",
    )

    # =========================================================================
    # Upstream Service
    # =========================================================================

    UPSTREAM_URL: str = Field(
        ...,
        description="Base URL of the protected upstream service",
    )

    FORWARD_ACCESS_TOKEN: bool = Field(
        default=True,
        description="Send the session access token upstream as a Bearer token",
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)

    # =========================================================================
    # Error Pages / Server
    # =========================================================================

    ERROR_PAGE_REDIRECT_URL: Optional[str] = Field(
        None,
        description="Redirect failures here instead of rendering an error page",
    )

    ERROR_PAGE_TEMPLATE_PATH: Optional[str] = Field(
        None,
        description="Jinja2 template file used for HTML error pages",
    )

    GATEWAY_HOST: str = Field(default="0.0.0.0")
    GATEWAY_PORT: int = Field(default=8080, ge=1, le=65535)
    LOG_LEVEL: str = Field(default="INFO")

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def session_cookie(self) -> SessionCookieConfig:
        return SessionCookieConfig(
            path=self.SESSION_COOKIE_PATH,
            domain=self.SESSION_COOKIE_DOMAIN,
            secure=self.SESSION_COOKIE_SECURE,
            http_only=self.SESSION_COOKIE_HTTP_ONLY,
            same_site=self.SESSION_COOKIE_SAME_SITE,
            max_age=self.SESSION_COOKIE_MAX_AGE,
            max_chunks=self.SESSION_COOKIE_MAX_CHUNKS,
        )

    @property
    def post_login_redirect_uris_list(self) -> List[str]:
        return _split_list(self.POST_LOGIN_REDIRECT_URIS)

    @property
    def post_logout_redirect_uris_list(self) -> List[str]:
        return _split_list(self.POST_LOGOUT_REDIRECT_URIS)

    @property
    def upstream_url_str(self) -> str:
        """Upstream URL without trailing slash (for HTTP client usage)."""
        return self.UPSTREAM_URL.rstrip("/")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator(
        "OIDC_AUTHORIZATION_ENDPOINT",
        "OIDC_TOKEN_ENDPOINT",
        "OIDC_END_SESSION_ENDPOINT",
        "UPSTREAM_URL",
    )
    @classmethod
    def validate_absolute_url(cls, v: Optional[str]) -> Optional[str]:
        """
        Validate that endpoint URLs are absolute http(s) URLs.

        A missing scheme defaults to https.
        """
        if v is None:
            return v
        return parse_url(v.strip()).geturl()

    @field_validator("SESSION_COOKIE_SAME_SITE")
    @classmethod
    def validate_same_site(cls, v: str) -> str:
        mode = v.strip().lower()
        if mode not in _SAME_SITE_MODES:
            raise ValueError(
                f"SESSION_COOKIE_SAME_SITE must be one of {list(_SAME_SITE_MODES)}, got: {v}"
            )
        return mode

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {list(_LOG_LEVELS)}, got: {v}")
        return level


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so the environment is read once per process.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate security-relevant settings and return a status report.

    Called during application startup; problems are logged, not raised.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    if not settings.post_login_redirect_uris_list:
        errors.append("POST_LOGIN_REDIRECT_URIS is empty; no login redirect can succeed")

    if "*" in settings.post_login_redirect_uris_list:
        warnings.append("POST_LOGIN_REDIRECT_URIS contains '*'; redirect validation is disabled")

    if "*" in settings.post_logout_redirect_uris_list:
        warnings.append("POST_LOGOUT_REDIRECT_URIS contains '*'; redirect validation is disabled")

    if not settings.SESSION_COOKIE_SECURE:
        warnings.append("SESSION_COOKIE_SECURE is disabled; session cookies are sent over plain HTTP")

    if settings.SESSION_COOKIE_SAME_SITE == "none" and not settings.SESSION_COOKIE_SECURE:
        errors.append("SameSite=None requires SESSION_COOKIE_SECURE")

    if not settings.OIDC_CLIENT_SECRET and not settings.OIDC_USE_PKCE:
        warnings.append("Neither OIDC_CLIENT_SECRET nor PKCE is configured")

    if settings.ERROR_PAGE_TEMPLATE_PATH and not os.path.isfile(settings.ERROR_PAGE_TEMPLATE_PATH):
        warnings.append(
            f"ERROR_PAGE_TEMPLATE_PATH {settings.ERROR_PAGE_TEMPLATE_PATH} does not exist; "
            "the built-in error page is used"
        )

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "session_storage": settings.SESSION_STORAGE,
    }
