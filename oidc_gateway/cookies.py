"""
Chunked Cookie Protocol
=======================

Browsers and proxies reject cookies larger than ~4 KB, while an encrypted
session (three tokens plus metadata) is routinely bigger. Values that do not
fit into one cookie are split across a family of cookies:

    <name>.Chunks = N
    <name>.1 ... <name>.N   (3072 characters each, the last one shorter)

Reading prefers a plain ``<name>`` cookie. Otherwise the chunk count is read
and fragments 1..N are joined strictly by index; cookie header order is
irrelevant. A missing fragment fails the read instead of returning a partial
value.

Set-Cookie headers are rendered here rather than through
``Response.set_cookie`` so the attribute order is fixed and
``SameSite=default`` can omit the attribute entirely.
"""

import logging
from typing import List, Optional

from starlette.requests import HTTPConnection
from starlette.responses import Response

from oidc_gateway.config import DEFAULT_COOKIE_CHUNK_LIMIT, SessionCookieConfig
from oidc_gateway.exceptions import (
    CookieNotFoundError,
    CookieTooLargeError,
    IncompleteCookieChunksError,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 3072
CHUNK_COUNT_SUFFIX = "Chunks"

_SAME_SITE_ATTRIBUTES = {
    "none": "None",
    "lax": "Lax",
    "strict": "Strict",
}


# =============================================================================
# Cookie Names
# =============================================================================

def make_cookie_name(prefix: str, name: str) -> str:
    return f"{prefix}.{name}"


def get_session_cookie_name(prefix: str) -> str:
    return make_cookie_name(prefix, "Session")


def get_code_verifier_cookie_name(prefix: str) -> str:
    return make_cookie_name(prefix, "CodeVerifier")


def get_login_nonce_cookie_name(prefix: str) -> str:
    return make_cookie_name(prefix, "LoginNonce")


def _chunk_count_cookie_name(cookie_name: str) -> str:
    return f"{cookie_name}.{CHUNK_COUNT_SUFFIX}"


def _chunk_cookie_name(cookie_name: str, index: int) -> str:
    return f"{cookie_name}.{index}"


# =============================================================================
# Set-Cookie Rendering
# =============================================================================

def parse_cookie_same_site(value: Optional[str]) -> Optional[str]:
    """
    Map a configured SameSite mode to its attribute value.

    Returns None for "default" and for anything unrecognised, meaning the
    attribute is omitted.
    """
    if not value:
        return None
    return _SAME_SITE_ATTRIBUTES.get(value.strip().lower())


def render_set_cookie(
    name: str,
    value: str,
    config: SessionCookieConfig,
    expire: bool = False,
) -> str:
    """
    Render one Set-Cookie header value.

    Attribute order: Path, Domain, HttpOnly, Secure, SameSite, Max-Age.

    Args:
        name: Cookie name
        value: Cookie value (must already be cookie-safe)
        config: Shared cookie attributes
        expire: Emit ``Max-Age=0`` so the browser drops the cookie

    Returns:
        Header value, e.g. ``"A.Session=x; Path=/; HttpOnly; Secure"``
    """
    parts = [f"{name}={value}", f"Path={config.path or '/'}"]

    if config.domain:
        parts.append(f"Domain={config.domain}")
    if config.http_only:
        parts.append("HttpOnly")
    if config.secure:
        parts.append("Secure")

    same_site = parse_cookie_same_site(config.same_site)
    if same_site:
        parts.append(f"SameSite={same_site}")

    if expire:
        parts.append("Max-Age=0")
    elif config.max_age > 0:
        parts.append(f"Max-Age={config.max_age}")

    return "; ".join(parts)


def _append_cookie(response: Response, header: str) -> None:
    response.headers.append("set-cookie", header)


# =============================================================================
# Write Path
# =============================================================================

def chunk_string(value: str, size: int) -> List[str]:
    """Split ``value`` into consecutive slices of at most ``size`` characters."""
    return [value[i:i + size] for i in range(0, len(value), size)]


def set_chunked_cookies(
    config: SessionCookieConfig,
    response: Response,
    cookie_name: str,
    value: str,
) -> List[str]:
    """
    Write ``value`` as a single cookie or as a chunked cookie family.

    Returns:
        Names of the cookies written

    Raises:
        CookieTooLargeError: If the value needs more than ``config.max_chunks``
            fragments. Nothing is written in that case.
    """
    if len(value) <= CHUNK_SIZE:
        _append_cookie(response, render_set_cookie(cookie_name, value, config))
        return [cookie_name]

    chunks = chunk_string(value, CHUNK_SIZE)
    if len(chunks) > config.max_chunks:
        logger.error(
            "Cookie value exceeds maximum chunk count",
            extra={
                "cookie_name": cookie_name,
                "chunk_count": len(chunks),
                "max_chunks": config.max_chunks,
            },
        )
        raise CookieTooLargeError(len(chunks), config.max_chunks)

    _append_cookie(
        response,
        render_set_cookie(_chunk_count_cookie_name(cookie_name), str(len(chunks)), config),
    )
    for index, chunk in enumerate(chunks, start=1):
        _append_cookie(
            response,
            render_set_cookie(_chunk_cookie_name(cookie_name, index), chunk, config),
        )

    logger.debug(
        "Wrote chunked cookie",
        extra={"cookie_name": cookie_name, "chunk_count": len(chunks)},
    )

    return [_chunk_count_cookie_name(cookie_name)] + [
        _chunk_cookie_name(cookie_name, index) for index in range(1, len(chunks) + 1)
    ]


def clear_chunked_cookies(
    config: SessionCookieConfig,
    request: HTTPConnection,
    response: Response,
    cookie_name: str,
) -> None:
    """
    Expire every cookie of the ``cookie_name`` family the request carries.

    The base name and the chunk-count cookie are always expired so logout
    works even when the browser did not send them (e.g. path mismatch on the
    current request).
    """
    for name in _family_names(request, cookie_name):
        _append_cookie(response, render_set_cookie(name, "", config, expire=True))


def replace_chunked_cookies(
    config: SessionCookieConfig,
    request: HTTPConnection,
    response: Response,
    cookie_name: str,
    value: str,
) -> None:
    """
    Write ``value`` and expire whatever is left of the previous family.

    A session that shrinks from four chunks to one would otherwise leave
    ``.Chunks`` and ``.2``-``.4`` behind in the browser.
    """
    written = set_chunked_cookies(config, response, cookie_name, value)
    for name in _family_names(request, cookie_name):
        if name not in written:
            _append_cookie(response, render_set_cookie(name, "", config, expire=True))


def _family_names(request: HTTPConnection, cookie_name: str) -> List[str]:
    names = [cookie_name, _chunk_count_cookie_name(cookie_name)]
    prefix = f"{cookie_name}."
    for present in request.cookies:
        if present.startswith(prefix) and present not in names:
            names.append(present)
    return names


# =============================================================================
# Read Path
# =============================================================================

def read_chunked_cookie(
    request: HTTPConnection,
    cookie_name: str,
    max_chunks: int = DEFAULT_COOKIE_CHUNK_LIMIT,
) -> str:
    """
    Read a cookie written by :func:`set_chunked_cookies`.

    Args:
        request: Incoming request (only ``request.cookies`` is used)
        cookie_name: Base cookie name
        max_chunks: Largest chunk count accepted

    Returns:
        The reassembled value

    Raises:
        CookieNotFoundError: Neither ``<name>`` nor ``<name>.Chunks`` is present
        IncompleteCookieChunksError: The chunk count is invalid or a fragment
            in 1..N is missing
    """
    cookies = request.cookies

    value = cookies.get(cookie_name)
    if value is not None:
        return value

    raw_count = cookies.get(_chunk_count_cookie_name(cookie_name))
    if raw_count is None:
        logger.debug("Cookie not present", extra={"cookie_name": cookie_name})
        raise CookieNotFoundError(f"Cookie '{cookie_name}' not found")

    if not (raw_count.isascii() and raw_count.isdigit()):
        logger.warning(
            "Rejected chunked cookie with invalid chunk count",
            extra={"cookie_name": cookie_name},
        )
        raise IncompleteCookieChunksError(
            f"Cookie '{cookie_name}' has an invalid chunk count"
        )

    chunk_count = int(raw_count)
    if chunk_count < 1 or chunk_count > max_chunks:
        logger.warning(
            "Rejected chunked cookie with out-of-range chunk count",
            extra={"cookie_name": cookie_name, "chunk_count": chunk_count},
        )
        raise IncompleteCookieChunksError(
            f"Cookie '{cookie_name}' chunk count {chunk_count} is outside 1..{max_chunks}"
        )

    chunks = []
    for index in range(1, chunk_count + 1):
        chunk = cookies.get(_chunk_cookie_name(cookie_name, index))
        if chunk is None:
            logger.warning(
                "Chunked cookie is incomplete",
                extra={
                    "cookie_name": cookie_name,
                    "chunk_count": chunk_count,
                    "missing_index": index,
                },
            )
            raise IncompleteCookieChunksError(
                f"Cookie '{cookie_name}' is missing chunk {index} of {chunk_count}"
            )
        chunks.append(chunk)

    return "".join(chunks)
