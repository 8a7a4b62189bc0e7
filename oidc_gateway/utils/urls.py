"""
URL utilities for redirect validation and request inspection.

This module handles:
- Matching post-login/post-logout redirect targets against an allow-list
- Recognising origin-relative redirect targets
- Parsing configured provider/upstream URLs
- Reconstructing the public host of a request behind a reverse proxy
- Accept header negotiation (HTML vs. machine clients)
"""

import logging
import re
from typing import List, NamedTuple, Sequence
from urllib.parse import SplitResult, urlsplit

from starlette.requests import Request

from oidc_gateway.exceptions import InvalidRedirectUriError

logger = logging.getLogger(__name__)

_HOST_LABEL_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


# =============================================================================
# Redirect URI Validation
# =============================================================================

def validate_redirect_uri(redirect_uri: str, valid_uris: Sequence[str]) -> str:
    """
    Check a caller-supplied redirect target against the configured allow-list.

    Each allow-list entry is tried in order:
    1. Exact string equality
    2. ``*`` matches anything (operator opt-out of the check)
    3. ``scheme://*.domain[/path]`` matches a direct subdomain of ``domain``
       with the same scheme. A pattern path must match exactly, or as a prefix
       when it ends in ``/*``.

    Args:
        redirect_uri: Target requested by the client
        valid_uris: Allow-list entries from configuration

    Returns:
        The original ``redirect_uri`` (never a normalised form)

    Raises:
        InvalidRedirectUriError: If no entry matches

    Example:
        >>> validate_redirect_uri("https://app.example.com/x", ["https://*.example.com/*"])
        'https://app.example.com/x'
    """
    for valid_uri in valid_uris:
        if redirect_uri == valid_uri:
            return redirect_uri

        if valid_uri == "*":
            return redirect_uri

        if "://*." in valid_uri and _matches_wildcard(redirect_uri, valid_uri):
            return redirect_uri

    logger.warning(
        "Rejected redirect URI not present in allow-list",
        extra={"redirect_uri": redirect_uri},
    )
    raise InvalidRedirectUriError(redirect_uri)


def is_local_path(value: str) -> bool:
    """
    True for an origin-relative target such as ``/app/page?tab=2``.

    Scheme-relative (``//host``) and backslash forms are rejected since
    browsers resolve them against another host.
    """
    if not value.startswith("/") or value.startswith("//"):
        return False
    if "\\" in value or any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        return False

    try:
        parsed = urlsplit(value)
    except ValueError:
        return False
    return not parsed.scheme and not parsed.netloc


def _matches_wildcard(candidate: str, pattern: str) -> bool:
    scheme, _, rest = pattern.partition("://")
    if not rest.startswith("*."):
        return False

    domain, slash, path = rest[2:].partition("/")
    pattern_path = slash + path
    if not domain or "*" in domain:
        return False

    try:
        parsed = urlsplit(candidate)
    except ValueError:
        return False

    if parsed.scheme.lower() != scheme.lower():
        return False

    netloc = parsed.netloc.lower()
    # userinfo can hide the real host from naive readers
    if "@" in netloc or "\\" in netloc:
        return False

    label, dot, parent = netloc.partition(".")
    if not dot or parent != domain.lower():
        return False
    if not _HOST_LABEL_PATTERN.match(label):
        return False

    return _matches_path(parsed.path, pattern_path)


def _matches_path(path: str, pattern_path: str) -> bool:
    segments = path.split("/")
    if ".." in segments or "." in segments or "%2e" in path.lower():
        return False

    if pattern_path in ("", "/"):
        return path in ("", "/")

    if pattern_path.endswith("/*"):
        base = pattern_path[:-2]
        return path == base or path.startswith(base + "/")

    return path == pattern_path


# =============================================================================
# URL Parsing
# =============================================================================

def parse_url(value: str) -> SplitResult:
    """
    Parse an absolute http(s) URL, defaulting the scheme to https.

    Raises:
        ValueError: If the value is empty, uses another scheme or has no host
    """
    if not value:
        raise ValueError("URL must not be empty")

    if "://" not in value:
        value = f"https://{value}"

    parsed = urlsplit(value)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Unsupported URL scheme: '{parsed.scheme}'")
    if not parsed.netloc:
        raise ValueError(f"URL has no host: {value}")

    return parsed


def url_is_absolute(url: SplitResult) -> bool:
    return bool(url.scheme and url.netloc)


def get_full_host(request: Request) -> str:
    """
    Public ``scheme://host`` of the request.

    Honours X-Forwarded-Proto / X-Forwarded-Host set by a fronting proxy.
    """
    scheme = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.url.netloc
    return f"{scheme}://{host}"


# =============================================================================
# Accept Header Negotiation
# =============================================================================

class AcceptType(NamedTuple):
    type: str
    weight: float


def parse_accept_type(value: str) -> AcceptType:
    """
    Parse one Accept header entry such as ``text/html;q=0.8``.

    Returns an empty type with weight 0.0 for empty or malformed entries.
    """
    parts = [part.strip() for part in value.split(";")]
    media_type = parts[0]
    if not media_type:
        return AcceptType("", 0.0)

    weight = 1.0
    for param in parts[1:]:
        name, _, raw = param.partition("=")
        if name.strip() == "q":
            try:
                weight = float(raw.strip())
            except ValueError:
                return AcceptType("", 0.0)

    return AcceptType(media_type, weight)


def parse_accept_header(header: str) -> List[AcceptType]:
    """Parse an Accept header, highest weight first (ties keep header order)."""
    accept_types = [
        parse_accept_type(entry)
        for entry in header.split(",")
    ]
    accept_types = [accept for accept in accept_types if accept.type]
    return sorted(accept_types, key=lambda accept: accept.weight, reverse=True)


def is_html_request(request: Request) -> bool:
    """True when the client's most preferred media type is text/html."""
    header = request.headers.get("accept")
    if not header:
        return False

    accept_types = parse_accept_header(header)
    return bool(accept_types) and accept_types[0].type == "text/html"
