"""
Tests for redirect URI validation and request URL helpers.
"""

import pytest

from oidc_gateway.exceptions import InvalidRedirectUriError
from oidc_gateway.utils.urls import (
    AcceptType,
    get_full_host,
    is_html_request,
    is_local_path,
    parse_accept_header,
    parse_accept_type,
    parse_url,
    url_is_absolute,
    validate_redirect_uri,
)


# =============================================================================
# Redirect URI validation
# =============================================================================

class TestValidateRedirectUri:

    def test_exact_match(self):
        assert validate_redirect_uri("https://app.example.com/cb", ["https://app.example.com/cb"]) == (
            "https://app.example.com/cb"
        )

    def test_star_allows_anything(self):
        assert validate_redirect_uri("https://evil.test/", ["*"]) == "https://evil.test/"

    def test_empty_allow_list_rejects(self):
        with pytest.raises(InvalidRedirectUriError):
            validate_redirect_uri("/", [])

    def test_first_matching_entry_wins(self):
        assert validate_redirect_uri("/", ["https://other.example.com", "/"]) == "/"

    @pytest.mark.parametrize("candidate", [
        "https://app.example.com",
        "https://app.example.com/",
        "HTTPS://APP.EXAMPLE.COM/",
    ])
    def test_host_wildcard_matches_direct_subdomain(self, candidate):
        assert validate_redirect_uri(candidate, ["https://*.example.com"]) == candidate

    @pytest.mark.parametrize("candidate", [
        "https://example.com/",
        "https://a.b.example.com/",
        "http://app.example.com/",
        "https://app.example.com.evil.test/",
        "https://appexample.com/",
        "https://app.example.com/deeper",
        "https://user@app.example.com/",
        "https://evil.test\\@app.example.com/",
        "https://-bad.example.com/",
    ])
    def test_host_wildcard_rejects(self, candidate):
        with pytest.raises(InvalidRedirectUriError):
            validate_redirect_uri(candidate, ["https://*.example.com"])

    @pytest.mark.parametrize("candidate", [
        "https://app.example.com/callback",
        "https://app.example.com/callback?next=1",
    ])
    def test_exact_path_wildcard(self, candidate):
        assert validate_redirect_uri(candidate, ["https://*.example.com/callback"]) == candidate

    def test_exact_path_wildcard_rejects_other_path(self):
        with pytest.raises(InvalidRedirectUriError):
            validate_redirect_uri("https://app.example.com/callback/x", ["https://*.example.com/callback"])

    @pytest.mark.parametrize("candidate", [
        "https://app.example.com/app",
        "https://app.example.com/app/",
        "https://app.example.com/app/page",
        "https://app.example.com/app/a/b/c",
    ])
    def test_prefix_path_wildcard(self, candidate):
        assert validate_redirect_uri(candidate, ["https://*.example.com/app/*"]) == candidate

    @pytest.mark.parametrize("candidate", [
        "https://app.example.com/application",
        "https://app.example.com/app/../admin",
        "https://app.example.com/app/./x",
        "https://app.example.com/app/%2E%2E/admin",
        "https://app.example.com/other",
    ])
    def test_prefix_path_wildcard_rejects(self, candidate):
        with pytest.raises(InvalidRedirectUriError):
            validate_redirect_uri(candidate, ["https://*.example.com/app/*"])

    def test_error_carries_uri(self):
        with pytest.raises(InvalidRedirectUriError) as exc_info:
            validate_redirect_uri("https://evil.test/", ["/"])
        assert exc_info.value.redirect_uri == "https://evil.test/"
        assert exc_info.value.status_code == 400


@pytest.mark.parametrize("value", ["/", "/app/page", "/app/page?tab=2", "/a/b#frag"])
def test_local_paths(value):
    assert is_local_path(value)


@pytest.mark.parametrize("value", [
    "",
    "app/page",
    "//evil.test/",
    "/\\evil.test/",
    "/app\\page",
    "/app\npage",
    "https://evil.test/",
    "javascript:alert(1)",
])
def test_non_local_paths(value):
    assert not is_local_path(value)


# =============================================================================
# URL parsing
# =============================================================================

class TestParseUrl:

    def test_absolute_url(self):
        parsed = parse_url("http://idp.example.com:8443/path")
        assert parsed.scheme == "http"
        assert parsed.netloc == "idp.example.com:8443"
        assert url_is_absolute(parsed)

    def test_missing_scheme_defaults_to_https(self):
        assert parse_url("idp.example.com/authorize").geturl() == "https://idp.example.com/authorize"

    @pytest.mark.parametrize("value", ["", "ftp://idp.example.com", "://invalid"])
    def test_invalid_urls(self, value):
        with pytest.raises(ValueError):
            parse_url(value)


def test_get_full_host_uses_forwarded_headers(make_request):
    request = make_request(headers={
        "X-Forwarded-Proto": "https",
        "X-Forwarded-Host": "public.example.com",
    })
    assert get_full_host(request) == "https://public.example.com"


def test_get_full_host_without_forwarded_headers(make_request):
    assert get_full_host(make_request()) == "http://gateway.example.com"


# =============================================================================
# Accept negotiation
# =============================================================================

@pytest.mark.parametrize("value, expected", [
    ("text/html", AcceptType("text/html", 1.0)),
    ("text/html;q=0.8", AcceptType("text/html", 0.8)),
    (" application/json ; q=0.5", AcceptType("application/json", 0.5)),
    ("text/html;q=invalid", AcceptType("", 0.0)),
    ("", AcceptType("", 0.0)),
])
def test_parse_accept_type(value, expected):
    assert parse_accept_type(value) == expected


def test_parse_accept_header_orders_by_weight():
    types = parse_accept_header("application/json;q=0.5, text/html, */*;q=0.1, text/plain")

    assert [accept.type for accept in types] == [
        "text/html",
        "text/plain",
        "application/json",
        "*/*",
    ]


@pytest.mark.parametrize("accept, expected", [
    ("text/html,application/xhtml+xml,*/*;q=0.8", True),
    ("application/json", False),
    ("*/*", False),
    ("application/json, text/html;q=0.9", False),
    ("application/json;q=0.5, text/html", True),
])
def test_is_html_request(make_request, accept, expected):
    assert is_html_request(make_request(headers={"Accept": accept})) is expected


def test_request_without_accept_is_not_html(make_request):
    assert is_html_request(make_request()) is False
