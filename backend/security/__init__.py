"""CSRF protection: token codec, cookie helpers and the request guard."""

from security.csrf import (
    CsrfTokenCodec,
    check_csrf,
    csrf_cookie_options,
    extract_csrf_token_from_cookie,
    extract_csrf_token_from_header,
    generate_csrf_token,
    set_csrf_cookie,
    validate_csrf_token,
)

__all__ = [
    "CsrfTokenCodec",
    "check_csrf",
    "csrf_cookie_options",
    "extract_csrf_token_from_cookie",
    "extract_csrf_token_from_header",
    "generate_csrf_token",
    "set_csrf_cookie",
    "validate_csrf_token",
]
