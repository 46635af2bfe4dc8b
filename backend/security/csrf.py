"""CSRF tokens for the double-submit cookie pattern.

A token is ``<random hex>.<sha256(random hex + secret)>``. It is stateless and
self-certifying: the server keeps no token table, it only checks the tag.
Expiry is left to the cookie's ``Max-Age``.

The client receives the token as a readable cookie and echoes it in the
``X-CSRF-Token`` header on state-changing requests. A forged cross-site
request carries the cookie but cannot read it, so the header is missing or
different.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Any
from urllib.parse import unquote

from starlette.responses import Response

from config.settings import settings

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

CSRF_TOKEN_MISSING = "csrf_token_missing"
CSRF_TOKEN_MISMATCH = "csrf_token_mismatch"
CSRF_TOKEN_INVALID = "csrf_token_invalid"

RANDOM_BYTES = 32


class CsrfTokenCodec:
    """Generates and validates tokens bound to one server secret."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def _tag(self, random_part: str) -> str:
        return hashlib.sha256((random_part + self._secret).encode("utf-8")).hexdigest()

    def generate(self) -> str:
        random_part = secrets.token_bytes(RANDOM_BYTES).hex()
        return f"{random_part}.{self._tag(random_part)}"

    def validate(self, token: Any) -> bool:
        """``True`` only for a well-formed token whose tag matches. Never raises."""
        if not token or not isinstance(token, str):
            return False
        try:
            parts = token.split(".")
            if len(parts) != 2:
                return False
            random_part, tag = parts
            if not random_part or not tag:
                return False
            return hmac.compare_digest(tag.encode("ascii"), self._tag(random_part).encode("ascii"))
        except (UnicodeError, ValueError, TypeError):
            return False


# Secret is read once, at import.
_codec = CsrfTokenCodec(settings.csrf_secret)


def generate_csrf_token() -> str:
    return _codec.generate()


def validate_csrf_token(token: Any) -> bool:
    return _codec.validate(token)


def extract_csrf_token_from_header(value: str | None) -> str | None:
    if not value:
        return None
    token = value.strip()
    return token or None


def extract_csrf_token_from_cookie(cookie_header: str | None, name: str = "csrf-token") -> str | None:
    """Pull *name* out of a raw ``Cookie`` header and URL-decode it."""
    if not cookie_header:
        return None

    for entry in cookie_header.split(";"):
        cookie_name, sep, value = entry.strip().partition("=")
        if sep and cookie_name == name and value:
            return unquote(value)
    return None


def csrf_cookie_options(secure: bool = False) -> dict[str, Any]:
    """Keyword arguments for ``Response.set_cookie``."""
    # Not HttpOnly: the client script must read it to echo it back.
    return {
        "httponly": False,
        "secure": secure,
        "samesite": "lax",
        "path": "/",
        "max_age": settings.csrf_cookie_max_age,
    }


def set_csrf_cookie(response: Response, token: str, secure: bool = False) -> None:
    response.set_cookie(settings.csrf_cookie_name, token, **csrf_cookie_options(secure))


def check_csrf(
    method: str,
    header_token: str | None,
    cookie_token: str | None,
    optional: bool = False,
    codec: CsrfTokenCodec | None = None,
) -> str | None:
    """Return the rejection reason for a request, or ``None`` when it may proceed.

    The optional variant only validates when both tokens are present.
    """
    if method.upper() not in STATE_CHANGING_METHODS:
        return None

    codec = codec or _codec
    if not header_token or not cookie_token:
        return None if optional else CSRF_TOKEN_MISSING
    if not hmac.compare_digest(header_token.encode("utf-8"), cookie_token.encode("utf-8")):
        return CSRF_TOKEN_MISMATCH
    if not codec.validate(header_token):
        return CSRF_TOKEN_INVALID
    return None
