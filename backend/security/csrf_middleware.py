"""Double-submit CSRF guard for state-changing requests."""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from config.settings import settings
from monitoring.metrics import csrf_rejections_total
from security.csrf import (
    CSRF_TOKEN_INVALID,
    CSRF_TOKEN_MISMATCH,
    CSRF_TOKEN_MISSING,
    CsrfTokenCodec,
    check_csrf,
    extract_csrf_token_from_cookie,
    extract_csrf_token_from_header,
)

security_logger = logging.getLogger("abuse-guard.security")

REJECTION_MESSAGES = {
    CSRF_TOKEN_MISSING: "A valid CSRF token is required for this operation",
    CSRF_TOKEN_MISMATCH: "The CSRF token does not match",
    CSRF_TOKEN_INVALID: "The CSRF token is not valid",
}


def _matches(path: str, prefixes: list[str]) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


class CSRFMiddleware(BaseHTTPMiddleware):
    """Rejects POST/PUT/PATCH/DELETE whose header token does not match the cookie.

    Paths in ``exempt_paths`` skip the check (login has no session to forge).
    Paths in ``optional_paths`` are only checked when both tokens are sent.
    """

    def __init__(
        self,
        app,
        exempt_paths: list[str] | None = None,
        optional_paths: list[str] | None = None,
        cookie_name: str | None = None,
        header_name: str | None = None,
        codec: CsrfTokenCodec | None = None,
    ):
        super().__init__(app)
        self.exempt_paths = exempt_paths if exempt_paths is not None else settings.csrf_exempt_paths
        self.optional_paths = optional_paths if optional_paths is not None else settings.csrf_optional_paths
        self.cookie_name = cookie_name or settings.csrf_cookie_name
        self.header_name = header_name or settings.csrf_header_name
        self.codec = codec

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if _matches(path, self.exempt_paths):
            return await call_next(request)

        reason = check_csrf(
            request.method,
            extract_csrf_token_from_header(request.headers.get(self.header_name)),
            extract_csrf_token_from_cookie(request.headers.get("cookie"), self.cookie_name),
            optional=_matches(path, self.optional_paths),
            codec=self.codec,
        )
        if reason is None:
            return await call_next(request)

        csrf_rejections_total.labels(reason=reason).inc()
        security_logger.warning("CSRF rejection (%s) for %s %s", reason, request.method, path)
        return JSONResponse(
            status_code=403,
            content={"error": reason, "message": REJECTION_MESSAGES[reason]},
        )
