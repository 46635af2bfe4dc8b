"""Prometheus metrics definitions for abuse-guard.

All metrics use the 'abuseguard_' prefix for namespace isolation.
These are module-level singletons; import and use directly.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from starlette.requests import Request
from starlette.responses import Response

# --- Login rate limiting ---
failed_login_attempts_total = Counter(
    "abuseguard_failed_login_attempts_total",
    "Failed login attempts recorded in the attempt ledger",
)

rate_limit_rejections_total = Counter(
    "abuseguard_rate_limit_rejections_total",
    "Login attempts refused by the rate limiter",
    labelnames=["reason"],  # delay / locked
)

lockouts_started_total = Counter(
    "abuseguard_lockouts_started_total",
    "Temporary lockouts started",
)

# --- CSRF ---
csrf_rejections_total = Counter(
    "abuseguard_csrf_rejections_total",
    "State-changing requests rejected by the CSRF guard",
    labelnames=["reason"],
)

# --- URL reputation ---
url_checks_total = Counter(
    "abuseguard_url_checks_total",
    "URL reputation oracle calls",
    labelnames=["outcome"],  # clean / unsafe / error / skipped
)

unsafe_urls_total = Counter(
    "abuseguard_unsafe_urls_total",
    "URLs flagged by the reputation oracle",
)


async def metrics_endpoint(request: Request) -> Response:
    """/metrics endpoint for Prometheus scraping."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
