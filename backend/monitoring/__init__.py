"""Monitoring and observability for abuse-guard (Prometheus)."""

from .metrics import (
    csrf_rejections_total,
    failed_login_attempts_total,
    lockouts_started_total,
    metrics_endpoint,
    rate_limit_rejections_total,
    unsafe_urls_total,
    url_checks_total,
)

__all__ = [
    "failed_login_attempts_total",
    "rate_limit_rejections_total",
    "lockouts_started_total",
    "csrf_rejections_total",
    "url_checks_total",
    "unsafe_urls_total",
    "metrics_endpoint",
]
