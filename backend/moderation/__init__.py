"""Content moderation for outbound messages."""

from moderation.url_reputation import (
    GateDecision,
    SafeBrowsingClient,
    UrlCheckResult,
    UrlReputationGate,
    check_urls_with_safe_browsing,
    extract_urls_from_text,
    get_url_reputation_gate,
)

__all__ = [
    "GateDecision",
    "SafeBrowsingClient",
    "UrlCheckResult",
    "UrlReputationGate",
    "check_urls_with_safe_browsing",
    "extract_urls_from_text",
    "get_url_reputation_gate",
]
