"""Login protection: attempt ledger, rate limiting and collaborator boundaries."""

from auth.attempt_ledger import AttemptLedger, AttemptRecord, RateLimitPolicy
from auth.rate_limiter import LoginRateLimiter, RateLimitDecision, get_login_rate_limiter

__all__ = [
    "AttemptLedger",
    "AttemptRecord",
    "RateLimitPolicy",
    "LoginRateLimiter",
    "RateLimitDecision",
    "get_login_rate_limiter",
]
