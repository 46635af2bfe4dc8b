"""Progressive login rate limiter built on the attempt ledger.

Escalation (defaults):
- 3 failed attempts  -> 5 second delay
- 5 failed attempts  -> 30 second delay
- 10 failed attempts -> 15 minute lockout

Counters reset one hour after the first failure, or immediately on a
successful login.
"""

from __future__ import annotations

import asyncio
import glob
import math
from dataclasses import dataclass
from typing import Any

from auth.attempt_ledger import AttemptLedger, AttemptRecord, RateLimitPolicy
from auth.ip_tracking import create_rate_limit_identifier, normalize_email
from config.settings import settings
from core.store import get_store
from monitoring.metrics import lockouts_started_total, rate_limit_rejections_total


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    delay: int | None = None  # ms
    blocked_until: int | None = None  # ms timestamp

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil((self.delay or 0) / 1000)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"allowed": self.allowed}
        if self.delay is not None:
            data["delay"] = self.delay
        if self.blocked_until is not None:
            data["blocked_until"] = self.blocked_until
        return data


def calculate_delay(record: AttemptRecord, now: int, policy: RateLimitPolicy) -> int:
    """Required wait in ms before *record*'s identifier may try again."""
    if record.is_blocked(now):
        return record.blocked_until - now

    delay = policy.tier_delay(record.count)
    if delay and policy.delay_from_last_attempt:
        return max(0, record.last_attempt + delay - now)
    return delay


class LoginRateLimiter:
    """Rate decision engine: maps ledger state to allow/deny + wait time."""

    def __init__(self, ledger: AttemptLedger) -> None:
        self.ledger = ledger

    @property
    def policy(self) -> RateLimitPolicy:
        return self.ledger.policy

    async def check_rate_limit(self, identifier: str) -> RateLimitDecision:
        """Return whether *identifier* may attempt to authenticate now."""
        record = await self.ledger.get_failed_attempts(identifier)
        if record is None:
            return RateLimitDecision(allowed=True)

        now = self.ledger.now_ms()
        if record.is_blocked(now):
            rate_limit_rejections_total.labels(reason="locked").inc()
            return RateLimitDecision(
                allowed=False,
                delay=record.blocked_until - now,
                blocked_until=record.blocked_until,
            )

        delay = calculate_delay(record, now, self.policy)
        if delay > 0:
            rate_limit_rejections_total.labels(reason="delay").inc()
            return RateLimitDecision(allowed=False, delay=delay)

        return RateLimitDecision(allowed=True)

    async def record_failed_attempt(self, identifier: str) -> AttemptRecord:
        record = await self.ledger.record_failed_attempt(identifier)
        # A lockout set by this very attempt ends exactly lockout_ms after it.
        if record.blocked_until == record.last_attempt + self.policy.lockout_ms:
            lockouts_started_total.inc()
        return record

    async def clear_failed_attempts(self, identifier: str) -> None:
        await self.ledger.clear_failed_attempts(identifier)

    async def get_failed_attempts(self, identifier: str) -> AttemptRecord | None:
        return await self.ledger.get_failed_attempts(identifier)

    async def get_failed_attempt_count(self, identifier: str) -> int:
        return await self.ledger.get_failed_attempt_count(identifier)

    async def cleanup_old_attempts(self) -> int:
        return await self.ledger.cleanup_old_attempts()

    async def clear_rate_limit(
        self,
        identifier: str | None = None,
        email: str | None = None,
        ip: str | None = None,
    ) -> tuple[str, int]:
        """Clear ledger entries and return ``(target, cleared)``.

        - ``identifier``: that exact entry
        - ``email`` + ``ip``: the combined entry for that pair
        - ``ip`` alone: every entry from that address
        - ``email`` alone: every entry for that address, from any IP
        - nothing: purge expired entries
        """
        if identifier:
            await self.clear_failed_attempts(identifier)
            return identifier, 1
        if email and ip:
            target = create_rate_limit_identifier(email, ip)
            await self.clear_failed_attempts(target)
            return target, 1
        # User input goes into a glob; escape its wildcards.
        if ip:
            target = f"*:{glob.escape(ip)}"
            return target, await self.ledger.clear_matching(target)
        if email:
            target = f"{glob.escape(normalize_email(email))}:*"
            return target, await self.ledger.clear_matching(target)
        return "expired", await self.cleanup_old_attempts()

    def retry_after_seconds(self, count: int) -> int:
        """Nominal wait, in seconds, a client should observe after *count* failures."""
        return self.policy.tier_delay(count) // 1000


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_limiter: LoginRateLimiter | None = None
_limiter_lock = asyncio.Lock()


async def get_login_rate_limiter() -> LoginRateLimiter:
    """Return the process-wide :class:`LoginRateLimiter`, creating it on first use."""
    global _limiter
    if _limiter is not None:
        return _limiter
    async with _limiter_lock:
        if _limiter is None:
            store = await get_store()
            ledger = AttemptLedger(store, RateLimitPolicy.from_settings(settings))
            _limiter = LoginRateLimiter(ledger)
    return _limiter


def set_login_rate_limiter(limiter: LoginRateLimiter | None) -> None:
    """Replace the singleton (tests, alternative wiring)."""
    global _limiter
    _limiter = limiter
