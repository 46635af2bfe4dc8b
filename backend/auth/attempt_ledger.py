"""Per-identifier ledger of failed authentication attempts.

Each identifier (an email, an IP, or ``email:ip``) maps to an
:class:`AttemptRecord` kept in a :class:`~core.store.BaseStore`. Records are
windowed: once ``reset_window_ms`` has passed since the first failure the
record is treated as absent by every reader, even if the store still holds it.
Reaching ``block_threshold`` failures starts a lockout that further failures
do not extend.

All timestamps are integer milliseconds since the epoch.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import weakref
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Callable

from core.store import BaseStore

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("abuse-guard.security")

KEY_PREFIX = "attempts:"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Escalation tiers and windows. Durations are milliseconds."""

    short_threshold: int = 3
    short_delay_ms: int = 5 * 1000
    long_threshold: int = 5
    long_delay_ms: int = 30 * 1000
    block_threshold: int = 10
    lockout_ms: int = 15 * 60 * 1000
    reset_window_ms: int = 60 * 60 * 1000
    delay_from_last_attempt: bool = False

    @classmethod
    def from_settings(cls, settings) -> RateLimitPolicy:
        return cls(
            short_threshold=settings.rate_limit_short_threshold,
            short_delay_ms=settings.rate_limit_short_delay_seconds * 1000,
            long_threshold=settings.rate_limit_long_threshold,
            long_delay_ms=settings.rate_limit_long_delay_seconds * 1000,
            block_threshold=settings.rate_limit_block_threshold,
            lockout_ms=settings.rate_limit_lockout_seconds * 1000,
            reset_window_ms=settings.rate_limit_reset_window_seconds * 1000,
            delay_from_last_attempt=settings.rate_limit_delay_from_last_attempt,
        )

    def tier_delay(self, count: int) -> int:
        """Nominal wait in ms required after *count* failures (0 below the first tier)."""
        if count >= self.block_threshold:
            return self.lockout_ms
        if count >= self.long_threshold:
            return self.long_delay_ms
        if count >= self.short_threshold:
            return self.short_delay_ms
        return 0


@dataclass
class AttemptRecord:
    count: int
    first_attempt: int
    last_attempt: int
    blocked_until: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttemptRecord:
        blocked_until = data.get("blocked_until")
        return cls(
            count=int(data["count"]),
            first_attempt=int(data["first_attempt"]),
            last_attempt=int(data["last_attempt"]),
            blocked_until=int(blocked_until) if blocked_until is not None else None,
        )

    def is_blocked(self, now: int) -> bool:
        return self.blocked_until is not None and now < self.blocked_until


class AttemptLedger:
    """Failed-attempt ledger with per-identifier serialisation.

    Read-modify-write of one identifier runs under that identifier's
    ``asyncio.Lock``; different identifiers never wait on each other. Locks
    live in a ``WeakValueDictionary`` so idle identifiers cost nothing.
    """

    def __init__(
        self,
        store: BaseStore,
        policy: RateLimitPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.policy = policy or RateLimitPolicy()
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # -- helpers -------------------------------------------------------------

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _key(identifier: str) -> str:
        return f"{KEY_PREFIX}{identifier}"

    @asynccontextmanager
    async def _locked(self, identifier: str) -> AsyncIterator[None]:
        lock = self._locks.get(identifier)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[identifier] = lock
        async with lock:
            yield

    def window_expired(self, record: AttemptRecord, now: int) -> bool:
        return now - record.first_attempt > self.policy.reset_window_ms

    def _ttl_seconds(self, record: AttemptRecord, now: int) -> int:
        """Physical lifetime in the store: until both window and lockout are over."""
        until = record.first_attempt + self.policy.reset_window_ms
        if record.blocked_until is not None:
            until = max(until, record.blocked_until)
        return max(1, math.ceil((until - now) / 1000))

    async def _load(self, identifier: str) -> AttemptRecord | None:
        raw = await self.store.get(self._key(identifier))
        if raw is None:
            return None
        try:
            return AttemptRecord.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("Dropping malformed attempt record for %s", identifier)
            await self.store.delete(self._key(identifier))
            return None

    async def _save(self, identifier: str, record: AttemptRecord, now: int) -> None:
        await self.store.set(self._key(identifier), record.to_dict(), ttl=self._ttl_seconds(record, now))

    # -- operations ----------------------------------------------------------

    async def record_failed_attempt(self, identifier: str) -> AttemptRecord:
        """Count one failed attempt for *identifier* and return the updated record."""
        async with self._locked(identifier):
            now = self.now_ms()
            record = await self._load(identifier)

            if record is None or self.window_expired(record, now):
                record = AttemptRecord(count=1, first_attempt=now, last_attempt=now)
            else:
                if record.blocked_until is not None and now >= record.blocked_until:
                    record.blocked_until = None
                record.count += 1
                record.last_attempt = now

            if record.count >= self.policy.block_threshold and record.blocked_until is None:
                record.blocked_until = now + self.policy.lockout_ms
                security_logger.warning(
                    "Lockout started for %s after %d failed attempts (until %d)",
                    identifier,
                    record.count,
                    record.blocked_until,
                )

            await self._save(identifier, record, now)
            return AttemptRecord(**record.to_dict())

    async def get_failed_attempts(self, identifier: str) -> AttemptRecord | None:
        """Return the live record for *identifier*, or ``None`` once its window is over."""
        async with self._locked(identifier):
            record = await self._load(identifier)
            if record is None:
                return None

            now = self.now_ms()
            if self.window_expired(record, now):
                await self.store.delete(self._key(identifier))
                return None

            if record.blocked_until is not None and now >= record.blocked_until:
                record.blocked_until = None
                await self._save(identifier, record, now)

            return record

    async def get_failed_attempt_count(self, identifier: str) -> int:
        record = await self.get_failed_attempts(identifier)
        return record.count if record else 0

    async def clear_failed_attempts(self, identifier: str) -> None:
        """Forget *identifier* entirely (successful authentication)."""
        async with self._locked(identifier):
            await self.store.delete(self._key(identifier))

    async def identifiers(self, pattern: str = "*") -> list[str]:
        keys = await self.store.keys(f"{KEY_PREFIX}{pattern}")
        return [k[len(KEY_PREFIX):] for k in keys]

    async def clear_matching(self, pattern: str) -> int:
        """Delete every identifier matching a glob *pattern*. Returns the count removed."""
        removed = 0
        for identifier in await self.identifiers(pattern):
            await self.clear_failed_attempts(identifier)
            removed += 1
        return removed

    async def cleanup_old_attempts(self) -> int:
        """Purge records whose window and lockout have both expired.

        Housekeeping only: readers already ignore expired records.
        """
        removed = 0
        for identifier in await self.identifiers():
            async with self._locked(identifier):
                record = await self._load(identifier)
                if record is None:
                    continue
                now = self.now_ms()
                if self.window_expired(record, now) and not record.is_blocked(now):
                    await self.store.delete(self._key(identifier))
                    removed += 1

        if removed:
            logger.info("Purged %d expired attempt records", removed)
        return removed
