"""Shared fixtures: a controllable clock and fresh module singletons per test."""

import pytest

from auth.attempt_ledger import AttemptLedger, RateLimitPolicy
from auth.rate_limiter import LoginRateLimiter, set_login_rate_limiter
from core.store import InMemoryStore, reset_store
from moderation.url_reputation import set_url_reputation_gate


class FakeClock:
    """Stands in for ``time.time``; advance it instead of sleeping."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(max_size=1000, clock=clock)


@pytest.fixture
def ledger(store, clock) -> AttemptLedger:
    return AttemptLedger(store, RateLimitPolicy(), clock=clock)


@pytest.fixture
def limiter(ledger) -> LoginRateLimiter:
    return LoginRateLimiter(ledger)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Module-level singletons must not leak state between tests."""
    reset_store()
    set_login_rate_limiter(None)
    set_url_reputation_gate(None)
    yield
    reset_store()
    set_login_rate_limiter(None)
    set_url_reputation_gate(None)
