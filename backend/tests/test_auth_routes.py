"""Integration tests for the login and rate-limit admin endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from api.main import app
from auth import captcha
from auth.attempt_ledger import AttemptLedger, RateLimitPolicy
from auth.credentials import InMemoryCredentialVerifier, set_credential_verifier
from auth.rate_limiter import LoginRateLimiter, set_login_rate_limiter
from config.settings import settings

EMAIL = "alice@example.com"
PASSWORD = "correct horse battery staple"
IDENTIFIER = f"{EMAIL}:127.0.0.1"
ADMIN_TOKEN = "admin-test-token"


@pytest.fixture(autouse=True)
def wiring(limiter, monkeypatch):
    verifier = InMemoryCredentialVerifier()
    verifier.register(EMAIL, PASSWORD, user_id="user-1")
    set_credential_verifier(verifier)
    set_login_rate_limiter(limiter)

    monkeypatch.setattr(settings, "ip_whitelist", [])
    monkeypatch.setattr(settings, "captcha_required_after", 0)
    monkeypatch.setattr(settings, "admin_token", ADMIN_TOKEN)
    yield
    set_credential_verifier(InMemoryCredentialVerifier())


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def login(client, password: str = "wrong", **extra):
    return await client.post("/api/auth/login", json={"email": EMAIL, "password": password, **extra})


async def csrf_headers(client) -> dict:
    resp = await client.get("/api/csrf/token")
    return {"X-CSRF-Token": resp.json()["token"]}


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    async def test_success(self, client):
        resp = await login(client, PASSWORD)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "user_id": "user-1"}

    async def test_email_is_case_insensitive(self, client):
        resp = await client.post("/api/auth/login", json={"email": "ALICE@example.com", "password": PASSWORD})
        assert resp.status_code == 200

    async def test_bad_password(self, client):
        resp = await login(client)
        assert resp.status_code == 401
        data = resp.json()
        assert data["error"] == "invalid_credentials"
        assert data["attempt_count"] == 1
        assert data["retry_after"] == 0

    async def test_missing_fields(self, client):
        resp = await client.post("/api/auth/login", json={"email": EMAIL})
        assert resp.status_code == 422

    async def test_third_failure_reports_short_delay(self, client):
        for _ in range(2):
            await login(client)
        resp = await login(client)
        assert resp.status_code == 401
        assert resp.json()["attempt_count"] == 3
        assert resp.json()["retry_after"] == 5

    async def test_rate_limited_after_three_failures(self, client):
        for _ in range(3):
            await login(client)

        resp = await login(client, PASSWORD)
        assert resp.status_code == 429
        data = resp.json()
        assert data["error"] == "too_many_attempts"
        assert data["retry_after"] == 5
        assert resp.headers["Retry-After"] == "5"
        assert "blocked_until" not in data

    async def test_lockout(self, client, limiter):
        for _ in range(10):
            record = await limiter.record_failed_attempt(IDENTIFIER)

        resp = await login(client, PASSWORD)
        assert resp.status_code == 429
        data = resp.json()
        assert data["error"] == "account_locked"
        assert data["retry_after"] == 900
        assert data["blocked_until"] == record.blocked_until

    async def test_delay_elapses_when_decaying(self, client, store, clock):
        policy = RateLimitPolicy(delay_from_last_attempt=True)
        set_login_rate_limiter(LoginRateLimiter(AttemptLedger(store, policy, clock=clock)))
        for _ in range(3):
            await login(client)
        assert (await login(client)).status_code == 429

        clock.advance(5)
        resp = await login(client)
        assert resp.status_code == 401
        assert resp.json()["attempt_count"] == 4

    async def test_success_clears_ledger(self, client, limiter):
        await login(client)
        await login(client)
        assert await limiter.get_failed_attempt_count(IDENTIFIER) == 2

        resp = await login(client, PASSWORD)
        assert resp.status_code == 200
        assert await limiter.get_failed_attempts(IDENTIFIER) is None

    async def test_identifier_includes_ip(self, client, limiter):
        for _ in range(3):
            await login(client)

        resp = await client.post(
            "/api/auth/login",
            json={"email": EMAIL, "password": PASSWORD},
            headers={"X-Forwarded-For": "198.51.100.20"},
        )
        assert resp.status_code == 200


class TestWhitelist:
    async def test_whitelisted_ip_is_never_limited(self, client, limiter, monkeypatch):
        monkeypatch.setattr(settings, "ip_whitelist", ["127.0.0.0/8"])
        for _ in range(12):
            resp = await login(client)
            assert resp.status_code == 401
            assert resp.json()["attempt_count"] == 0

        assert await limiter.get_failed_attempts(IDENTIFIER) is None
        assert await limiter.get_failed_attempts(EMAIL) is None
        assert await limiter.ledger.identifiers() == []


class FakeCaptcha:
    is_configured = True

    def __init__(self, accept: bool):
        self.accept = accept
        self.calls = []

    async def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        return self.accept


class TestCaptchaEscalation:
    async def test_captcha_required_after_threshold(self, client, monkeypatch):
        monkeypatch.setattr(settings, "captcha_required_after", 2)
        monkeypatch.setattr(captcha, "captcha_verifier", FakeCaptcha(accept=True))

        for _ in range(2):
            await login(client)

        resp = await login(client, PASSWORD)
        assert resp.status_code == 403
        assert resp.json()["error"] == "captcha_required"

    async def test_captcha_failed(self, client, monkeypatch):
        monkeypatch.setattr(settings, "captcha_required_after", 1)
        monkeypatch.setattr(captcha, "captcha_verifier", FakeCaptcha(accept=False))

        await login(client)
        resp = await login(client, PASSWORD, captcha_token="bad")
        assert resp.status_code == 403
        assert resp.json()["error"] == "captcha_failed"

    async def test_captcha_passed(self, client, monkeypatch):
        fake = FakeCaptcha(accept=True)
        monkeypatch.setattr(settings, "captcha_required_after", 1)
        monkeypatch.setattr(captcha, "captcha_verifier", fake)

        await login(client)
        resp = await login(client, PASSWORD, captcha_token="good")
        assert resp.status_code == 200
        assert fake.calls == [("good", "127.0.0.1")]

    async def test_unconfigured_captcha_is_not_required(self, client, monkeypatch):
        monkeypatch.setattr(settings, "captcha_required_after", 1)
        monkeypatch.setattr(captcha, "captcha_verifier", captcha.CaptchaVerifier(secret_key=""))

        await login(client)
        resp = await login(client, PASSWORD)
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Admin escape hatch
# ---------------------------------------------------------------------------


class TestAdminRateLimit:
    async def test_requires_admin_token(self, client):
        resp = await client.get(f"/api/admin/rate-limit/{IDENTIFIER}")
        assert resp.status_code == 403

        resp = await client.get(f"/api/admin/rate-limit/{IDENTIFIER}", headers={"X-Admin-Token": "nope"})
        assert resp.status_code == 403

    async def test_disabled_without_configured_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "admin_token", "")
        resp = await client.get(f"/api/admin/rate-limit/{IDENTIFIER}", headers={"X-Admin-Token": ""})
        assert resp.status_code == 403

    async def test_status(self, client):
        for _ in range(3):
            await login(client)

        resp = await client.get(f"/api/admin/rate-limit/{IDENTIFIER}", headers={"X-Admin-Token": ADMIN_TOKEN})
        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == EMAIL
        assert data["ip"] == "127.0.0.1"
        assert data["record"]["count"] == 3
        assert data["locked"] is False
        assert data["delay_ms"] == 5000

    async def test_clear_requires_csrf(self, client):
        resp = await client.post(
            "/api/admin/rate-limit/clear", json={"identifier": IDENTIFIER}, headers={"X-Admin-Token": ADMIN_TOKEN}
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_token_missing"

    async def test_clear_by_email_and_ip(self, client, limiter):
        for _ in range(3):
            await login(client)

        headers = {**await csrf_headers(client), "X-Admin-Token": ADMIN_TOKEN}
        resp = await client.post(
            "/api/admin/rate-limit/clear", json={"email": EMAIL, "ip": "127.0.0.1"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["target"] == IDENTIFIER

        resp = await login(client, PASSWORD)
        assert resp.status_code == 200

    async def test_clear_by_email(self, client, limiter):
        await limiter.record_failed_attempt(IDENTIFIER)
        await limiter.record_failed_attempt(f"{EMAIL}:10.9.9.9")
        await limiter.record_failed_attempt("bob@example.com:127.0.0.1")

        headers = {**await csrf_headers(client), "X-Admin-Token": ADMIN_TOKEN}
        resp = await client.post("/api/admin/rate-limit/clear", json={"email": EMAIL}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["cleared"] == 2
        assert await limiter.get_failed_attempt_count("bob@example.com:127.0.0.1") == 1

    async def test_clear_by_ip(self, client, limiter):
        await limiter.record_failed_attempt("a@x.com:10.9.9.9")
        await limiter.record_failed_attempt("b@x.com:10.9.9.9")
        await limiter.record_failed_attempt("a@x.com:10.9.9.8")

        headers = {**await csrf_headers(client), "X-Admin-Token": ADMIN_TOKEN}
        resp = await client.post("/api/admin/rate-limit/clear", json={"ip": "10.9.9.9"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["cleared"] == 2
        assert await limiter.get_failed_attempt_count("a@x.com:10.9.9.8") == 1

    async def test_clear_expired(self, client, limiter):
        headers = {**await csrf_headers(client), "X-Admin-Token": ADMIN_TOKEN}
        resp = await client.post("/api/admin/rate-limit/clear", json={}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["target"] == "expired"
