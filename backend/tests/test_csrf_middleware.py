"""Tests for the CSRF guard middleware on a minimal app."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from security.csrf import generate_csrf_token
from security.csrf_middleware import CSRFMiddleware


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(
        CSRFMiddleware,
        exempt_paths=["/api/auth/login"],
        optional_paths=["/api/optional"],
        cookie_name="csrf-token",
        header_name="X-CSRF-Token",
    )

    @app.get("/api/items")
    async def list_items():
        return {"items": []}

    @app.post("/api/items")
    async def create_item():
        return {"created": True}

    @app.delete("/api/items/1")
    async def delete_item():
        return {"deleted": True}

    @app.post("/api/auth/login")
    async def login():
        return {"ok": True}

    @app.post("/api/optional/ping")
    async def optional_ping():
        return {"ok": True}

    return app


@pytest.fixture
async def client():
    transport = ASGITransport(app=build_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def with_tokens(header_token: str | None, cookie_token: str | None) -> dict:
    headers = {}
    if header_token is not None:
        headers["X-CSRF-Token"] = header_token
    if cookie_token is not None:
        headers["Cookie"] = f"csrf-token={cookie_token}"
    return headers


class TestRequiredGuard:
    async def test_get_passes_without_tokens(self, client):
        resp = await client.get("/api/items")
        assert resp.status_code == 200

    async def test_post_with_matching_tokens(self, client):
        token = generate_csrf_token()
        resp = await client.post("/api/items", headers=with_tokens(token, token))
        assert resp.status_code == 200
        assert resp.json() == {"created": True}

    async def test_delete_with_matching_tokens(self, client):
        token = generate_csrf_token()
        resp = await client.delete("/api/items/1", headers=with_tokens(token, token))
        assert resp.status_code == 200

    async def test_post_without_tokens(self, client):
        resp = await client.post("/api/items")
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_token_missing"
        assert "message" in resp.json()

    async def test_post_with_header_only(self, client):
        resp = await client.post("/api/items", headers=with_tokens(generate_csrf_token(), None))
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_token_missing"

    async def test_post_with_mismatched_tokens(self, client):
        resp = await client.post(
            "/api/items", headers=with_tokens(generate_csrf_token(), generate_csrf_token())
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_token_mismatch"

    async def test_post_with_forged_matching_tokens(self, client):
        forged = "0" * 64 + "." + "1" * 64
        resp = await client.post("/api/items", headers=with_tokens(forged, forged))
        assert resp.status_code == 403
        assert resp.json()["error"] == "csrf_token_invalid"


class TestExemptAndOptional:
    async def test_exempt_path_skips_check(self, client):
        resp = await client.post("/api/auth/login")
        assert resp.status_code == 200

    async def test_optional_path_without_tokens(self, client):
        resp = await client.post("/api/optional/ping")
        assert resp.status_code == 200

    async def test_optional_path_with_bad_tokens(self, client):
        resp = await client.post(
            "/api/optional/ping", headers=with_tokens(generate_csrf_token(), generate_csrf_token())
        )
        assert resp.status_code == 403
