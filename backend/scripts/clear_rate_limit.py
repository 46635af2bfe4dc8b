"""Clear login rate-limit entries (operational escape hatch).

Works either directly against the store (only meaningful with
STORE_BACKEND=redis, the in-memory store lives inside the server process) or
through the running server's admin endpoint.

Usage:
    cd backend
    python scripts/clear_rate_limit.py --email user@example.com --ip 203.0.113.7
    python scripts/clear_rate_limit.py --ip 203.0.113.7
    python scripts/clear_rate_limit.py --identifier "user@example.com:203.0.113.7"
    python scripts/clear_rate_limit.py --expired
    python scripts/clear_rate_limit.py --ip 203.0.113.7 --api-url http://localhost:8000 --admin-token $ADMIN_TOKEN
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.settings import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("clear_rate_limit")


def build_request(args: argparse.Namespace) -> dict:
    body = {}
    if args.identifier:
        body["identifier"] = args.identifier
    if args.email:
        body["email"] = args.email
    if args.ip:
        body["ip"] = args.ip
    return body


async def clear_in_store(body: dict) -> int:
    from auth.rate_limiter import get_login_rate_limiter
    from core.store import close_store

    limiter = await get_login_rate_limiter()
    try:
        _, cleared = await limiter.clear_rate_limit(**body)
        return cleared
    finally:
        await close_store()


async def clear_via_api(body: dict, api_url: str, admin_token: str) -> int:
    async with httpx.AsyncClient(base_url=api_url, timeout=10.0) as client:
        # The clear endpoint is CSRF-protected like any other POST
        token_resp = await client.get("/api/csrf/token")
        token_resp.raise_for_status()
        csrf_token = token_resp.json()["token"]

        resp = await client.post(
            "/api/admin/rate-limit/clear",
            json=body,
            headers={
                settings.csrf_header_name: csrf_token,
                "X-Admin-Token": admin_token,
            },
        )
        resp.raise_for_status()
        return resp.json()["cleared"]


def main():
    parser = argparse.ArgumentParser(description="Clear login rate-limit entries")
    parser.add_argument("--identifier", help="Exact ledger identifier (email:ip)")
    parser.add_argument("--email", help="Email address (with --ip: that pair; alone: every entry for it from any IP)")
    parser.add_argument("--ip", help="Client IP (alone: every entry from that address)")
    parser.add_argument("--expired", action="store_true", help="Only purge expired entries")
    parser.add_argument("--api-url", help="Go through a running server instead of the store")
    parser.add_argument("--admin-token", default=settings.admin_token, help="X-Admin-Token for --api-url")
    args = parser.parse_args()

    body = build_request(args)
    if args.expired and body:
        parser.error("--expired cannot be combined with --identifier/--email/--ip")
    if not args.expired and not body:
        parser.error("nothing to clear: pass --identifier, --email, --ip or --expired")

    if args.api_url:
        if not args.admin_token:
            parser.error("--api-url requires --admin-token (or ADMIN_TOKEN)")
        try:
            cleared = asyncio.run(clear_via_api(body, args.api_url, args.admin_token))
        except httpx.HTTPError as e:
            logger.error("Admin endpoint call failed: %s", e)
            sys.exit(1)
    else:
        if settings.store_backend != "redis":
            logger.warning("STORE_BACKEND is not redis; clearing a fresh in-memory store has no effect on the server")
        cleared = asyncio.run(clear_in_store(body))

    logger.info("Cleared %d rate-limit entr%s", cleared, "y" if cleared == 1 else "ies")


if __name__ == "__main__":
    main()
