"""Login and rate-limit administration routes."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from auth import captcha
from auth.credentials import get_credential_verifier
from auth.ip_tracking import (
    create_rate_limit_identifier,
    get_client_ip,
    is_ip_whitelisted,
    normalize_email,
    parse_rate_limit_identifier,
)
from auth.notifications import security_notifier, should_send_notification
from auth.rate_limiter import RateLimitDecision, calculate_delay, get_login_rate_limiter
from config.settings import settings
from monitoring.metrics import failed_login_attempts_total

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str
    password: str
    captcha_token: str | None = None


class ClearRateLimitRequest(BaseModel):
    identifier: str | None = None
    email: str | None = None
    ip: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _too_many_attempts(decision: RateLimitDecision) -> JSONResponse:
    retry_after = decision.retry_after_seconds
    if decision.blocked_until is not None:
        until = datetime.fromtimestamp(decision.blocked_until / 1000, tz=timezone.utc)
        content = {
            "error": "account_locked",
            "message": f"Too many failed attempts. Login is locked until {until.isoformat()}.",
            "retry_after": retry_after,
            "blocked_until": decision.blocked_until,
        }
    else:
        content = {
            "error": "too_many_attempts",
            "message": f"Too many failed attempts. Please wait {retry_after} seconds before trying again.",
            "retry_after": retry_after,
        }
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=content,
        headers={"Retry-After": str(retry_after)},
    )


def _captcha_rejection(error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"error": error, "message": message},
    )


async def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    """Guard for the escape-hatch endpoints. Disabled entirely when no token is configured."""
    if not settings.admin_token or not x_admin_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin token required")
    if not hmac.compare_digest(x_admin_token.encode(), settings.admin_token.encode()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login")
async def login(body: LoginRequest, request: Request):
    """Authenticate with email and password under progressive rate limiting."""
    client_ip = get_client_ip(request)
    email = normalize_email(body.email)

    # Whitelisted IPs (office, monitoring) bypass limiting altogether
    whitelisted = is_ip_whitelisted(client_ip, settings.ip_whitelist)
    identifier: str | None = None
    limiter = await get_login_rate_limiter()

    if not whitelisted:
        identifier = create_rate_limit_identifier(email, client_ip)
        decision = await limiter.check_rate_limit(identifier)
        if not decision.allowed:
            return _too_many_attempts(decision)

        verifier = captcha.captcha_verifier
        if settings.captcha_required_after > 0 and verifier.is_configured:
            count = await limiter.get_failed_attempt_count(identifier)
            if count >= settings.captcha_required_after:
                if not body.captcha_token:
                    return _captcha_rejection("captcha_required", "Please complete the CAPTCHA challenge")
                if not await verifier.verify(body.captcha_token, client_ip):
                    return _captcha_rejection("captcha_failed", "CAPTCHA verification failed")

    user_id = await get_credential_verifier().verify(email, body.password)
    if user_id is None:
        failed_login_attempts_total.inc()
        attempt_count = 0
        if not whitelisted:
            record = await limiter.record_failed_attempt(identifier)
            attempt_count = record.count

        if should_send_notification(attempt_count, limiter.policy):
            security_notifier.notify_failed_login(
                email,
                attempt_count,
                blocked=attempt_count >= limiter.policy.block_threshold,
            )

        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={
                "error": "invalid_credentials",
                "message": "Incorrect email or password",
                "attempt_count": attempt_count,
                "retry_after": limiter.retry_after_seconds(attempt_count) if attempt_count else 0,
            },
        )

    if not whitelisted:
        await limiter.clear_failed_attempts(identifier)
    logger.info("Login succeeded for user %s", user_id)
    return {"success": True, "user_id": user_id}


@router.get("/admin/rate-limit/{identifier:path}", dependencies=[Depends(require_admin_token)])
async def get_rate_limit_status(identifier: str):
    """Current ledger entry and decision for one identifier."""
    limiter = await get_login_rate_limiter()
    record = await limiter.get_failed_attempts(identifier)
    now = limiter.ledger.now_ms()
    email, ip = parse_rate_limit_identifier(identifier)
    return {
        "identifier": identifier,
        "email": email,
        "ip": ip,
        "record": record.to_dict() if record else None,
        "locked": bool(record and record.is_blocked(now)),
        "delay_ms": calculate_delay(record, now, limiter.policy) if record else 0,
    }


@router.post("/admin/rate-limit/clear", dependencies=[Depends(require_admin_token)])
async def clear_rate_limit(body: ClearRateLimitRequest):
    """Clear ledger entries (see ``LoginRateLimiter.clear_rate_limit``)."""
    limiter = await get_login_rate_limiter()
    target, cleared = await limiter.clear_rate_limit(identifier=body.identifier, email=body.email, ip=body.ip)
    logger.warning("Rate-limit entries cleared by admin: target=%s count=%d", target, cleared)
    return {"success": True, "target": target, "cleared": cleared}
