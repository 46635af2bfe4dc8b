"""CSRF token issuance."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from security.csrf import generate_csrf_token, set_csrf_cookie

logger = logging.getLogger(__name__)

router = APIRouter()


def _is_secure_request(request: Request) -> bool:
    return (
        settings.is_production
        or request.headers.get("x-forwarded-proto") == "https"
        or request.url.scheme == "https"
    )


@router.get("/csrf/token")
async def issue_csrf_token(request: Request):
    """Issue a token as a readable cookie and in the body.

    The client echoes it in the CSRF header on every state-changing request.
    """
    token = generate_csrf_token()
    response = JSONResponse({"success": True, "token": token})
    set_csrf_cookie(response, token, secure=_is_secure_request(request))
    return response
