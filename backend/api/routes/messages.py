"""Outbound messages, screened by the URL reputation gate before delivery."""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from auth.ip_tracking import get_client_ip
from auth.notifications import security_notifier
from moderation.url_reputation import get_url_reputation_gate

logger = logging.getLogger(__name__)

router = APIRouter()


class MessageRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=500)
    body: str = Field(..., min_length=1, max_length=20_000)
    recipient_ids: list[str] = Field(..., min_length=1)


@router.post("/messages", status_code=status.HTTP_202_ACCEPTED)
async def send_message(payload: MessageRequest, request: Request):
    decision = await get_url_reputation_gate().evaluate(payload.subject, payload.body)

    if decision.reason == "unsafe_urls":
        sender = get_client_ip(request)
        security_notifier.notify_unsafe_message(sender, decision.unsafe)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "unsafe_urls",
                "message": "The message contains links flagged as unsafe",
                "unsafe_urls": decision.unsafe,
            },
        )
    if decision.reason == "url_check_unavailable":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": "url_check_unavailable",
                "message": "Links in the message could not be verified. Please try again later.",
            },
        )

    message_id = str(uuid.uuid4())
    logger.info(
        "Message %s accepted for %d recipient(s) (%d link(s) checked)",
        message_id,
        len(payload.recipient_ids),
        len(decision.urls),
    )
    return {
        "success": True,
        "message_id": message_id,
        "recipient_count": len(payload.recipient_ids),
        "accepted_at": datetime.now(timezone.utc).isoformat(),
    }
