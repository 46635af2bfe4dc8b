"""Security notifications (failed logins, blocked messages).

Delivery is fire-and-forget: callers schedule a notification and move on;
failures are logged and never reach the request path. The actual email
service sits behind an optional webhook.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from auth.attempt_ledger import RateLimitPolicy
from config.settings import settings

logger = logging.getLogger(__name__)


def should_send_notification(attempt_count: int, policy: RateLimitPolicy) -> bool:
    """Notify when a tier is entered, when the lockout starts, and on every attempt after it."""
    tiers = (policy.short_threshold, policy.long_threshold, policy.block_threshold)
    return attempt_count in tiers or attempt_count > policy.block_threshold


class SecurityNotifier:
    """Schedules security notifications to a webhook (or the log when none is set)."""

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None) -> None:
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self._pending_tasks: set[asyncio.Task] = set()

    def notify_failed_login(self, email: str, attempt_count: int, blocked: bool) -> None:
        self._dispatch(
            "failed_login",
            {"email": email, "attempt_count": attempt_count, "blocked": blocked},
        )

    def notify_unsafe_message(self, sender: str, unsafe_urls: list[str]) -> None:
        self._dispatch("unsafe_message_blocked", {"sender": sender, "unsafe_urls": unsafe_urls})

    def _dispatch(self, event: str, data: dict[str, Any]) -> None:
        payload = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **data,
        }
        if not self.webhook_url:
            logger.info("Security notification (no webhook configured): %s", payload)
            return

        task = asyncio.create_task(self._send(payload))
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _send(self, payload: dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except Exception as e:
            logger.warning("Notification dispatch failed (%s): %s", payload.get("event"), e)

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown, tests)."""
        if self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)


security_notifier = SecurityNotifier()
