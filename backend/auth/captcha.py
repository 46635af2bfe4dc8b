"""CAPTCHA verification (reCAPTCHA, hCaptcha, Cloudflare Turnstile).

Treated as an opaque yes/no oracle: any transport or provider error counts as
"not verified".
"""

from __future__ import annotations

import logging

import httpx

from config.settings import settings

logger = logging.getLogger(__name__)

VERIFY_URLS = {
    "recaptcha": "https://www.google.com/recaptcha/api/siteverify",
    "hcaptcha": "https://api.hcaptcha.com/siteverify",
    "turnstile": "https://challenges.cloudflare.com/turnstile/v0/siteverify",
}


class CaptchaVerifier:
    """Verifies a client CAPTCHA token against the configured provider."""

    def __init__(
        self,
        provider: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider or settings.captcha_provider
        self.secret_key = secret_key if secret_key is not None else settings.captcha_secret_key
        self.timeout = timeout or settings.captcha_timeout_seconds
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key) and self.provider in VERIFY_URLS

    async def verify(self, token: str | None, remote_ip: str | None = None) -> bool:
        if not self.is_configured:
            logger.warning("CAPTCHA verification requested but no secret key is configured")
            return False
        if not token:
            return False

        data = {"secret": self.secret_key, "response": token}
        if remote_ip and remote_ip != "unknown":
            data["remoteip"] = remote_ip

        try:
            if self._client is not None:
                response = await self._client.post(VERIFY_URLS[self.provider], data=data, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(VERIFY_URLS[self.provider], data=data)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("CAPTCHA verification failed (%s): %s", self.provider, e)
            return False

        success = bool(payload.get("success"))
        if not success:
            logger.info("CAPTCHA rejected by %s: %s", self.provider, payload.get("error-codes", []))
        return success


captcha_verifier = CaptchaVerifier()
