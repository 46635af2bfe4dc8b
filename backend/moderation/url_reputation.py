"""URL reputation gate for outbound message content.

URLs are pulled out of free text and checked against the Google Safe Browsing
v4 ``threatMatches:find`` API. The oracle call has a hard time bound; a slow or
failing oracle never blocks the request path. By default such failures let
the message through (fail-open); ``URL_REPUTATION_FAIL_MODE=closed`` rejects
instead.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field

import httpx

from config.settings import settings
from monitoring.metrics import unsafe_urls_total, url_checks_total

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("abuse-guard.security")

URL_IN_TEXT = re.compile(r"""https?://[^\s"'<>)\]]+""", re.IGNORECASE)
TRAILING_PUNCTUATION = re.compile(r"[.,;:!?)]+$")

THREAT_TYPES = ["MALWARE", "SOCIAL_ENGINEERING"]


@dataclass
class UrlCheckResult:
    unsafe: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class GateDecision:
    allowed: bool
    urls: list[str] = field(default_factory=list)
    unsafe: list[str] = field(default_factory=list)
    error: str | None = None
    reason: str | None = None  # unsafe_urls / url_check_unavailable


def extract_urls_from_text(text: str | None, max_length: int | None = None) -> list[str]:
    """Candidate http(s) URLs in *text*, trailing punctuation stripped, first occurrence order."""
    if not text or not isinstance(text, str):
        return []
    max_length = max_length or settings.url_max_length

    seen: set[str] = set()
    urls: list[str] = []
    for match in URL_IN_TEXT.finditer(text):
        url = TRAILING_PUNCTUATION.sub("", match.group(0))[:max_length]
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


class SafeBrowsingClient:
    """Async Safe Browsing lookup with a bounded wait."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        max_urls: int | None = None,
        client_id: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.safe_browsing_api_key
        self.api_url = api_url or settings.safe_browsing_url
        self.timeout = timeout or settings.safe_browsing_timeout_seconds
        self.max_urls = max_urls or settings.safe_browsing_max_urls
        self.client_id = client_id or settings.safe_browsing_client_id
        self._client = http_client
        self.consecutive_errors = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _build_body(self, urls: list[str]) -> dict:
        return {
            "client": {"clientId": self.client_id, "clientVersion": settings.app_version},
            "threatInfo": {
                "threatTypes": THREAT_TYPES,
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url} for url in urls],
            },
        }

    async def check_urls_with_safe_browsing(self, urls: list[str]) -> UrlCheckResult:
        """Return the subset of *urls* the oracle flags.

        Never raises: timeouts, transport failures and non-2xx answers come
        back as ``UrlCheckResult(unsafe=[], error=...)``.
        """
        if not self.is_configured or not urls:
            url_checks_total.labels(outcome="skipped").inc()
            return UrlCheckResult()

        unique = list(dict.fromkeys(urls))[: self.max_urls]
        try:
            response = await asyncio.wait_for(
                self._get_client().post(
                    self.api_url,
                    params={"key": self.api_key},
                    json=self._build_body(unique),
                ),
                timeout=self.timeout,
            )
            if not response.is_success:
                return self._failed(f"Safe Browsing API {response.status_code}: {response.text[:200]}")
            data = response.json()
            if not isinstance(data, dict):
                return self._failed("Safe Browsing API returned a non-object body")
            matches = data.get("matches") or []
            if not isinstance(matches, list):
                return self._failed("Safe Browsing API returned malformed matches")
        except asyncio.TimeoutError:
            return self._failed(f"Safe Browsing API timed out after {self.timeout}s")
        except (httpx.HTTPError, ValueError) as e:
            return self._failed(f"{type(e).__name__}: {e}")

        self.consecutive_errors = 0
        unsafe = [
            m["threat"]["url"]
            for m in matches
            if isinstance(m, dict) and isinstance(m.get("threat"), dict) and m["threat"].get("url")
        ]
        if unsafe:
            url_checks_total.labels(outcome="unsafe").inc()
            unsafe_urls_total.inc(len(unsafe))
        else:
            url_checks_total.labels(outcome="clean").inc()
        return UrlCheckResult(unsafe=unsafe)

    def _failed(self, error: str) -> UrlCheckResult:
        url_checks_total.labels(outcome="error").inc()
        self.consecutive_errors += 1
        logger.warning("URL reputation check failed: %s", error)
        if self.consecutive_errors == settings.url_reputation_error_alert_threshold:
            security_logger.error(
                "URL reputation oracle has failed %d times in a row; messages are passing unchecked",
                self.consecutive_errors,
            )
        return UrlCheckResult(error=error)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class UrlReputationGate:
    """Extraction + oracle check + fail-mode policy."""

    def __init__(self, client: SafeBrowsingClient | None = None, fail_mode: str | None = None) -> None:
        self.client = client or SafeBrowsingClient()
        self.fail_mode = fail_mode or settings.url_reputation_fail_mode

    async def evaluate(self, *texts: str | None) -> GateDecision:
        urls: list[str] = []
        for text in texts:
            for url in extract_urls_from_text(text):
                if url not in urls:
                    urls.append(url)
        if not urls:
            return GateDecision(allowed=True)

        result = await self.client.check_urls_with_safe_browsing(urls)
        if result.unsafe:
            security_logger.warning("Blocked content with %d unsafe URL(s)", len(result.unsafe))
            return GateDecision(allowed=False, urls=urls, unsafe=result.unsafe, reason="unsafe_urls")
        if result.error and self.fail_mode == "closed":
            return GateDecision(allowed=False, urls=urls, error=result.error, reason="url_check_unavailable")
        return GateDecision(allowed=True, urls=urls, error=result.error)

    async def close(self) -> None:
        await self.client.close()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_gate: UrlReputationGate | None = None


def get_url_reputation_gate() -> UrlReputationGate:
    global _gate
    if _gate is None:
        _gate = UrlReputationGate()
    return _gate


def set_url_reputation_gate(gate: UrlReputationGate | None) -> None:
    global _gate
    _gate = gate


async def close_url_reputation_gate() -> None:
    global _gate
    if _gate is not None:
        await _gate.close()
    _gate = None


async def check_urls_with_safe_browsing(urls: list[str]) -> UrlCheckResult:
    return await get_url_reputation_gate().client.check_urls_with_safe_browsing(urls)
