"""Client IP extraction, IP whitelisting and rate-limit identifiers."""

from __future__ import annotations

import ipaddress
import logging

from starlette.requests import Request

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Best-effort client IP: CDN header, then proxy headers, then the socket peer."""
    headers = request.headers

    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host
    return "unknown"


def is_ip_whitelisted(ip: str, whitelist: list[str]) -> bool:
    """Return ``True`` if *ip* equals a whitelist entry or falls in a CIDR entry."""
    if not ip or ip == "unknown":
        return False

    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return ip in whitelist

    for entry in whitelist:
        if entry == ip:
            return True
        if "/" not in entry:
            continue
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning("Ignoring malformed IP whitelist entry: %s", entry)
    return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def create_rate_limit_identifier(email: str, ip: str) -> str:
    """Combined ``email:ip`` key so one attacker cannot lock out a user from everywhere."""
    return f"{normalize_email(email)}:{ip}"


def parse_rate_limit_identifier(identifier: str) -> tuple[str, str]:
    """Split an ``email:ip`` identifier. IPv6 addresses keep their colons."""
    email, sep, ip = identifier.partition(":")
    if not sep:
        return identifier, "unknown"
    return email, ip
