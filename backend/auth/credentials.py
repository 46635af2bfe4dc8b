"""Credential verification boundary.

Password hashing and session issuance live elsewhere; the login route only
needs a yes/no answer (and a user id) for an email/password pair.
"""

from __future__ import annotations

import hmac
from abc import ABC, abstractmethod

from auth.ip_tracking import normalize_email


class CredentialVerifier(ABC):
    """Answers "do these credentials belong to a user?"."""

    @abstractmethod
    async def verify(self, email: str, password: str) -> str | None:
        """Return the user id when the credentials are valid, else ``None``."""


class InMemoryCredentialVerifier(CredentialVerifier):
    """Process-local verifier for development and tests."""

    def __init__(self) -> None:
        self._users: dict[str, tuple[str, str]] = {}

    def register(self, email: str, password: str, user_id: str | None = None) -> None:
        key = normalize_email(email)
        self._users[key] = (user_id or key, password)

    async def verify(self, email: str, password: str) -> str | None:
        entry = self._users.get(normalize_email(email))
        if entry is None:
            return None
        user_id, expected = entry
        if hmac.compare_digest(expected.encode(), password.encode()):
            return user_id
        return None


_verifier: CredentialVerifier = InMemoryCredentialVerifier()


def get_credential_verifier() -> CredentialVerifier:
    return _verifier


def set_credential_verifier(verifier: CredentialVerifier) -> None:
    """Plug in the real user directory."""
    global _verifier
    _verifier = verifier
