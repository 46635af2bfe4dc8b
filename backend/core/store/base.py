"""Abstract key-value store backing the attempt ledger."""

from abc import ABC, abstractmethod
from typing import Any, Optional


class BaseStore(ABC):
    """Key-value interface with per-key TTL.

    Values are JSON-compatible dicts so that an in-process store and a shared
    Redis store are interchangeable behind the ledger.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[dict[str, Any]]:
        """Retrieve a value by key. Returns None if not found or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: dict[str, Any], ttl: Optional[int] = None) -> None:
        """Store a value with optional TTL in seconds (0 or None keeps it until deleted)."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key. Deleting a missing key is not an error."""
        ...

    @abstractmethod
    async def keys(self, pattern: str = "*") -> list[str]:
        """Return all live keys matching a glob pattern."""
        ...

    async def close(self) -> None:
        """Release any connections held by the store."""
        return None
