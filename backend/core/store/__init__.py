"""Key-value stores for rate-limit state: Redis or in-process."""

import asyncio
import logging

from config.settings import settings

from .base import BaseStore
from .memory_store import InMemoryStore
from .redis_store import RedisStore

logger = logging.getLogger(__name__)


async def create_store() -> BaseStore:
    """Create a store instance based on settings.

    Returns RedisStore when ``STORE_BACKEND=redis`` and Redis answers a ping,
    otherwise falls back to InMemoryStore.
    """
    if settings.store_backend != "redis":
        return InMemoryStore(max_size=settings.memory_store_max_size)

    store = RedisStore(
        url=settings.redis_url,
        max_connections=settings.redis_max_connections,
        key_prefix=settings.store_key_prefix,
    )
    if await store.health_check():
        return store

    logger.warning("Redis unreachable at startup; rate-limit state is process-local")
    await store.close()
    return InMemoryStore(max_size=settings.memory_store_max_size)


# Module-level singleton (initialized lazily)
_store_instance: BaseStore | None = None
_store_lock = asyncio.Lock()


async def get_store() -> BaseStore:
    """Get or create the global store singleton."""
    global _store_instance
    if _store_instance is not None:
        return _store_instance
    async with _store_lock:
        if _store_instance is None:
            _store_instance = await create_store()
    return _store_instance


async def close_store() -> None:
    """Close and forget the store singleton."""
    global _store_instance
    if _store_instance is not None:
        await _store_instance.close()
    _store_instance = None


def reset_store() -> None:
    """Reset the store singleton (for testing)."""
    global _store_instance
    _store_instance = None


__all__ = [
    "BaseStore",
    "InMemoryStore",
    "RedisStore",
    "create_store",
    "get_store",
    "close_store",
    "reset_store",
]
