"""Redis-backed store using redis.asyncio, shared across service instances."""

import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

from .base import BaseStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "abuse-guard:"


class RedisStore(BaseStore):
    """Redis store with connection pooling and JSON serialization.

    Errors are logged and degrade to "missing" on read and no-op on write, so
    a Redis outage relaxes rate limiting instead of failing every login.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        max_connections: int = 20,
        key_prefix: str = KEY_PREFIX,
        client: Optional[aioredis.Redis] = None,
    ):
        self._url = url
        self._max_connections = max_connections
        self._key_prefix = key_prefix
        self._redis = client

    def _get_client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._url,
                max_connections=self._max_connections,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _strip_key(self, full_key: str) -> str:
        return full_key[len(self._key_prefix):]

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        try:
            raw = await self._get_client().get(self._make_key(key))
        except Exception as e:
            logger.warning("Redis GET error for key=%s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding undecodable value for key=%s", key)
            return None
        return value if isinstance(value, dict) else None

    async def set(self, key: str, value: dict[str, Any], ttl: Optional[int] = None) -> None:
        try:
            client = self._get_client()
            serialized = json.dumps(value, ensure_ascii=False)
            if ttl:
                await client.setex(self._make_key(key), ttl, serialized)
            else:
                await client.set(self._make_key(key), serialized)
        except Exception as e:
            logger.warning("Redis SET error for key=%s: %s", key, e)

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(self._make_key(key))
        except Exception as e:
            logger.warning("Redis DELETE error for key=%s: %s", key, e)

    async def keys(self, pattern: str = "*") -> list[str]:
        try:
            client = self._get_client()
            return [
                self._strip_key(k)
                async for k in client.scan_iter(match=self._make_key(pattern), count=100)
            ]
        except Exception as e:
            logger.warning("Redis SCAN error for pattern=%s: %s", pattern, e)
            return []

    async def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(await self._get_client().ping())
        except Exception as e:
            logger.warning("Redis health check failed: %s", e)
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
