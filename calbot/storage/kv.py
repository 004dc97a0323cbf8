"""
String-keyed key-value stores backing sessions and callback correlation.

No locking and no compare-and-set: concurrent writers race and the
last write wins.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the backing store is unreachable or holds unusable data."""


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store the value without expiry."""

    async def close(self) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store for tests and single-instance deployments."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, url: str):
        self._client = aioredis.Redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as e:
            logger.error("Redis GET %s failed: %s", key, e)
            raise StoreError(f"Cannot read key {key}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value)
        except RedisError as e:
            logger.error("Redis SET %s failed: %s", key, e)
            raise StoreError(f"Cannot write key {key}") from e

    async def close(self) -> None:
        await self._client.aclose()


def build_store(redis_url: str) -> KeyValueStore:
    if redis_url:
        logger.info("Using Redis key-value store")
        return RedisKeyValueStore(redis_url)

    logger.warning("REDIS_URL not set, sessions live in process memory only")
    return InMemoryKeyValueStore()
