"""
Shared key/counter store used for rate-limit windows and the OAuth token cache.

Two implementations:
  • InMemoryStore — process-local, for a single instance and for tests
  • RedisStore    — shared across dispatcher instances (``redis.asyncio``)

Both guarantee that ``incr_with_expiry`` is atomic and that
``set_with_expiry`` overwrites in one step.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple, Union

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

Value = Union[str, bytes]


class SharedStore(ABC):
    """Interface of the shared counter/cache collaborator."""

    @abstractmethod
    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key``; set its expiry only when this call created it."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        ...

    @abstractmethod
    async def set_with_expiry(self, key: str, value: Value, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        """Implementations that cannot delete may ignore this."""

    async def close(self) -> None:
        return None


class InMemoryStore(SharedStore):
    """
    Dict-backed store with absolute expiries.

    Operations never await between read and write, so they are atomic with
    respect to other coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[Union[bytes, int], float]] = {}

    def _live(self, key: str) -> Optional[Union[bytes, int]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if time.time() >= expiry:
            del self._data[key]
            return None
        return value

    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        current = self._live(key)
        if current is None:
            self._data[key] = (1, time.time() + ttl_seconds)
            return 1
        count = int(current) + 1
        self._data[key] = (count, self._data[key][1])
        return count

    async def get(self, key: str) -> Optional[bytes]:
        value = self._live(key)
        if value is None:
            return None
        if isinstance(value, int):
            return str(value).encode()
        return value

    async def set_with_expiry(self, key: str, value: Value, ttl_seconds: int) -> None:
        raw = value.encode() if isinstance(value, str) else value
        self._data[key] = (raw, time.time() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


# INCR + EXPIRE-on-create in one round trip
_INCR_WITH_EXPIRY_LUA = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return count
"""


class RedisStore(SharedStore):
    """Redis-backed store; safe for multiple dispatcher processes."""

    def __init__(self, client: aioredis.Redis, key_prefix: str = "") -> None:
        self._client = client
        self._prefix = f"{key_prefix}:" if key_prefix else ""
        self._incr_script = client.register_script(_INCR_WITH_EXPIRY_LUA)

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "") -> "RedisStore":
        client = aioredis.from_url(url, socket_timeout=5.0, socket_connect_timeout=5.0)
        logger.info("Shared store: Redis at %s", url.split("@")[-1])
        return cls(client, key_prefix=key_prefix)

    def _k(self, key: str) -> str:
        return self._prefix + key

    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        result = await self._incr_script(keys=[self._k(key)], args=[int(ttl_seconds)])
        return int(result)

    async def get(self, key: str) -> Optional[bytes]:
        return await self._client.get(self._k(key))

    async def set_with_expiry(self, key: str, value: Value, ttl_seconds: int) -> None:
        await self._client.set(self._k(key), value, ex=max(int(ttl_seconds), 1))

    async def delete(self, key: str) -> None:
        await self._client.delete(self._k(key))

    async def close(self) -> None:
        await self._client.aclose()


def build_store(redis_url: str, key_prefix: str = "") -> SharedStore:
    """Pick the store implementation from settings."""
    if redis_url:
        return RedisStore.from_url(redis_url, key_prefix=key_prefix)
    logger.warning(
        "REDIS_URL not set — using in-process store; rate limits and tokens "
        "will not be shared between instances"
    )
    return InMemoryStore()
