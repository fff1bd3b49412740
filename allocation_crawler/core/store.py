"""
Key-value store adapter with Redis backend
Hash and set primitives, conditional set-with-expiry and pipelined batches
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

import redis.asyncio as redis
import structlog

from config import settings
from .exceptions import ConfigurationError, StoreFailureError
from .keys import KeySpace

logger = structlog.get_logger(__name__)


class Batch:
    """
    Write commands queued for a single MULTI/EXEC round trip.

    Nothing is sent until the owning ``KeyValueStore.batch()`` block exits
    cleanly. Any command error aborts the whole batch with StoreFailureError.
    """

    def __init__(self, pipeline: "redis.client.Pipeline"):
        self._pipe = pipeline
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def hset(self, key: str, mapping: dict[str, str]) -> "Batch":
        self._pipe.hset(key, mapping=mapping)
        self._size += 1
        return self

    def sadd(self, key: str, *members: str) -> "Batch":
        if members:
            self._pipe.sadd(key, *members)
            self._size += 1
        return self

    def srem(self, key: str, *members: str) -> "Batch":
        if members:
            self._pipe.srem(key, *members)
            self._size += 1
        return self

    def delete(self, *keys: str) -> "Batch":
        if keys:
            self._pipe.delete(*keys)
            self._size += 1
        return self


class KeyValueStore:
    """
    Thin adapter over one shared Redis.

    Every Redis error is re-raised as StoreFailureError and never retried:
    retrying a conditional set blindly could mask a legitimate conflict.
    """

    def __init__(self, client: redis.Redis, keys: Optional[KeySpace] = None):
        self._client = client
        self.keys = keys or KeySpace(settings.redis.key_prefix)

    @classmethod
    def from_url(cls, url: Optional[str] = None) -> "KeyValueStore":
        """Build a store with its own connection"""
        url = url or settings.redis.url
        try:
            client = redis.from_url(
                url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=settings.redis.connect_timeout,
                socket_timeout=settings.redis.socket_timeout,
                retry_on_timeout=False,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid Redis URL: {e}", config_key="REDIS_URL") from e
        logger.debug("Store connection created", url=url)
        return cls(client)

    async def close(self) -> None:
        """Close the Redis connection"""
        await self._client.aclose()

    @property
    def client(self) -> redis.Redis:
        return self._client

    @asynccontextmanager
    async def _guard(self, operation: str, key: Optional[str] = None) -> AsyncIterator[None]:
        try:
            yield
        except redis.RedisError as e:
            logger.error("Store operation failed", operation=operation, key=key, error=str(e))
            raise StoreFailureError(operation, str(e), key=key) from e

    # ------------------------------------------------------------------
    # Hashes
    # ------------------------------------------------------------------

    async def hgetall(self, key: str) -> dict[str, str]:
        async with self._guard("hgetall", key):
            return await self._client.hgetall(key)

    async def hgetall_many(self, keys: Sequence[str]) -> list[dict[str, str]]:
        """Read several hashes in one round trip, preserving order"""
        if not keys:
            return []
        async with self._guard("hgetall_many"):
            async with self._client.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.hgetall(key)
                return await pipe.execute()

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        async with self._guard("hset", key):
            await self._client.hset(key, mapping=mapping)

    async def exists(self, key: str) -> bool:
        async with self._guard("exists", key):
            return bool(await self._client.exists(key))

    async def exists_many(self, keys: Sequence[str]) -> list[bool]:
        if not keys:
            return []
        async with self._guard("exists_many"):
            async with self._client.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.exists(key)
                return [bool(found) for found in await pipe.execute()]

    # ------------------------------------------------------------------
    # Sets
    # ------------------------------------------------------------------

    async def smembers(self, key: str) -> set[str]:
        async with self._guard("smembers", key):
            return set(await self._client.smembers(key))

    async def sinter(self, keys: Sequence[str]) -> set[str]:
        if len(keys) == 1:
            return await self.smembers(keys[0])
        async with self._guard("sinter"):
            return set(await self._client.sinter(list(keys)))

    async def sunion(self, keys: Sequence[str]) -> set[str]:
        if len(keys) == 1:
            return await self.smembers(keys[0])
        async with self._guard("sunion"):
            return set(await self._client.sunion(list(keys)))

    # ------------------------------------------------------------------
    # Strings and locks
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        async with self._guard("get", key):
            return await self._client.get(key)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """SET NX EX: True only for the caller that created the key"""
        async with self._guard("set_if_absent", key):
            return bool(await self._client.set(key, value, nx=True, ex=ttl_seconds))

    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Delete ``key`` only while it still holds ``value``"""
        async with self._guard("delete_if_equals", key):
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != value:
                    return False
                pipe.multi()
                pipe.delete(key)
                try:
                    await pipe.execute()
                except redis.WatchError:
                    return False
                return True

    async def ttl(self, key: str) -> int:
        async with self._guard("ttl", key):
            return await self._client.ttl(key)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with self._guard("delete", keys[0]):
            return await self._client.delete(*keys)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def batch(self) -> AsyncIterator[Batch]:
        """
        Queue writes and send them together on exit.

        Usage:
            async with store.batch() as batch:
                batch.hset(key, fields)
                batch.sadd(index, member)
        """
        async with self._client.pipeline(transaction=True) as pipe:
            queued = Batch(pipe)
            yield queued
            if not len(queued):
                return
            async with self._guard("batch"):
                await pipe.execute(raise_on_error=True)
            logger.debug("Batch applied", commands=len(queued))

    async def health_check(self) -> dict[str, Any]:
        """Check store health"""
        try:
            await self._client.ping()
            return {"healthy": True, "keys": await self._client.dbsize()}
        except redis.RedisError as e:
            return {"healthy": False, "error": str(e)}


@asynccontextmanager
async def connect(url: Optional[str] = None) -> AsyncIterator[KeyValueStore]:
    """
    Open a store for the duration of one request or command.

    Connections are never reused across requests.
    """
    store = KeyValueStore.from_url(url)
    try:
        yield store
    finally:
        await store.close()
