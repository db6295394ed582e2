"""Redis-backed key-value store."""

from __future__ import annotations

from typing import Any, AsyncIterator, List, Optional, Set

import redis.asyncio as redis

from .base import BATCH_OPERATIONS, Batch, KeyValueStore


def build_redis_client(
    host: str = "localhost",
    port: int = 6379,
    db: int = 0,
    password: Optional[str] = None,
    url: Optional[str] = None,
) -> "redis.Redis":
    """Create an asyncio Redis client that decodes responses to ``str``."""
    if url:
        return redis.Redis.from_url(url, decode_responses=True)
    return redis.Redis(
        host=host,
        port=port,
        db=db,
        password=password,
        decode_responses=True,
    )


class RedisStore(KeyValueStore):
    """Key-value store on top of a Redis server."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        url: Optional[str] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.url = url
        self._redis: Optional[Any] = client

    @property
    def client(self) -> Any:
        if self._redis is None:
            self._redis = build_redis_client(
                self.host, self.port, self.db, self.password, self.url
            )
        return self._redis

    async def connect(self) -> None:
        """Connect to Redis."""
        await self.client.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.client.delete(*keys)

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self.client.hget(key, field)

    async def hset(self, key: str, field: str, value: str) -> None:
        await self.client.hset(key, field, value)

    async def hexists(self, key: str, field: str) -> bool:
        return bool(await self.client.hexists(key, field))

    async def hvals(self, key: str) -> List[str]:
        return await self.client.hvals(key)

    async def hfirst(self, key: str) -> Optional[str]:
        async for _, value in self.client.hscan_iter(key, count=1):
            return value
        return None

    async def sadd(self, key: str, *members: str) -> None:
        if members:
            await self.client.sadd(key, *members)

    async def srem(self, key: str, *members: str) -> None:
        if members:
            await self.client.srem(key, *members)

    async def smembers(self, key: str) -> Set[str]:
        return set(await self.client.smembers(key))

    async def expire(self, key: str, seconds: int) -> None:
        await self.client.expire(key, seconds)

    async def persist(self, key: str) -> None:
        await self.client.persist(key)

    async def ttl(self, key: str) -> int:
        return await self.client.ttl(key)

    async def scan_iter(self, match: str) -> AsyncIterator[str]:
        async for key in self.client.scan_iter(match=match):
            yield key

    async def execute(self, batch: Batch) -> None:
        """Run the batch inside MULTI/EXEC."""
        async with self.client.pipeline(transaction=True) as pipe:
            for op, args in batch.operations:
                if op not in BATCH_OPERATIONS:
                    raise ValueError(f"Unsupported batch operation: {op}")
                getattr(pipe, op)(*args)
            await pipe.execute()
