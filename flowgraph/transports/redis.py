"""Redis transport for cross-process job queues."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Optional, Tuple

from pydantic import ValidationError

from ..contracts import JobMessage
from ..persistence.redis import build_redis_client
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """Redis-based transport for distributed job queues.

    Each queue is a list; delayed messages sit in a sorted set scored by the
    time they become due and are moved onto the list by consumers. Messages
    nacked without requeue are pushed to a dead-letter list.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        url: Optional[str] = None,
        prefix: str = "flowgraph",
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.url = url
        self.prefix = prefix
        self._redis: Optional[Any] = None

    def queue_key(self, queue: str) -> str:
        return f"{self.prefix}:queue:{queue}"

    def delayed_key(self, queue: str) -> str:
        return f"{self.prefix}:delayed:{queue}"

    def dead_key(self, queue: str) -> str:
        return f"{self.prefix}:dead:{queue}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = build_redis_client(
            self.host, self.port, self.db, self.password, self.url
        )
        # Test connection
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, queue: str, message: JobMessage, delay: float = 0.0) -> None:
        """Publish message to the Redis list for ``queue``, or schedule it."""
        if not self._redis:
            await self.connect()

        message_json = message.to_json()
        if delay > 0:
            await self._redis.zadd(self.delayed_key(queue), {message_json: time.time() + delay})
        else:
            await self._redis.lpush(self.queue_key(queue), message_json)

    async def _release_due(self, queue: str) -> None:
        due = await self._redis.zrangebyscore(self.delayed_key(queue), "-inf", time.time())
        for message_json in due:
            # Only the consumer whose ZREM succeeds moves the message.
            if await self._redis.zrem(self.delayed_key(queue), message_json):
                await self._redis.lpush(self.queue_key(queue), message_json)

    async def subscribe(
        self, queue: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, JobMessage]]:
        """Subscribe to messages from a Redis queue."""
        if not self._redis:
            await self.connect()

        start_time = asyncio.get_running_loop().time() if lifespan else None

        while True:
            if lifespan and start_time:
                elapsed = asyncio.get_running_loop().time() - start_time
                if elapsed >= lifespan:
                    break

            await self._release_due(queue)

            # Blocking pop with timeout
            result = await self._redis.brpop(self.queue_key(queue), timeout=1)

            if result:
                _, message_json = result
                try:
                    message = JobMessage.from_json(message_json)
                except ValidationError as e:
                    logger.warning(f"Failed to parse message on {queue}: {e}")
                    continue
                yield message_json, message

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass

    async def nack(self, raw_message: str, requeue: bool = True) -> None:
        message = JobMessage.from_json(raw_message)
        key = self.queue_key(message.queue) if requeue else self.dead_key(message.queue)
        await self._redis.lpush(key, raw_message)
