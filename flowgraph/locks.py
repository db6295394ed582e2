"""Named mutual-exclusion used around successor dispatch."""

from __future__ import annotations

import abc
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Set

from .config import FlowgraphConfig, load_config
from .constants import DEFAULT_LOCK_BLOCK, DEFAULT_LOCK_LEASE, DEFAULT_LOCK_SLEEP
from .errors import LockTimeout

logger = logging.getLogger(__name__)


class LockService(metaclass=abc.ABCMeta):
    """Acquire-with-timeout / release over a named lock.

    ``sleep`` is the polling interval while waiting and ``block`` the longest
    time to wait before raising :class:`LockTimeout`.
    """

    @abc.abstractmethod
    def lock(
        self,
        name: str,
        sleep: float = DEFAULT_LOCK_SLEEP,
        block: float = DEFAULT_LOCK_BLOCK,
    ) -> Any:
        """Return an async context manager holding ``name`` for its body."""
        raise NotImplementedError


class InMemoryLockService(LockService):
    """Process-local locks for a single event loop."""

    def __init__(self) -> None:
        self._held: Set[str] = set()

    def locked(self, name: str) -> bool:
        return name in self._held

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        sleep: float = DEFAULT_LOCK_SLEEP,
        block: float = DEFAULT_LOCK_BLOCK,
    ) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + block
        while name in self._held:
            if loop.time() >= deadline:
                raise LockTimeout(name, block)
            await asyncio.sleep(sleep)
        self._held.add(name)
        try:
            yield
        finally:
            self._held.discard(name)


class RedisLockService(LockService):
    """Distributed locks built on redis-py's ``Lock``.

    ``lease`` bounds how long a crashed holder can keep the lock.
    """

    def __init__(self, client: Any, lease: float = DEFAULT_LOCK_LEASE) -> None:
        self._redis = client
        self.lease = lease

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        sleep: float = DEFAULT_LOCK_SLEEP,
        block: float = DEFAULT_LOCK_BLOCK,
    ) -> AsyncIterator[None]:
        from redis.exceptions import LockError

        redis_lock = self._redis.lock(
            name, timeout=self.lease, sleep=sleep, blocking_timeout=block
        )
        if not await redis_lock.acquire():
            raise LockTimeout(name, block)
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError as e:
                logger.warning(f"Lock {name} expired before release: {e}")


_lock_service_instance: Optional[LockService] = None


def get_lock_service(
    backend: Optional[str] = None,
    config: Optional[FlowgraphConfig] = None,
    client: Any = None,
) -> LockService:
    """Factory for the lock service matching the configured store backend."""

    global _lock_service_instance
    config = config or load_config()
    backend = (backend or os.getenv("FLOWGRAPH_STORE") or config.store.backend).lower()

    if backend == "inmemory":
        if not isinstance(_lock_service_instance, InMemoryLockService):
            _lock_service_instance = InMemoryLockService()
        return _lock_service_instance
    elif backend == "redis":
        if client is None:
            from .persistence.redis import build_redis_client

            redis_conf = config.redis
            client = build_redis_client(
                redis_conf.host,
                redis_conf.port,
                redis_conf.db,
                redis_conf.password,
                redis_conf.url,
            )
        return RedisLockService(client, lease=config.locks.lease)
    else:
        raise ValueError(f"Unsupported lock backend: {backend}")
