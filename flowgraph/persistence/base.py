"""Key-value store interface used by the workflow repository."""

from __future__ import annotations

import abc
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Set, Tuple

# Write operations accepted inside a batch; names follow the Redis commands.
BATCH_OPERATIONS = frozenset({"set", "delete", "hset", "hdel", "sadd", "srem", "expire", "persist"})


class Batch:
    """Collects write operations that a store applies as one unit."""

    def __init__(self) -> None:
        self.operations: List[Tuple[str, Tuple[Any, ...]]] = []

    def _add(self, op: str, *args: Any) -> "Batch":
        self.operations.append((op, args))
        return self

    def set(self, key: str, value: str) -> "Batch":
        return self._add("set", key, value)

    def delete(self, *keys: str) -> "Batch":
        return self._add("delete", *keys)

    def hset(self, key: str, field: str, value: str) -> "Batch":
        return self._add("hset", key, field, value)

    def hdel(self, key: str, *fields: str) -> "Batch":
        return self._add("hdel", key, *fields)

    def sadd(self, key: str, *members: str) -> "Batch":
        return self._add("sadd", key, *members)

    def srem(self, key: str, *members: str) -> "Batch":
        return self._add("srem", key, *members)

    def expire(self, key: str, seconds: int) -> "Batch":
        return self._add("expire", key, seconds)

    def persist(self, key: str) -> "Batch":
        return self._add("persist", key)

    def __len__(self) -> int:
        return len(self.operations)


class KeyValueStore(metaclass=abc.ABCMeta):
    """Abstract string-keyed store with hashes, sets and expiry."""

    async def connect(self) -> None:
        """Open connection to the store (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the store (no-op by default)."""
        pass

    # strings ----------------------------------------------------------
    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, *keys: str) -> None:
        raise NotImplementedError

    # hashes -----------------------------------------------------------
    @abc.abstractmethod
    async def hget(self, key: str, field: str) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def hset(self, key: str, field: str, value: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def hexists(self, key: str, field: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def hvals(self, key: str) -> List[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def hfirst(self, key: str) -> Optional[str]:
        """Return the value of whichever field a scan of ``key`` yields first."""
        raise NotImplementedError

    # sets -------------------------------------------------------------
    @abc.abstractmethod
    async def sadd(self, key: str, *members: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def srem(self, key: str, *members: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def smembers(self, key: str) -> Set[str]:
        raise NotImplementedError

    # expiry -----------------------------------------------------------
    @abc.abstractmethod
    async def expire(self, key: str, seconds: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def persist(self, key: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def ttl(self, key: str) -> int:
        """Seconds left; ``-1`` when the key never expires, ``-2`` when missing."""
        raise NotImplementedError

    # enumeration ------------------------------------------------------
    @abc.abstractmethod
    def scan_iter(self, match: str) -> AsyncIterator[str]:
        raise NotImplementedError

    # atomic writes ----------------------------------------------------
    @abc.abstractmethod
    async def execute(self, batch: Batch) -> None:
        """Apply every operation of ``batch`` atomically."""
        raise NotImplementedError

    @asynccontextmanager
    async def batch(self) -> AsyncIterator[Batch]:
        """Collect writes and apply them on exit unless the block raised."""
        batch = Batch()
        yield batch
        if batch.operations:
            await self.execute(batch)
