"""In-memory key-value store for tests and single-process use."""

from __future__ import annotations

import fnmatch
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from .base import BATCH_OPERATIONS, Batch, KeyValueStore


class InMemoryStore(KeyValueStore):
    """Store data in local memory.

    Useful for tests or when no Redis server is configured. Data is not
    persisted across process restarts. Expiry is checked lazily on access.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}
        self._expires: Dict[str, float] = {}

    # ------------------------------------------------------------------
    def _alive(self, key: str) -> bool:
        deadline = self._expires.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    def _value(self, key: str, kind: type) -> Any:
        if not self._alive(key):
            return None
        value = self._data[key]
        if not isinstance(value, kind):
            raise TypeError(f"Key {key!r} holds a {type(value).__name__}, not a {kind.__name__}")
        return value

    # Synchronous primitives shared by the async API and batches.
    def _set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._expires.pop(key, None)

    def _delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def _hset(self, key: str, field: str, value: str) -> None:
        mapping = self._value(key, dict)
        if mapping is None:
            mapping = self._data[key] = {}
        mapping[field] = value

    def _hdel(self, key: str, *fields: str) -> None:
        mapping = self._value(key, dict)
        if mapping is None:
            return
        for field in fields:
            mapping.pop(field, None)
        if not mapping:
            self._delete(key)

    def _sadd(self, key: str, *members: str) -> None:
        members_set = self._value(key, set)
        if members_set is None:
            members_set = self._data[key] = set()
        members_set.update(members)

    def _srem(self, key: str, *members: str) -> None:
        members_set = self._value(key, set)
        if members_set is None:
            return
        members_set.difference_update(members)
        if not members_set:
            self._delete(key)

    def _expire(self, key: str, seconds: int) -> None:
        if self._alive(key):
            self._expires[key] = time.monotonic() + seconds

    def _persist(self, key: str) -> None:
        self._expires.pop(key, None)

    # ------------------------------------------------------------------
    async def get(self, key: str) -> Optional[str]:
        return self._value(key, str)

    async def set(self, key: str, value: str) -> None:
        self._set(key, value)

    async def exists(self, key: str) -> bool:
        return self._alive(key)

    async def delete(self, *keys: str) -> None:
        self._delete(*keys)

    async def hget(self, key: str, field: str) -> Optional[str]:
        mapping = self._value(key, dict)
        return None if mapping is None else mapping.get(field)

    async def hset(self, key: str, field: str, value: str) -> None:
        self._hset(key, field, value)

    async def hexists(self, key: str, field: str) -> bool:
        mapping = self._value(key, dict)
        return mapping is not None and field in mapping

    async def hvals(self, key: str) -> List[str]:
        mapping = self._value(key, dict)
        return [] if mapping is None else list(mapping.values())

    async def hfirst(self, key: str) -> Optional[str]:
        mapping = self._value(key, dict)
        if not mapping:
            return None
        return next(iter(mapping.values()))

    async def sadd(self, key: str, *members: str) -> None:
        self._sadd(key, *members)

    async def srem(self, key: str, *members: str) -> None:
        self._srem(key, *members)

    async def smembers(self, key: str) -> Set[str]:
        members_set = self._value(key, set)
        return set() if members_set is None else set(members_set)

    async def expire(self, key: str, seconds: int) -> None:
        self._expire(key, seconds)

    async def persist(self, key: str) -> None:
        self._persist(key)

    async def ttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        deadline = self._expires.get(key)
        if deadline is None:
            return -1
        return max(0, round(deadline - time.monotonic()))

    async def scan_iter(self, match: str) -> AsyncIterator[str]:
        for key in list(self._data):
            if fnmatch.fnmatchcase(key, match) and self._alive(key):
                yield key

    async def execute(self, batch: Batch) -> None:
        # No await between operations, so other tasks never see a partial batch.
        for op, args in batch.operations:
            if op not in BATCH_OPERATIONS:
                raise ValueError(f"Unsupported batch operation: {op}")
            getattr(self, f"_{op}")(*args)

    def flush(self) -> None:
        """Drop every key."""
        self._data.clear()
        self._expires.clear()
