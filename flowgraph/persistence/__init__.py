"""Persistence layer for flowgraph workflows."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FlowgraphConfig, load_config
from ..registry import JobRegistry
from .base import Batch, KeyValueStore
from .inmemory import InMemoryStore
from .repository import WorkflowRepository

_store_instance: KeyValueStore | None = None


def get_store(
    backend: Optional[str] = None, config: Optional[FlowgraphConfig] = None
) -> KeyValueStore:
    """Factory function to obtain the configured key-value store.

    The backend is selected by ``backend``, the ``FLOWGRAPH_STORE`` environment
    variable or the loaded configuration. The in-memory store is cached so that
    a client and workers in the same process share state.
    """

    global _store_instance
    config = config or load_config()
    backend = (backend or os.getenv("FLOWGRAPH_STORE") or config.store.backend).lower()

    if backend == "inmemory":
        if not isinstance(_store_instance, InMemoryStore):
            _store_instance = InMemoryStore()
        return _store_instance
    elif backend == "redis":
        from .redis import RedisStore

        redis_conf = config.redis
        return RedisStore(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            url=redis_conf.url,
        )
    else:
        raise ValueError(f"Unsupported store backend: {backend}")


def get_repository(
    store: Optional[KeyValueStore] = None,
    config: Optional[FlowgraphConfig] = None,
    registry: Optional[JobRegistry] = None,
) -> WorkflowRepository:
    """Build a :class:`WorkflowRepository` over ``store`` or the configured one."""

    config = config or load_config()
    return WorkflowRepository(
        store or get_store(config=config),
        key_prefix=config.store.key_prefix,
        default_ttl=config.ttl,
        registry=registry,
    )


def reset_store() -> None:
    """Forget the cached in-memory store."""
    global _store_instance
    _store_instance = None


__all__ = [
    "Batch",
    "KeyValueStore",
    "InMemoryStore",
    "WorkflowRepository",
    "get_store",
    "get_repository",
    "reset_store",
]
