"""Transport factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FlowgraphConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport

_transport_instance: BaseTransport | None = None


def get_transport(
    backend: Optional[str] = None, config: Optional[FlowgraphConfig] = None
) -> BaseTransport:
    """Factory function to get the configured transport.

    The in-memory transport is cached so producers and workers running in the
    same process see the same queues.
    """

    global _transport_instance
    config = config or load_config()
    backend = (
        backend
        or os.getenv("FLOWGRAPH_TRANSPORT")
        or config.transport.backend
    ).lower()

    if backend == "inmemory":
        if not isinstance(_transport_instance, InMemoryTransport):
            _transport_instance = InMemoryTransport()
        return _transport_instance
    elif backend == "redis":
        from .redis import RedisTransport

        redis_conf = config.redis
        return RedisTransport(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            url=redis_conf.url,
            prefix=config.store.key_prefix,
        )
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


def reset_transport() -> None:
    """Forget the cached in-memory transport."""
    global _transport_instance
    _transport_instance = None


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport", "reset_transport"]
