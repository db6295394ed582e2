from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_ID_MAX_ATTEMPTS,
    DEFAULT_KEY_PREFIX,
    DEFAULT_LOCK_BLOCK,
    DEFAULT_LOCK_LEASE,
    DEFAULT_LOCK_SLEEP,
    DEFAULT_NAMESPACE,
)


class RedisConfig(BaseModel):
    """Connection settings shared by the Redis store, transport and locks."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    url: Optional[str] = None


class StoreConfig(BaseModel):
    """Key-value store settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    key_prefix: str = DEFAULT_KEY_PREFIX


class TransportConfig(BaseModel):
    """Execution queue settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"


class LockConfig(BaseModel):
    """Successor-dispatch lock settings (seconds)."""

    sleep: float = DEFAULT_LOCK_SLEEP
    block: float = DEFAULT_LOCK_BLOCK
    lease: float = DEFAULT_LOCK_LEASE


class WorkerConfig(BaseModel):
    """Worker loop settings."""

    concurrency: int = 5
    queues: list[str] = Field(default_factory=lambda: [DEFAULT_NAMESPACE])


class FlowgraphConfig(BaseModel):
    """Top-level configuration model."""

    namespace: str = DEFAULT_NAMESPACE
    ttl: Optional[int] = -1
    id_max_attempts: int = DEFAULT_ID_MAX_ATTEMPTS
    log_level: str = "INFO"
    redis: RedisConfig = Field(default_factory=RedisConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    locks: LockConfig = Field(default_factory=LockConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)


def load_config(path: Optional[str] = None) -> FlowgraphConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWGRAPH_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("FLOWGRAPH_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FlowgraphConfig(**data)
    else:
        config = FlowgraphConfig()

    env_redis_url = os.getenv("FLOWGRAPH_REDIS_URL")
    if env_redis_url:
        config.redis.url = env_redis_url
    env_store = os.getenv("FLOWGRAPH_STORE")
    if env_store:
        config.store.backend = env_store.lower()
    env_transport = os.getenv("FLOWGRAPH_TRANSPORT")
    if env_transport:
        config.transport.backend = env_transport.lower()
    return config
