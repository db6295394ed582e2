import pytest

import flowgraph.locks as locks
from flowgraph.client import Client
from flowgraph.config import FlowgraphConfig, LockConfig
from flowgraph.execute import JobExecutor
from flowgraph.locks import InMemoryLockService
from flowgraph.persistence import InMemoryStore, reset_store
from flowgraph.registry import JobRegistry
from flowgraph.transports import InMemoryTransport, reset_transport


@pytest.fixture(autouse=True)
def _isolated_backends(tmp_path, monkeypatch):
    """Point config loading at a missing file and drop cached singletons."""
    monkeypatch.setenv("FLOWGRAPH_CONFIG", str(tmp_path / "missing.yaml"))
    for var in ("FLOWGRAPH_STORE", "FLOWGRAPH_TRANSPORT", "FLOWGRAPH_REDIS_URL"):
        monkeypatch.delenv(var, raising=False)
    reset_store()
    reset_transport()
    locks._lock_service_instance = None
    yield
    reset_store()
    reset_transport()
    locks._lock_service_instance = None


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def config() -> FlowgraphConfig:
    return FlowgraphConfig(locks=LockConfig(sleep=0.01, block=0.5))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport(poll_interval=0.01)


@pytest.fixture
def client(config, store, transport, registry) -> Client:
    return Client(
        config=config,
        store=store,
        transport=transport,
        lock_service=InMemoryLockService(),
        registry=registry,
    )


@pytest.fixture
def executor(client) -> JobExecutor:
    return JobExecutor(client)


@pytest.fixture
def drain(executor, transport):
    """Process queued messages one at a time until the queue is empty."""

    async def _drain(queue: str = "flowgraph") -> int:
        handled = 0
        raw = transport.get_nowait(queue)
        while raw is not None:
            await executor.handle_message(raw, raw[1])
            handled += 1
            raw = transport.get_nowait(queue)
        return handled

    return _drain
