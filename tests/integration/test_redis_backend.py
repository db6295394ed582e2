"""Redis-backed store, queue and locks. Skipped when no server is reachable."""

import asyncio
import os
import uuid

import pytest
from redis.exceptions import RedisError

from flowgraph.client import Client
from flowgraph.config import FlowgraphConfig, LockConfig, StoreConfig
from flowgraph.contracts import JobMessage
from flowgraph.errors import LockTimeout
from flowgraph.execute import JobExecutor
from flowgraph.locks import RedisLockService
from flowgraph.persistence.redis import RedisStore
from flowgraph.transports.redis import RedisTransport
from flowgraph.workflow import Workflow, WorkflowStatus


def _get_url() -> str:
    return os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")


async def _store_or_skip() -> RedisStore:
    store = RedisStore(url=_get_url())
    try:
        await store.connect()
    except (RedisError, OSError):
        await store.disconnect()
        pytest.skip("Redis server not available")
    return store


class Pair(Workflow):
    def configure(self):
        first = self.run("first")
        self.run("second", after=first)


@pytest.mark.asyncio
async def test_redis_store_primitives():
    store = await _store_or_skip()
    prefix = f"test-{uuid.uuid4()}"
    try:
        async with store.batch() as batch:
            batch.set(f"{prefix}.k", "v").hset(f"{prefix}.h", "f", "1").sadd(f"{prefix}.s", "m")
        assert await store.get(f"{prefix}.k") == "v"
        assert await store.hfirst(f"{prefix}.h") == "1"
        assert await store.smembers(f"{prefix}.s") == {"m"}
        assert await store.ttl(f"{prefix}.k") == -1

        await store.expire(f"{prefix}.k", 100)
        assert 0 < await store.ttl(f"{prefix}.k") <= 100

        keys = [key async for key in store.scan_iter(match=f"{prefix}.*")]
        assert sorted(keys) == [f"{prefix}.h", f"{prefix}.k", f"{prefix}.s"]
    finally:
        await store.delete(f"{prefix}.k", f"{prefix}.h", f"{prefix}.s")
        await store.disconnect()


@pytest.mark.asyncio
async def test_redis_lock_times_out():
    store = await _store_or_skip()
    service = RedisLockService(store.client, lease=5)
    name = f"test-lock-{uuid.uuid4()}"
    try:
        async with service.lock(name, sleep=0.01, block=0.1):
            with pytest.raises(LockTimeout):
                async with service.lock(name, sleep=0.01, block=0.1):
                    pass
        async with service.lock(name, sleep=0.01, block=0.1):
            pass
    finally:
        await store.disconnect()


@pytest.mark.asyncio
async def test_redis_transport_delay_and_dead_letter():
    store = await _store_or_skip()
    await store.disconnect()
    transport = RedisTransport(url=_get_url(), prefix=f"test-{uuid.uuid4()}")
    message = JobMessage(workflow_id="wf", job_name="first|1", queue="q")
    try:
        await transport.publish("q", message, delay=0.2)
        received = [m async for _, m in transport.subscribe("q", lifespan=0.1)]
        assert received == []

        await asyncio.sleep(0.2)
        async for raw, got in transport.subscribe("q", lifespan=3):
            assert got.job_name == "first|1"
            await transport.nack(raw, requeue=False)
            break
        assert await transport._redis.llen(transport.dead_key("q")) == 1
    finally:
        await transport._redis.delete(
            transport.queue_key("q"), transport.delayed_key("q"), transport.dead_key("q")
        )
        await transport.disconnect()


@pytest.mark.asyncio
async def test_redis_end_to_end(registry):
    store = await _store_or_skip()
    prefix = f"test-{uuid.uuid4()}"
    config = FlowgraphConfig(
        namespace=prefix,
        store=StoreConfig(backend="redis", key_prefix=prefix),
        locks=LockConfig(sleep=0.01, block=1.0),
    )
    config.worker.queues = [prefix]
    transport = RedisTransport(url=_get_url(), prefix=prefix)
    client = Client(config=config, store=store, transport=transport, registry=registry)
    registry.register("first", lambda params, payloads: 21)
    registry.register("second", lambda params, payloads: payloads[0].output * 2)

    flow = await client.create_workflow(Pair)
    try:
        await client.start_workflow(flow)
        await JobExecutor(client).start(lifespan=2)

        loaded = await client.reload(flow)
        assert loaded.status is WorkflowStatus.SUCCEEDED
        assert loaded.find_job("second").output_payload == 42
    finally:
        await client.destroy_workflow(flow)
        await client.close()
