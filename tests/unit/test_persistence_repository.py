"""WorkflowRepository tests against the in-memory store."""

import pytest

from flowgraph.errors import CyclicGraphError, DefinitionError, WorkflowNotFound
from flowgraph.persistence import InMemoryStore, WorkflowRepository
from flowgraph.registry import JobRegistry
from flowgraph.workflow import Workflow


def noop(params, payloads):
    return None


@pytest.fixture
def registry():
    registry = JobRegistry()
    for name in ("fetch", "parse", "store"):
        registry.register(name, noop)
    return registry


@pytest.fixture
def repo(registry):
    return WorkflowRepository(InMemoryStore(), key_prefix="test", default_ttl=-1, registry=registry)


class Etl(Workflow):
    def configure(self, source):
        left = self.run("fetch", params={"source": source, "part": 1})
        right = self.run("fetch", params={"source": source, "part": 2})
        parse = self.run("parse", after=[left, right])
        self.run("store", after=parse)


def _flow(registry, workflow_id="wf-1"):
    return Etl("s3://bucket", id=workflow_id, registry=registry)


@pytest.mark.asyncio
async def test_save_and_find_workflow(repo, registry):
    flow = _flow(registry)
    flow.mark_as_started()
    await repo.save_workflow(flow)
    assert flow.persisted

    loaded = await repo.find_workflow("wf-1")
    assert isinstance(loaded, Etl)
    assert loaded.persisted
    assert loaded.arguments == ["s3://bucket"]
    assert loaded.started_at == flow.started_at
    assert sorted(j.name for j in loaded.jobs) == sorted(j.name for j in flow.jobs)

    stored = {job.name: job for job in loaded.jobs}
    for job in flow.jobs:
        assert stored[job.name].incoming == job.incoming
        assert stored[job.name].outgoing == job.outgoing
        assert stored[job.name].params == job.params


@pytest.mark.asyncio
async def test_key_layout(repo, registry):
    flow = _flow(registry)
    await repo.save_workflow(flow)
    store = repo.store

    assert await store.exists("test.workflows.wf-1")
    assert await store.smembers("test.classes.wf-1") == {
        "test.jobs.wf-1.fetch",
        "test.jobs.wf-1.parse",
        "test.jobs.wf-1.store",
    }
    assert len(await store.hvals("test.jobs.wf-1.fetch")) == 2


@pytest.mark.asyncio
async def test_missing_workflow_raises(repo):
    with pytest.raises(WorkflowNotFound):
        await repo.find_workflow("nope")
    assert not await repo.workflow_exists("nope")


@pytest.mark.asyncio
async def test_find_job_exact_and_class_only(repo, registry):
    flow = _flow(registry)
    await repo.save_workflow(flow)
    left, right, parse, _ = flow.jobs

    found = await repo.find_job("wf-1", right.name)
    assert found.name == right.name
    assert found.params == {"source": "s3://bucket", "part": 2}

    # A bare class name resolves to one of the jobs of that class.
    assert (await repo.find_job("wf-1", "fetch")).name in {left.name, right.name}
    assert (await repo.find_job("wf-1", "parse")).name == parse.name

    assert await repo.find_job("wf-1", "parse|missing") is None
    assert await repo.find_job("wf-1", "unknown") is None
    assert await repo.job_id_exists("wf-1", "fetch", left.id)
    assert not await repo.job_id_exists("wf-1", "fetch", "missing")


@pytest.mark.asyncio
async def test_save_job_updates_single_record(repo, registry):
    flow = _flow(registry)
    await repo.save_workflow(flow)
    job = flow.jobs[0]
    job.enqueue()
    await repo.save_job(job)

    assert (await repo.find_job("wf-1", job.name)).enqueued
    assert not (await repo.find_job("wf-1", flow.jobs[1].name)).enqueued


@pytest.mark.asyncio
async def test_save_workflow_rejects_cycles(repo, registry):
    flow = _flow(registry)
    parse, store = flow.jobs[2], flow.jobs[3]
    store.outgoing.append(parse.name)
    parse.incoming.append(store.name)

    with pytest.raises(CyclicGraphError):
        await repo.save_workflow(flow)
    assert not await repo.workflow_exists("wf-1")


@pytest.mark.asyncio
async def test_save_workflow_requires_an_id(repo, registry):
    flow = Etl("s3://bucket", registry=registry)

    with pytest.raises(DefinitionError):
        await repo.save_workflow(flow)
    assert [key async for key in repo.store.scan_iter(match="test.*")] == []


@pytest.mark.asyncio
async def test_save_workflow_record_leaves_jobs(repo, registry):
    flow = _flow(registry)
    await repo.save_workflow(flow)
    job = flow.jobs[0]
    job.enqueue()
    await repo.save_job(job)

    stale = await repo.find_workflow("wf-1")
    stale.mark_as_stopped()
    await repo.save_workflow_record(stale)

    assert (await repo.find_workflow_record("wf-1")).stopped
    assert (await repo.find_job("wf-1", job.name)).enqueued


@pytest.mark.asyncio
async def test_expire_and_persist(repo, registry):
    flow = _flow(registry)
    await repo.save_workflow(flow)
    store = repo.store
    keys = ["test.workflows.wf-1", "test.classes.wf-1", "test.jobs.wf-1.fetch"]

    for key in keys:
        assert await store.ttl(key) == -1

    await repo.expire_workflow(flow, 300)
    for key in keys:
        assert 0 < await store.ttl(key) <= 300

    await repo.expire_workflow(flow, -1)
    for key in keys:
        assert await store.ttl(key) == -1

    await repo.expire_job(flow.jobs[0], 60)
    assert 0 < await store.ttl("test.jobs.wf-1.fetch") <= 60
    assert await store.ttl("test.jobs.wf-1.parse") == -1


@pytest.mark.asyncio
async def test_default_ttl_applies_on_save(registry):
    repo = WorkflowRepository(InMemoryStore(), key_prefix="test", default_ttl=120, registry=registry)
    flow = _flow(registry)
    await repo.save_workflow(flow)
    assert 0 < await repo.store.ttl("test.workflows.wf-1") <= 120


@pytest.mark.asyncio
async def test_destroy_workflow_and_job(repo, registry):
    flow = _flow(registry)
    await repo.save_workflow(flow)

    parse = flow.jobs[2]
    await repo.destroy_job(parse)
    assert await repo.find_job("wf-1", parse.name) is None
    assert "test.jobs.wf-1.parse" not in await repo.store.smembers("test.classes.wf-1")

    await repo.destroy_workflow(flow)
    assert not await repo.workflow_exists("wf-1")
    assert await repo.find_jobs("wf-1") == []


@pytest.mark.asyncio
async def test_all_workflows(repo, registry):
    await repo.save_workflow(_flow(registry, "wf-1"))
    await repo.save_workflow(_flow(registry, "wf-2"))
    workflows = await repo.all_workflows()
    assert sorted(w.id for w in workflows) == ["wf-1", "wf-2"]


@pytest.mark.asyncio
async def test_ready_to_start_reads_fresh_parents(repo, registry):
    flow = _flow(registry)
    await repo.save_workflow(flow)
    left, right, parse, _ = flow.jobs

    assert await left.ready_to_start(repo)
    assert not await parse.ready_to_start(repo)

    for job in (left, right):
        job.enqueue()
        job.start()
        job.succeed()
        await repo.save_job(job)
        if job is left:
            assert not await parse.ready_to_start(repo)

    assert await parse.ready_to_start(repo)
    parse.enqueue()
    assert not await parse.ready_to_start(repo)
