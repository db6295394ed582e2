import asyncio

import pytest
from typer.testing import CliRunner

from flowgraph.cli import app
from flowgraph.client import Client
from flowgraph.config import FlowgraphConfig
from flowgraph.registry import REGISTRY
from flowgraph.workflow import Workflow

runner = CliRunner()


def _fetch(params, payloads):
    return params["url"]


def _store(params, payloads):
    return len(payloads)


@pytest.fixture(autouse=True)
def cli_job_types():
    REGISTRY.register("cli_fetch", _fetch)
    REGISTRY.register("cli_store", _store)
    yield
    REGISTRY.unregister("cli_fetch")
    REGISTRY.unregister("cli_store")


class Crawl(Workflow):
    def configure(self, url):
        fetch = self.run("cli_fetch", params={"url": url})
        self.run("cli_store", after=fetch)


def _create(start: bool = False) -> str:
    async def _run():
        client = Client(config=FlowgraphConfig())
        flow = await client.create_workflow(Crawl, "https://example.com")
        if start:
            await client.start_workflow(flow)
        return flow.id

    return asyncio.run(_run())


def _load(workflow_id: str):
    return asyncio.run(Client(config=FlowgraphConfig()).find_workflow(workflow_id))


def test_list_workflows():
    first = _create()
    second = _create(start=True)

    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert first in result.output
    assert second in result.output
    assert "pending" in result.output
    assert "running" in result.output


def test_list_without_workflows():
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "No workflows found" in result.output


def test_show_workflow():
    workflow_id = _create(start=True)

    result = runner.invoke(app, ["workflow", "show", workflow_id])
    assert result.exit_code == 0, result.output
    output = result.output
    assert workflow_id in output
    assert "Crawl" in output
    assert "Enqueued jobs" in output
    assert "Pending jobs" in output
    assert "Remaining jobs" in output
    assert "Jobs list:" in output
    assert "cli_fetch|" in output

    result = runner.invoke(app, ["workflow", "show", workflow_id, "--no-jobs"])
    assert "Jobs list:" not in result.output


def test_show_missing_workflow():
    result = runner.invoke(app, ["workflow", "show", "missing"])
    assert result.exit_code == 1
    assert "Workflow not found" in result.output


def test_stop_workflow():
    workflow_id = _create(start=True)
    result = runner.invoke(app, ["workflow", "stop", workflow_id])
    assert result.exit_code == 0, result.output
    assert _load(workflow_id).stopped


def test_destroy_workflow():
    workflow_id = _create()
    result = runner.invoke(app, ["workflow", "destroy", workflow_id])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["workflow", "destroy", workflow_id])
    assert result.exit_code == 1


def test_worker_run_executes_jobs():
    workflow_id = _create(start=True)

    result = runner.invoke(app, ["worker", "run", "--module", "json", "--lifespan", "1"])
    assert result.exit_code == 0, result.output
    assert "Starting worker on: flowgraph" in result.output

    flow = _load(workflow_id)
    assert flow.status.value == "succeeded"
    assert flow.find_job("cli_fetch").output_payload == "https://example.com"
    assert flow.find_job("cli_store").output_payload == 1


def test_worker_run_rejects_unknown_module():
    result = runner.invoke(app, ["worker", "run", "--module", "no_such_module_xyz"])
    assert result.exit_code == 1
    assert "Cannot import no_such_module_xyz" in result.output


def test_workflow_commands_report_unregistered_job_types():
    workflow_id = _create()
    REGISTRY.unregister("cli_store")

    for command in ("show", "stop", "destroy"):
        result = runner.invoke(app, ["workflow", command, workflow_id])
        assert result.exit_code == 1
        assert f"Cannot load workflow {workflow_id}" in result.output

    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "No workflows found" in result.output


def test_module_option_on_every_command():
    result = runner.invoke(app, ["--module", "json", "workflow", "list"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["-m", "no_such_module_xyz", "workflow", "list"])
    assert result.exit_code == 1
    assert "Cannot import no_such_module_xyz" in result.output
