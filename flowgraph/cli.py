"""Command line interface for inspecting workflows and running workers."""

from __future__ import annotations

import asyncio
import importlib
import logging
from typing import List, Optional

import typer

from flowgraph.cli_utils.overview import colorize, render_overview
from flowgraph.client import Client
from flowgraph.config import FlowgraphConfig, load_config
from flowgraph.errors import DefinitionError, WorkflowNotFound
from flowgraph.execute import JobExecutor

app = typer.Typer(help="CLI for flowgraph workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting and controlling workflows")
worker_app = typer.Typer(help="Commands for running workers")

app.add_typer(workflow_app, name="workflow")
app.add_typer(worker_app, name="worker")

_state: dict = {}


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a YAML config file"
    ),
    module: List[str] = typer.Option(
        [], "--module", "-m", help="Module to import so its job types and workflows register"
    ),
) -> None:
    """flowgraph CLI entry point."""
    loaded = load_config(config)
    logging.basicConfig(
        level=getattr(logging, loaded.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config"] = loaded
    _import_modules(module)


def _import_modules(names: List[str]) -> None:
    for name in names:
        try:
            importlib.import_module(name)
        except ImportError as exc:
            typer.secho(f"Cannot import {name}: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1)


def _config() -> FlowgraphConfig:
    return _state.get("config") or load_config()


def _client() -> Client:
    return Client(config=_config())


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflows with their current status.

    Example:
        flowgraph workflow list
        # Output: 5f0c...    myapp.flows.Pipeline    running
    """

    async def _list():
        client = _client()
        try:
            return await client.all_workflows()
        finally:
            await client.close()

    workflows = asyncio.run(_list())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        status = wf.status.value
        typer.echo(f"{wf.id}\t{wf.klass}\t{colorize(status, status)}")


@workflow_app.command("show")
def workflow_show(
    workflow_id: str,
    jobs: bool = typer.Option(True, help="List every job with its status"),
) -> None:
    """
    Show detailed information for a specific workflow.

    Prints per-status job counts, remaining jobs, start and finish times and,
    unless --no-jobs is given, every job sorted by status.
    """

    async def _show():
        client = _client()
        try:
            return await client.find_workflow(workflow_id)
        finally:
            await client.close()

    try:
        wf = asyncio.run(_show())
    except WorkflowNotFound:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    except DefinitionError as exc:
        typer.secho(f"Cannot load workflow {workflow_id}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(render_overview(wf, show_jobs=jobs))


@workflow_app.command("stop")
def workflow_stop(workflow_id: str) -> None:
    """Stop a workflow: running jobs finish but no successors are enqueued."""

    async def _stop():
        client = _client()
        try:
            return await client.stop_workflow(workflow_id)
        finally:
            await client.close()

    try:
        asyncio.run(_stop())
    except WorkflowNotFound:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    except DefinitionError as exc:
        typer.secho(f"Cannot load workflow {workflow_id}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow_id} stopped")


@workflow_app.command("destroy")
def workflow_destroy(workflow_id: str) -> None:
    """Delete a workflow and all of its jobs."""

    async def _destroy():
        client = _client()
        try:
            wf = await client.find_workflow(workflow_id)
            await client.destroy_workflow(wf)
        finally:
            await client.close()

    try:
        asyncio.run(_destroy())
    except WorkflowNotFound:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    except DefinitionError as exc:
        typer.secho(f"Cannot load workflow {workflow_id}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow_id} destroyed")


@worker_app.command("run")
def worker_run(
    queues: Optional[List[str]] = typer.Argument(
        None, help="Queues to consume (default: the configured worker queues)"
    ),
    module: List[str] = typer.Option(
        [], "--module", "-m", help="Module to import so its job types register"
    ),
    lifespan: Optional[float] = typer.Option(
        None, help="Worker timeout in seconds (default: run indefinitely)"
    ),
) -> None:
    """
    Run a worker process that executes queued jobs.

    Job types are registered by importing the modules that define them, so
    every module holding job types or workflows must be passed with --module.

    Example:
        flowgraph worker run --module myapp.jobs
        flowgraph worker run critical default -m myapp.jobs --lifespan 300
    """
    _import_modules(module)

    async def _run():
        client = _client()
        executor = JobExecutor(client, queues=queues or None)
        typer.echo(f"Starting worker on: {', '.join(executor.queues)}")
        try:
            await executor.start(lifespan=lifespan)
        finally:
            await client.close()

    asyncio.run(_run())


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
