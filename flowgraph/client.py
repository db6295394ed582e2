"""Client facade over persistence, dispatch and id generation."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Union

from .config import FlowgraphConfig, load_config
from .dispatch import JobDispatcher
from .job import Job
from .locks import LockService, get_lock_service
from .persistence import KeyValueStore, get_repository, get_store
from .registry import REGISTRY, JobRegistry
from .transports import BaseTransport, get_transport
from .utils.ids import agenerate_id
from .workflow import Workflow, resolve_workflow_class

logger = logging.getLogger(__name__)


class Client:
    """Entry point for creating, starting and inspecting workflows.

    Collaborators default to the configured backends; pass them explicitly to
    share one in-memory store and transport between a client and workers.
    """

    def __init__(
        self,
        config: Optional[FlowgraphConfig] = None,
        store: Optional[KeyValueStore] = None,
        transport: Optional[BaseTransport] = None,
        lock_service: Optional[LockService] = None,
        registry: Optional[JobRegistry] = None,
    ) -> None:
        self.config = config or load_config()
        self.registry = registry if registry is not None else REGISTRY
        self.store = store or get_store(config=self.config)
        self.repository = get_repository(self.store, self.config, self.registry)
        self.transport = transport or get_transport(config=self.config)
        self.lock_service = lock_service or get_lock_service(
            config=self.config, client=getattr(self.store, "client", None)
        )
        self.dispatcher = JobDispatcher(
            self.repository,
            self.transport,
            self.lock_service,
            registry=self.registry,
            config=self.config,
        )

    async def close(self) -> None:
        await self.transport.disconnect()
        await self.store.disconnect()

    # ------------------------------------------------------------------
    # Workflows
    async def create_workflow(
        self, workflow_class: Union[str, type], *args: Any
    ) -> Workflow:
        """Build ``workflow_class(*args)`` under a fresh id and persist it."""
        if isinstance(workflow_class, str):
            workflow_class = resolve_workflow_class(workflow_class)
        workflow_id = await self.next_free_workflow_id()
        workflow = workflow_class(
            *args,
            id=workflow_id,
            registry=self.registry,
            id_max_attempts=self.config.id_max_attempts,
        )
        await self.persist_workflow(workflow)
        logger.info(f"Created workflow {workflow.klass} {workflow_id} with {len(workflow.jobs)} job(s)")
        return workflow

    async def start_workflow(
        self, workflow: Workflow, job_names: Optional[Sequence[str]] = None
    ) -> List[Job]:
        return await self.dispatcher.start_workflow(workflow, job_names)

    async def stop_workflow(self, workflow_id: str) -> Workflow:
        workflow = await self.find_workflow(workflow_id)
        workflow.mark_as_stopped()
        await self.repository.save_workflow_record(workflow)
        logger.info(f"Stopped workflow {workflow_id}")
        return workflow

    async def find_workflow(self, workflow_id: str) -> Workflow:
        return await self.repository.find_workflow(workflow_id)

    async def reload(self, workflow: Workflow) -> Workflow:
        return await self.find_workflow(workflow.id)

    async def all_workflows(self) -> List[Workflow]:
        return await self.repository.all_workflows()

    async def persist_workflow(self, workflow: Workflow) -> None:
        if workflow.id is None:
            workflow.assign_id(await self.next_free_workflow_id())
        await self.repository.save_workflow(workflow)

    async def destroy_workflow(self, workflow: Workflow) -> None:
        await self.repository.destroy_workflow(workflow)

    async def expire_workflow(self, workflow: Workflow, ttl: Optional[int] = None) -> None:
        await self.repository.expire_workflow(workflow, ttl)

    # ------------------------------------------------------------------
    # Jobs
    async def find_job(self, workflow_id: str, job_name: str) -> Optional[Job]:
        return await self.repository.find_job(workflow_id, job_name)

    async def persist_job(self, job: Job) -> None:
        await self.repository.save_job(job)

    async def destroy_job(self, job: Job) -> None:
        await self.repository.destroy_job(job)

    async def expire_job(self, job: Job, ttl: Optional[int] = None) -> None:
        await self.repository.expire_job(job, ttl)

    async def enqueue_job(self, workflow_id: str, job: Job) -> None:
        await self.dispatcher.enqueue_job(workflow_id, job)

    async def enqueue_outgoing_jobs(self, workflow_id: str, job: Job) -> List[str]:
        return await self.dispatcher.enqueue_outgoing_jobs(workflow_id, job)

    # ------------------------------------------------------------------
    # Identifiers
    async def next_free_workflow_id(self) -> str:
        return await agenerate_id(self.repository.workflow_exists, self.config.id_max_attempts)

    async def next_free_job_id(self, workflow_id: str, klass: str) -> str:
        async def taken(candidate: str) -> bool:
            return await self.repository.job_id_exists(workflow_id, klass, candidate)

        return await agenerate_id(taken, self.config.id_max_attempts)
