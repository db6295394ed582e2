"""Dispatch of ready jobs onto the execution queue."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

from .config import FlowgraphConfig, load_config
from .contracts import JobMessage
from .errors import JobNotFound, LockTimeout
from .job import Job
from .locks import LockService
from .registry import REGISTRY, JobRegistry
from .transports import BaseTransport

if TYPE_CHECKING:
    from .persistence import WorkflowRepository
    from .workflow import Workflow

logger = logging.getLogger(__name__)


def successor_lock_name(workflow_id: str, job_name: str) -> str:
    return f"flowgraph:enqueue_outgoing:{workflow_id}:{job_name}"


class JobDispatcher:
    """Decides which jobs are ready and submits them to the queue.

    There is no scheduler loop: initial jobs are submitted when a workflow
    starts, and each finishing job submits whichever successors it finds ready.
    """

    def __init__(
        self,
        repository: "WorkflowRepository",
        transport: BaseTransport,
        lock_service: LockService,
        registry: Optional[JobRegistry] = None,
        config: Optional[FlowgraphConfig] = None,
    ) -> None:
        self.repository = repository
        self.transport = transport
        self.lock_service = lock_service
        self.registry = registry if registry is not None else REGISTRY
        self.config = config or load_config()

    def build_message(self, workflow_id: str, job: Job, attempt: int = 1) -> JobMessage:
        """Route ``job``: its own queue, else its type's, else the namespace."""
        options = None
        if job.klass in self.registry:
            options = self.registry.get(job.klass).queue_options
        queue = job.queue or (options.queue if options else None) or self.config.namespace
        return JobMessage(
            workflow_id=workflow_id,
            job_name=job.name,
            attempt=attempt,
            queue=queue,
            priority=options.priority if options else 0,
            options=dict(options.extra) if options else {},
        )

    async def start_workflow(
        self, workflow: "Workflow", job_names: Optional[Sequence[str]] = None
    ) -> List[Job]:
        """Mark ``workflow`` started, persist it and enqueue its first jobs.

        ``job_names`` restarts from an explicit subset instead of the jobs
        without dependencies.
        """
        workflow.mark_as_started()
        await self.repository.save_workflow(workflow)

        if job_names:
            jobs = []
            for name in job_names:
                job = workflow.find_job(name)
                if job is None:
                    raise JobNotFound(f"Job {name} not found in workflow {workflow.id}")
                jobs.append(job)
        else:
            jobs = workflow.initial_jobs()

        for job in jobs:
            await self.enqueue_job(workflow.id, job)
        logger.info(f"Started workflow {workflow.id} with {len(jobs)} job(s)")
        return jobs

    async def enqueue_job(self, workflow_id: str, job: Job, attempt: int = 1) -> JobMessage:
        job.enqueue()
        await self.repository.save_job(job)
        message = self.build_message(workflow_id, job, attempt)
        await self.transport.publish(message.queue, message)
        logger.info(f"Enqueued {job.name} of workflow {workflow_id} on {message.queue}")
        return message

    async def enqueue_outgoing_jobs(self, workflow_id: str, job: Job) -> List[str]:
        """Enqueue each successor of ``job`` that is now ready.

        The check-then-enqueue for a successor runs under a lock scoped to
        (workflow, successor). Readiness needs every predecessor succeeded, so
        of several predecessors finishing together only the last one to take
        the lock finds the successor ready.
        """
        record = await self.repository.find_workflow_record(workflow_id)
        if record.stopped:
            logger.info(f"Workflow {workflow_id} is stopped; not dispatching successors of {job.name}")
            return []

        enqueued = []
        locks = self.config.locks
        for name in job.outgoing:
            try:
                async with self.lock_service.lock(
                    successor_lock_name(workflow_id, name), sleep=locks.sleep, block=locks.block
                ):
                    successor = await self.repository.find_job(workflow_id, name)
                    if successor is None:
                        raise JobNotFound(f"Job {name} not found in workflow {workflow_id}")
                    if await successor.ready_to_start(self.repository):
                        await self.enqueue_job(workflow_id, successor)
                        enqueued.append(name)
            except LockTimeout as e:
                logger.warning(f"Skipping readiness check of {name}: {e}")
        return enqueued
