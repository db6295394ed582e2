"""Maps workflows and jobs onto a key-value store."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..constants import DEFAULT_KEY_PREFIX
from ..errors import DefinitionError, NotFound, WorkflowNotFound
from ..job import Job, split_job_name
from ..registry import JobRegistry
from ..workflow import Workflow, WorkflowRecord
from .base import Batch, KeyValueStore

logger = logging.getLogger(__name__)


class WorkflowRepository:
    """Persist workflow state in a :class:`KeyValueStore`.

    Layout, with ``p`` the key prefix:

    * ``p.workflows.<wf>``: workflow record (JSON string)
    * ``p.jobs.<wf>.<klass>``: hash of job id to job record
    * ``p.classes.<wf>``: set of the job hash keys of a workflow, so every
      job can be enumerated without knowing the class names up front
    """

    def __init__(
        self,
        store: KeyValueStore,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        default_ttl: Optional[int] = None,
        registry: Optional[JobRegistry] = None,
    ) -> None:
        self.store = store
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl
        self.registry = registry

    # ------------------------------------------------------------------
    # Keys
    def workflow_key(self, workflow_id: str) -> str:
        return f"{self.key_prefix}.workflows.{workflow_id}"

    def jobs_key(self, workflow_id: str, klass: str) -> str:
        return f"{self.key_prefix}.jobs.{workflow_id}.{klass}"

    def classes_key(self, workflow_id: str) -> str:
        return f"{self.key_prefix}.classes.{workflow_id}"

    def _workflow_keys(self, workflow: Workflow) -> List[str]:
        job_keys = {self.jobs_key(workflow.id, job.klass) for job in workflow.jobs}
        return [self.workflow_key(workflow.id), self.classes_key(workflow.id), *sorted(job_keys)]

    # ------------------------------------------------------------------
    # Writes
    def _add_job(self, batch: Batch, job: Job) -> None:
        key = self.jobs_key(job.workflow_id, job.klass)
        batch.hset(key, job.id, job.to_json())
        batch.sadd(self.classes_key(job.workflow_id), key)

    async def save_workflow(self, workflow: Workflow) -> None:
        """Write the descriptor and every job in one atomic batch."""
        if workflow.id is None:
            raise DefinitionError("Cannot save a workflow without an id")
        workflow.validate_acyclic()
        async with self.store.batch() as batch:
            batch.set(self.workflow_key(workflow.id), workflow.to_json())
            for job in workflow.jobs:
                self._add_job(batch, job)
        await self.expire_workflow(workflow)
        workflow.mark_as_persisted()

    async def save_workflow_record(self, workflow: Workflow) -> None:
        """Rewrite only the descriptor; job records are left untouched."""
        key = self.workflow_key(workflow.id)
        await self.store.set(key, workflow.to_json())
        await self._persist_or_expire([key], None)

    async def save_job(self, job: Job) -> None:
        async with self.store.batch() as batch:
            self._add_job(batch, job)

    async def destroy_workflow(self, workflow: Workflow) -> None:
        async with self.store.batch() as batch:
            batch.delete(*self._workflow_keys(workflow))
        logger.info(f"Destroyed workflow {workflow.id}")

    async def destroy_job(self, job: Job) -> None:
        key = self.jobs_key(job.workflow_id, job.klass)
        async with self.store.batch() as batch:
            batch.hdel(key, job.id)
        if not await self.store.exists(key):
            await self.store.srem(self.classes_key(job.workflow_id), key)

    async def expire_workflow(self, workflow: Workflow, ttl: Optional[int] = None) -> None:
        """Time-bound every key of ``workflow``; ``None``/negative ttl persists."""
        await self._persist_or_expire(self._workflow_keys(workflow), ttl)

    async def expire_job(self, job: Job, ttl: Optional[int] = None) -> None:
        await self._persist_or_expire([self.jobs_key(job.workflow_id, job.klass)], ttl)

    async def _persist_or_expire(self, keys: List[str], ttl: Optional[int]) -> None:
        ttl = ttl if ttl is not None else self.default_ttl
        async with self.store.batch() as batch:
            for key in keys:
                if ttl is None or ttl < 0:
                    batch.persist(key)
                else:
                    batch.expire(key, ttl)

    # ------------------------------------------------------------------
    # Reads
    async def workflow_exists(self, workflow_id: str) -> bool:
        return await self.store.exists(self.workflow_key(workflow_id))

    async def job_id_exists(self, workflow_id: str, klass: str, job_id: str) -> bool:
        return await self.store.hexists(self.jobs_key(workflow_id, klass), job_id)

    async def find_workflow_record(self, workflow_id: str) -> WorkflowRecord:
        data = await self.store.get(self.workflow_key(workflow_id))
        if data is None:
            raise WorkflowNotFound(f"Workflow with id {workflow_id} doesn't exist")
        return WorkflowRecord.model_validate_json(data)

    async def find_jobs(self, workflow_id: str) -> List[Job]:
        jobs: List[Job] = []
        for key in sorted(await self.store.smembers(self.classes_key(workflow_id))):
            jobs.extend(Job.from_json(data) for data in await self.store.hvals(key))
        return jobs

    async def find_workflow(self, workflow_id: str) -> Workflow:
        record = await self.find_workflow_record(workflow_id)
        jobs = await self.find_jobs(workflow_id)
        return Workflow.from_record(record, jobs, registry=self.registry)

    async def find_job(self, workflow_id: str, name: str) -> Optional[Job]:
        """Resolve ``klass|id`` exactly, or a bare ``klass`` to any job of that class.

        The bare-class form returns whichever entry the store scans first and is
        therefore ambiguous when a workflow holds several jobs of that class.
        """
        klass, job_id = split_job_name(name)
        key = self.jobs_key(workflow_id, klass)
        if job_id is None:
            data = await self.store.hfirst(key)
        else:
            data = await self.store.hget(key, job_id)
        if data is None:
            return None
        return Job.from_json(data)

    async def all_workflows(self) -> List[Workflow]:
        prefix = self.workflow_key("")
        workflows = []
        async for key in self.store.scan_iter(match=f"{prefix}*"):
            try:
                workflows.append(await self.find_workflow(key[len(prefix):]))
            except (NotFound, DefinitionError) as e:
                logger.warning(f"Skipping unreadable workflow key {key}: {e}")
        return workflows
