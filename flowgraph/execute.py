"""Job execution engine for flowgraph workers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional, Sequence

from .client import Client
from .contracts import JobMessage, Payload
from .errors import ExecutionFailure, JobNotFound, LockTimeout, NotFound, UnknownJobType
from .job import Job
from .registry import JobRegistry
from .transports import BaseTransport

logger = logging.getLogger(__name__)

ExhaustedCallback = Callable[[Job, BaseException], Any]


class JobExecutor:
    """Executes jobs by listening to transport messages.

    Each message names one job of one workflow. The executor loads the job,
    runs its registered handler with the outputs of its predecessors, persists
    the outcome and hands successors to the dispatcher.
    """

    def __init__(
        self,
        client: Client,
        queues: Optional[Sequence[str]] = None,
        registry: Optional[JobRegistry] = None,
        on_exhausted: Optional[ExhaustedCallback] = None,
    ) -> None:
        self._client = client
        self._repository = client.repository
        self._dispatcher = client.dispatcher
        self._transport: BaseTransport = client.transport
        self._registry = registry if registry is not None else client.registry
        self._queues = list(queues or client.config.worker.queues)
        self._concurrency = client.config.worker.concurrency
        self._on_exhausted = on_exhausted
        self.executed_jobs: List[str] = []

    @property
    def queues(self) -> List[str]:
        return list(self._queues)

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Consume every configured queue until ``lifespan`` elapses."""
        semaphore = asyncio.Semaphore(self._concurrency)
        pending: set[asyncio.Task] = set()

        async def consume(queue: str) -> None:
            async for raw_message, message in self._transport.subscribe(
                queue, lifespan=lifespan
            ):
                await semaphore.acquire()
                task = asyncio.create_task(self._run_guarded(semaphore, raw_message, message))
                pending.add(task)
                task.add_done_callback(pending.discard)

        logger.info(f"Worker consuming {', '.join(self._queues)} (concurrency={self._concurrency})")
        await asyncio.gather(*(consume(queue) for queue in self._queues))
        if pending:
            await asyncio.gather(*pending)

    async def _run_guarded(
        self, semaphore: asyncio.Semaphore, raw_message: Any, message: JobMessage
    ) -> None:
        try:
            await self.handle_message(raw_message, message)
        finally:
            semaphore.release()

    async def handle_message(self, raw_message: Any, message: JobMessage) -> None:
        """Run the job named by ``message`` and settle it on the transport."""
        try:
            await self.perform(message.workflow_id, message.job_name, message.attempt)
        except ExecutionFailure as e:
            logger.error(str(e))
            await self._transport.nack(raw_message, requeue=False)
        except UnknownJobType as e:
            logger.error(f"Cannot run {message.job_name}: {e}")
            await self._transport.nack(raw_message, requeue=False)
        except LockTimeout as e:
            logger.warning(f"Requeueing {message.job_name}: {e}")
            await self._transport.nack(raw_message, requeue=True)
        except NotFound as e:
            logger.warning(f"Dropping message {message.message_id}: {e}")
            await self._transport.ack(raw_message)
        except Exception:
            logger.exception(f"Unexpected error while running {message.job_name}")
            await self._transport.nack(raw_message, requeue=False)
        else:
            await self._transport.ack(raw_message)

    async def perform(self, workflow_id: str, job_name: str, attempt: int = 1) -> Optional[Job]:
        """Execute one attempt of ``job_name``.

        Returns the job after its outcome was persisted, or ``None`` when the
        job had already finished and the delivery was a duplicate.
        """
        job = await self._repository.find_job(workflow_id, job_name)
        if job is None:
            raise JobNotFound(f"Job {job_name} not found in workflow {workflow_id}")
        if job.finished:
            logger.warning(f"Skipping {job.name} of workflow {workflow_id}: already {job.status.value}")
            return None

        descriptor = self._registry.get(job.klass)
        job.payloads = await self._gather_payloads(workflow_id, job)
        job.start()
        await self._repository.save_job(job)
        logger.info(f"Starting {job.name} of workflow {workflow_id} (attempt {attempt})")

        try:
            result = await self._invoke(descriptor.handler, job)
            if result is not None:
                job.output(result)
                Job.from_json(job.to_json())
        except Exception as e:
            job.output(None)
            await self._handle_failure(workflow_id, job, attempt, e)
            return job

        job.succeed()
        await self._repository.save_job(job)
        self.executed_jobs.append(job.name)
        logger.info(f"Job {job.name} of workflow {workflow_id} succeeded")

        await self._dispatcher.enqueue_outgoing_jobs(workflow_id, job)
        return job

    async def _gather_payloads(self, workflow_id: str, job: Job) -> List[Payload]:
        payloads = []
        for name in job.incoming:
            parent = await self._repository.find_job(workflow_id, name)
            if parent is None:
                raise JobNotFound(f"Job {name} not found in workflow {workflow_id}")
            payloads.append(Payload(id=parent.name, klass=parent.klass, output=parent.output_payload))
        return payloads

    async def _invoke(self, handler: Callable[..., Any], job: Job) -> Any:
        if inspect.iscoroutinefunction(handler):
            return await handler(job.params, job.payloads)
        result = await asyncio.to_thread(handler, job.params, job.payloads)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _handle_failure(
        self, workflow_id: str, job: Job, attempt: int, exc: Exception
    ) -> None:
        policy = self._registry.get(job.klass).retry_policy
        error = f"{type(exc).__name__}: {exc}"

        if policy is not None and policy.should_retry(attempt, exc):
            delay = policy.retry_delay(attempt, exc)
            if not policy.halted_by_callback(exc, delay):
                job.record_error(error)
                await self._repository.save_job(job)
                message = self._dispatcher.build_message(workflow_id, job, attempt + 1)
                await self._transport.publish(message.queue, message, delay=delay)
                logger.info(
                    f"Job {job.name} of workflow {workflow_id} failed attempt {attempt}; "
                    f"retrying in {delay:.2f}s"
                )
                return
            logger.info(f"Retry callback halted retries of {job.name}")

        job.fail(error)
        await self._repository.save_job(job)
        logger.info(f"Job {job.name} of workflow {workflow_id} failed after {attempt} attempt(s)")
        if self._on_exhausted is not None:
            self._on_exhausted(job, exc)
        raise ExecutionFailure(
            workflow_id,
            job.name,
            attempt,
            f"Job {job.name} of workflow {workflow_id} failed on attempt {attempt}: {error}",
        ) from exc
