"""Job entity: one DAG node and its timestamp-derived state machine."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from .constants import JOB_NAME_SEPARATOR
from .contracts import Payload, find_payload

if TYPE_CHECKING:
    from .persistence.repository import WorkflowRepository

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    ENQUEUED = "enqueued"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def job_name(klass: str, job_id: str) -> str:
    return f"{klass}{JOB_NAME_SEPARATOR}{job_id}"


def split_job_name(name: str) -> tuple[str, Optional[str]]:
    """Split ``klass|id``; a bare class name yields ``(klass, None)``."""
    klass, sep, job_id = name.partition(JOB_NAME_SEPARATOR)
    return klass, (job_id if sep else None)


class Job(BaseModel):
    """A unit of work inside a workflow.

    The four timestamps are the only state. :attr:`status` is recomputed from
    them on every read, so there is no stored status that can drift.
    """

    id: str
    klass: str
    queue: Optional[str] = None
    incoming: List[str] = Field(default_factory=list)
    outgoing: List[str] = Field(default_factory=list)
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    workflow_id: Optional[str] = None
    output_payload: Any = None
    error: Optional[str] = None
    payloads: List[Payload] = Field(default_factory=list, exclude=True)

    @property
    def name(self) -> str:
        return job_name(self.klass, self.id)

    # ------------------------------------------------------------------
    # Transitions
    def enqueue(self) -> None:
        self.enqueued_at = _now()
        self.started_at = None
        self.finished_at = None
        self.failed_at = None
        self.error = None

    def start(self) -> None:
        self.started_at = _now()
        self.failed_at = None
        self.error = None

    def finish(self) -> None:
        self.finished_at = _now()

    def succeed(self) -> None:
        self.failed_at = None
        self.error = None
        self.finish()

    def record_error(self, error: Optional[str]) -> None:
        self.failed_at = _now()
        self.error = error

    def fail(self, error: Optional[str] = None) -> None:
        self.record_error(error)
        self.finish()

    # ------------------------------------------------------------------
    # Predicates
    @property
    def pending(self) -> bool:
        return self.enqueued_at is None

    @property
    def enqueued(self) -> bool:
        return not self.pending

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    @property
    def running(self) -> bool:
        return self.started and not self.finished

    @property
    def failed(self) -> bool:
        return self.failed_at is not None

    @property
    def retrying(self) -> bool:
        return self.running and self.failed

    @property
    def succeeded(self) -> bool:
        return self.finished and not self.failed

    @property
    def remaining(self) -> bool:
        return not self.finished

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> JobStatus:
        if self.finished:
            return JobStatus.FAILED if self.failed else JobStatus.SUCCEEDED
        if self.started:
            return JobStatus.RETRYING if self.failed else JobStatus.RUNNING
        if self.enqueued:
            return JobStatus.ENQUEUED
        return JobStatus.PENDING

    # ------------------------------------------------------------------
    # Scheduling
    def has_no_dependencies(self) -> bool:
        return not self.incoming

    async def parents_succeeded(self, repository: "WorkflowRepository") -> bool:
        for name in self.incoming:
            parent = await repository.find_job(self.workflow_id, name)
            if parent is None or not parent.succeeded:
                return False
        return True

    async def ready_to_start(self, repository: "WorkflowRepository") -> bool:
        """Re-evaluate readiness against freshly loaded predecessors."""
        if self.running or self.enqueued or self.finished or self.failed:
            return False
        ready = await self.parents_succeeded(repository)
        logger.debug(f"Readiness of {self.name} in workflow {self.workflow_id}: {ready}")
        return ready

    # ------------------------------------------------------------------
    # Execution helpers
    def output(self, data: Any) -> None:
        self.output_payload = data

    def payload(self, klass: str) -> Any:
        return find_payload(self.payloads, klass)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "Job":
        return cls.model_validate_json(data)
