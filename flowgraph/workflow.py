"""Workflow entity: an owned set of jobs forming a DAG."""

from __future__ import annotations

import importlib
import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from .constants import DEFAULT_ID_MAX_ATTEMPTS
from .errors import CyclicGraphError, UnknownJobType, WorkflowNotFound
from .job import Job, JobStatus, job_name, split_job_name
from .registry import REGISTRY, JobRegistry, JobTypeDescriptor
from .utils.ids import generate_id

logger = logging.getLogger(__name__)

JobRef = Union[str, JobTypeDescriptor]

# Every Workflow subclass, keyed by dotted path, so classes defined outside an
# importable module can still be rebuilt from a persisted record.
_WORKFLOW_CLASSES: Dict[str, type] = {}


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WorkflowRecord(BaseModel):
    """Persisted workflow descriptor. Jobs live under their own keys."""

    id: str
    klass: str
    arguments: List[Any] = Field(default_factory=list)
    stopped: bool = False
    started_at: Optional[datetime] = None


def workflow_class_path(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def resolve_workflow_class(path: str) -> type:
    """Return the Workflow subclass stored under ``path``."""
    cls = _WORKFLOW_CLASSES.get(path)
    if cls is not None:
        return cls
    module_name, _, class_name = path.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        cls = getattr(module, class_name)
    except (ImportError, AttributeError, ValueError) as e:
        raise WorkflowNotFound(f"Workflow class {path!r} cannot be resolved: {e}") from e
    if not (isinstance(cls, type) and issubclass(cls, Workflow)):
        raise WorkflowNotFound(f"{path!r} is not a Workflow subclass")
    return cls


def _as_list(refs: Optional[Union[JobRef, Iterable[JobRef]]]) -> List[JobRef]:
    if refs is None:
        return []
    if isinstance(refs, (str, JobTypeDescriptor)):
        return [refs]
    return list(refs)


def _ref_name(ref: JobRef) -> str:
    return ref.name if isinstance(ref, JobTypeDescriptor) else ref


class Workflow:
    """Base class for workflow definitions.

    Subclasses describe their graph in :meth:`configure` using :meth:`run`::

        class Pipeline(Workflow):
            def configure(self, url):
                fetch = self.run("fetch", params={"url": url})
                self.run("parse", after=fetch)

    ``after``/``before`` take job names returned by :meth:`run` or bare job
    type names. A bare type name resolves to the first job of that type.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _WORKFLOW_CLASSES[workflow_class_path(cls)] = cls

    def __init__(
        self,
        *args: Any,
        id: Optional[str] = None,
        registry: Optional[JobRegistry] = None,
        id_max_attempts: int = DEFAULT_ID_MAX_ATTEMPTS,
    ) -> None:
        self.id = id
        self.arguments: List[Any] = list(args)
        self.jobs: List[Job] = []
        self.stopped = False
        self.persisted = False
        self.started_at: Optional[datetime] = None
        self._registry = registry if registry is not None else REGISTRY
        self._id_max_attempts = id_max_attempts
        self._dependencies: List[tuple[str, str]] = []

        self.configure(*args)
        self.resolve_dependencies()

    @property
    def klass(self) -> str:
        return workflow_class_path(type(self))

    def assign_id(self, workflow_id: str) -> None:
        """Set the workflow id and propagate it to every job."""
        self.id = workflow_id
        for job in self.jobs:
            job.workflow_id = workflow_id

    def configure(self, *args: Any) -> None:
        """Declare the graph. Override in subclasses."""

    # ------------------------------------------------------------------
    # Graph construction
    def run(
        self,
        job_type: JobRef,
        params: Optional[Dict[str, Any]] = None,
        after: Optional[Union[JobRef, Iterable[JobRef]]] = None,
        before: Optional[Union[JobRef, Iterable[JobRef]]] = None,
        queue: Optional[str] = None,
    ) -> str:
        """Add a job of ``job_type`` and return its name."""
        klass = _ref_name(job_type)
        if klass not in self._registry:
            raise UnknownJobType(f"Job type {klass!r} is not registered")

        job_id = generate_id(
            lambda candidate: self.find_job(job_name(klass, candidate)) is not None,
            self._id_max_attempts,
        )
        job = Job(
            id=job_id,
            klass=klass,
            params=dict(params or {}),
            queue=queue,
            workflow_id=self.id,
        )
        self.jobs.append(job)

        for ref in _as_list(after):
            self._dependencies.append((_ref_name(ref), job.name))
        for ref in _as_list(before):
            self._dependencies.append((job.name, _ref_name(ref)))
        return job.name

    def resolve_dependencies(self) -> None:
        for from_ref, to_ref in self._dependencies:
            from_job = self.find_job(from_ref)
            to_job = self.find_job(to_ref)
            if from_job is None or to_job is None:
                missing = from_ref if from_job is None else to_ref
                raise UnknownJobType(f"Dependency references unknown job {missing!r}")
            if from_job.name not in to_job.incoming:
                to_job.incoming.append(from_job.name)
            if to_job.name not in from_job.outgoing:
                from_job.outgoing.append(to_job.name)
        self._dependencies.clear()

    def validate_acyclic(self) -> None:
        """Raise :class:`CyclicGraphError` if the edges do not form a DAG."""
        by_name = {job.name: job for job in self.jobs}
        indegree = {
            job.name: sum(1 for n in job.incoming if n in by_name) for job in self.jobs
        }
        queue = deque(name for name, degree in indegree.items() if degree == 0)
        visited = 0
        while queue:
            name = queue.popleft()
            visited += 1
            for successor in by_name[name].outgoing:
                if successor not in indegree:
                    continue
                indegree[successor] -= 1
                if indegree[successor] == 0:
                    queue.append(successor)
        if visited != len(self.jobs):
            raise CyclicGraphError(sorted(n for n, d in indegree.items() if d > 0))

    # ------------------------------------------------------------------
    # Lookup
    def find_job(self, name: str) -> Optional[Job]:
        klass, job_id = split_job_name(name)
        if job_id is None:
            return next((job for job in self.jobs if job.klass == klass), None)
        return next((job for job in self.jobs if job.name == name), None)

    def initial_jobs(self) -> List[Job]:
        return [job for job in self.jobs if job.has_no_dependencies()]

    # ------------------------------------------------------------------
    # Lifecycle
    def mark_as_started(self) -> None:
        self.started_at = datetime.now(timezone.utc)
        self.stopped = False

    def mark_as_stopped(self) -> None:
        self.stopped = True

    def mark_as_persisted(self) -> None:
        self.persisted = True

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def finished(self) -> bool:
        return all(job.finished for job in self.jobs)

    @property
    def failed(self) -> bool:
        return any(job.status is JobStatus.FAILED for job in self.jobs)

    @property
    def running(self) -> bool:
        return self.started and not self.finished

    @property
    def finished_at(self) -> Optional[datetime]:
        if not self.jobs or not self.finished:
            return None
        return max(job.finished_at for job in self.jobs)

    @property
    def status(self) -> WorkflowStatus:
        if self.failed:
            return WorkflowStatus.FAILED
        if self.started and self.finished:
            return WorkflowStatus.SUCCEEDED
        if self.stopped:
            return WorkflowStatus.STOPPED
        if self.running:
            return WorkflowStatus.RUNNING
        return WorkflowStatus.PENDING

    # ------------------------------------------------------------------
    # Serialization
    def to_record(self) -> WorkflowRecord:
        return WorkflowRecord(
            id=self.id,
            klass=self.klass,
            arguments=self.arguments,
            stopped=self.stopped,
            started_at=self.started_at,
        )

    def to_json(self) -> str:
        return self.to_record().model_dump_json()

    @classmethod
    def from_record(
        cls,
        record: WorkflowRecord,
        jobs: Iterable[Job],
        registry: Optional[JobRegistry] = None,
    ) -> "Workflow":
        """Rebuild a workflow: re-run ``configure`` then overlay persisted jobs."""
        workflow_cls = resolve_workflow_class(record.klass)
        flow = workflow_cls(*record.arguments, id=record.id, registry=registry)
        flow.jobs = list(jobs)
        flow.stopped = record.stopped
        flow.started_at = record.started_at
        flow.persisted = True
        logger.debug(f"Loaded workflow {record.id} ({record.klass}) with {len(flow.jobs)} job(s)")
        return flow

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} jobs={len(self.jobs)} status={self.status.value}>"
