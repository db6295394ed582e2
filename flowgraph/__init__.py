"""flowgraph: distributed DAG workflow orchestration."""

from .client import Client
from .config import FlowgraphConfig, load_config
from .contracts import JobMessage, Payload
from .dispatch import JobDispatcher
from .errors import (
    CyclicGraphError,
    DefinitionError,
    DuplicateDefinition,
    ExecutionFailure,
    FlowgraphError,
    IdGenerationExhausted,
    JobNotFound,
    LockTimeout,
    NotFound,
    PayloadNotFound,
    UnknownJobType,
    WorkflowNotFound,
)
from .execute import JobExecutor
from .job import Job, JobStatus
from .persistence import get_repository, get_store
from .registry import REGISTRY, JobRegistry, job_type, register_job
from .transports import get_transport
from .utils.retry import HALT, RetryPolicy
from .workflow import Workflow, WorkflowStatus

__version__ = "0.1.0"
__all__ = [
    "Client",
    "CyclicGraphError",
    "DefinitionError",
    "DuplicateDefinition",
    "ExecutionFailure",
    "FlowgraphConfig",
    "FlowgraphError",
    "HALT",
    "IdGenerationExhausted",
    "Job",
    "JobDispatcher",
    "JobExecutor",
    "JobMessage",
    "JobNotFound",
    "JobRegistry",
    "JobStatus",
    "LockTimeout",
    "NotFound",
    "Payload",
    "PayloadNotFound",
    "REGISTRY",
    "RetryPolicy",
    "UnknownJobType",
    "Workflow",
    "WorkflowNotFound",
    "WorkflowStatus",
    "get_repository",
    "get_store",
    "get_transport",
    "job_type",
    "load_config",
    "register_job",
]
