"""Exception hierarchy for flowgraph."""

from __future__ import annotations

from typing import Optional


class FlowgraphError(Exception):
    """Base class for all flowgraph errors."""


class NotFound(FlowgraphError):
    """A workflow or job id has no persisted record."""


class WorkflowNotFound(NotFound):
    """Raised when a workflow id cannot be resolved."""


class JobNotFound(NotFound):
    """Raised when a job name cannot be resolved inside a workflow."""


class DefinitionError(FlowgraphError):
    """The workflow or job-type definition is invalid."""


class DuplicateDefinition(DefinitionError):
    """A job type was registered twice under the same name."""


class UnknownJobType(DefinitionError):
    """A workflow references a job type or dependency that does not exist."""


class CyclicGraphError(DefinitionError):
    """The job graph contains a cycle."""

    def __init__(self, job_names: list[str]):
        self.job_names = job_names
        super().__init__(f"Workflow graph contains a cycle through: {', '.join(job_names)}")


class PayloadNotFound(FlowgraphError):
    """A job requested the output of a predecessor it did not receive."""


class LockTimeout(FlowgraphError):
    """A named lock could not be acquired within its blocking bound."""

    def __init__(self, name: str, block: float):
        self.name = name
        self.block = block
        super().__init__(f"Could not acquire lock {name!r} within {block}s")


class IdGenerationExhausted(FlowgraphError):
    """No free identifier was found within the allowed number of attempts."""


class ExecutionFailure(FlowgraphError):
    """A job's handler raised and no further attempts will be made."""

    def __init__(
        self,
        workflow_id: str,
        job_name: str,
        attempt: int,
        message: Optional[str] = None,
    ):
        self.workflow_id = workflow_id
        self.job_name = job_name
        self.attempt = attempt
        super().__init__(
            message
            or f"Job {job_name} of workflow {workflow_id} failed on attempt {attempt}"
        )
