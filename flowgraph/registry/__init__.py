"""Job-type registry."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, Optional

from ..errors import DuplicateDefinition, UnknownJobType
from ..utils.retry import RetryPolicy
from .models import JobTypeDescriptor, QueueOptions


class JobRegistry:
    """Maps job-type names to immutable :class:`JobTypeDescriptor` records.

    Workers dispatch on the ``klass`` stored with each job, so every process
    that executes jobs must register the same names.
    """

    def __init__(self) -> None:
        self._types: Dict[str, JobTypeDescriptor] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        retry: Optional[RetryPolicy] = None,
        queue: Optional[str] = None,
        priority: int = 0,
        description: Optional[str] = None,
        **queue_extra: Any,
    ) -> JobTypeDescriptor:
        if name in self._types:
            raise DuplicateDefinition(f"Job type {name!r} is already registered")
        descriptor = JobTypeDescriptor(
            name=name,
            handler=handler,
            retry_policy=retry,
            queue_options=QueueOptions(queue=queue, priority=priority, extra=queue_extra),
            description=description or (handler.__doc__ or "").strip() or None,
        )
        self._types[name] = descriptor
        return descriptor

    def job_type(self, name: Optional[str] = None, **options: Any) -> Callable:
        """Decorator form of :meth:`register`; defaults the name to the function's."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(name or func.__name__, func, **options)
            return func

        return decorator

    def get(self, name: str) -> JobTypeDescriptor:
        try:
            return self._types[name]
        except KeyError:
            raise UnknownJobType(f"Job type {name!r} is not registered") from None

    def unregister(self, name: str) -> None:
        self._types.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[JobTypeDescriptor]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)


# Process-wide default registry. Clients and workers accept their own.
REGISTRY = JobRegistry()


def register_job(name: str, handler: Callable[..., Any], **options: Any) -> JobTypeDescriptor:
    """Add ``handler`` to ``REGISTRY`` under ``name``."""
    return REGISTRY.register(name, handler, **options)


job_type = REGISTRY.job_type


__all__ = [
    "JobRegistry",
    "JobTypeDescriptor",
    "QueueOptions",
    "REGISTRY",
    "register_job",
    "job_type",
]
