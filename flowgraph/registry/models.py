"""Pydantic models describing registered job types."""

from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.retry import RetryPolicy


class QueueOptions(BaseModel):
    """Per job-type routing options carried on every queued message."""

    model_config = ConfigDict(frozen=True)

    queue: Optional[str] = None
    priority: int = 0
    extra: dict[str, Any] = Field(default_factory=dict)


class JobTypeDescriptor(BaseModel):
    """Immutable record tying a job-type name to its behavior."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    handler: Callable[..., Any]
    retry_policy: Optional[RetryPolicy] = None
    queue_options: QueueOptions = Field(default_factory=QueueOptions)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        if not v:
            raise ValueError("job type name must be a non-empty string")
        if "|" in v:
            raise ValueError("job type name must not contain '|'")
        return v
