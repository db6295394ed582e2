"""Message contracts exchanged between dispatcher, queue and workers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from .errors import PayloadNotFound


class Payload(BaseModel):
    """Output produced by a predecessor, handed to its successor."""

    id: str
    klass: str
    output: Any = None


def find_payload(payloads: List[Payload], klass: str) -> Any:
    """Return the output of the first payload produced by job type ``klass``."""
    for payload in payloads:
        if payload.klass == klass:
            return payload.output
    available = [p.klass for p in payloads]
    raise PayloadNotFound(f"Unable to find payload for {klass}, available: {available}")


class JobMessage(BaseModel):
    """
    Envelope placed on the execution queue. One delivery is one attempt.
    """

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    job_name: str
    attempt: int = 1
    queue: str
    priority: int = 0
    options: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        """Serialize message to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "JobMessage":
        """Deserialize message from JSON."""
        return cls.model_validate_json(data)

