from __future__ import annotations

import random
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

HALT = "halt"


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


class RetryPolicy(BaseModel):
    """Immutable description of how a job type is retried.

    ``limit`` counts retries, so a policy with ``limit=1`` allows two attempts
    in total. Strategies:

    * ``constant``: wait ``delay`` seconds between attempts.
    * ``variable``: wait ``delays[attempt - 1]``; the limit is ``len(delays)``.
    * ``exponential``: wait ``compute_backoff(attempt, base, jitter)``.

    ``retryable_exceptions`` restricts retries to those types (empty means any
    exception); ``fatal_exceptions`` never retry. ``callback`` is called with
    ``(exception, delay)`` before each retry and may return ``HALT`` to stop.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    strategy: Literal["constant", "variable", "exponential"] = "constant"
    limit: int = 3
    delay: float = 0.0
    delays: tuple[float, ...] = ()
    base: float = 1.5
    jitter: float = 0.5
    retryable_exceptions: tuple[type[BaseException], ...] = ()
    fatal_exceptions: tuple[type[BaseException], ...] = ()
    callback: Optional[Callable[[BaseException, float], Any]] = Field(
        default=None, exclude=True
    )

    @model_validator(mode="after")
    def _check_strategy(self) -> "RetryPolicy":
        if self.strategy == "variable" and not self.delays:
            raise ValueError("variable retry strategy requires delays")
        if self.limit < 0:
            raise ValueError("retry limit must not be negative")
        return self

    @property
    def max_attempts(self) -> int:
        if self.strategy == "variable":
            return len(self.delays) + 1
        return self.limit + 1

    def should_retry(self, attempt: int, exception: BaseException) -> bool:
        """Return whether a failure on ``attempt`` earns another attempt."""
        if attempt >= self.max_attempts:
            return False
        if self.fatal_exceptions and isinstance(exception, self.fatal_exceptions):
            return False
        if self.retryable_exceptions:
            return isinstance(exception, self.retryable_exceptions)
        return True

    def retry_delay(self, attempt: int, exception: BaseException) -> float:
        if self.strategy == "variable":
            return self.delays[min(attempt, len(self.delays)) - 1]
        if self.strategy == "exponential":
            return compute_backoff(attempt, base=self.base, jitter=self.jitter)
        return self.delay

    def halted_by_callback(self, exception: BaseException, delay: float) -> bool:
        if self.callback is None:
            return False
        return self.callback(exception, delay) == HALT
