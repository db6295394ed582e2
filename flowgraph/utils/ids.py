from __future__ import annotations

import uuid
from typing import Awaitable, Callable

from ..errors import IdGenerationExhausted


def _candidate() -> str:
    return str(uuid.uuid4())


def generate_id(is_taken: Callable[[str], bool], max_attempts: int) -> str:
    """Return a fresh uuid for which ``is_taken`` is false.

    Raises:
        IdGenerationExhausted: every one of ``max_attempts`` candidates collided.
    """
    for _ in range(max_attempts):
        candidate = _candidate()
        if not is_taken(candidate):
            return candidate
    raise IdGenerationExhausted(f"No free id found after {max_attempts} attempts")


async def agenerate_id(
    is_taken: Callable[[str], Awaitable[bool]], max_attempts: int
) -> str:
    """Async counterpart of :func:`generate_id` for store-backed checks."""
    for _ in range(max_attempts):
        candidate = _candidate()
        if not await is_taken(candidate):
            return candidate
    raise IdGenerationExhausted(f"No free id found after {max_attempts} attempts")
