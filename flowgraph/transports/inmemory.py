"""In-memory transport for testing."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from ..contracts import JobMessage
from .base import BaseTransport

RawMessage = Tuple[str, JobMessage]


class InMemoryTransport(BaseTransport[RawMessage]):
    """Simple in-process queue for unit tests.

    Delayed messages wait in a heap until they are due. Messages nacked
    without requeue land in :attr:`dead_letters`.
    """

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._queues: Dict[str, Deque[RawMessage]] = defaultdict(deque)
        self._delayed: List[Tuple[float, int, str, RawMessage]] = []
        self._sequence = itertools.count()
        self.dead_letters: Dict[str, List[RawMessage]] = defaultdict(list)
        self.poll_interval = poll_interval

    def _release_due(self) -> None:
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, queue, raw = heapq.heappop(self._delayed)
            self._queues[queue].append(raw)

    async def publish(self, queue: str, message: JobMessage, delay: float = 0.0) -> None:
        """Publish message to in-memory queue."""
        raw = (message.to_json(), message)
        if delay > 0:
            heapq.heappush(
                self._delayed, (time.monotonic() + delay, next(self._sequence), queue, raw)
            )
        else:
            self._queues[queue].append(raw)

    def get_nowait(self, queue: str) -> Optional[RawMessage]:
        """Pop the next due message of ``queue`` without waiting."""
        self._release_due()
        if self._queues[queue]:
            return self._queues[queue].popleft()
        return None

    def messages(self, queue: str) -> List[JobMessage]:
        """Messages currently visible on ``queue``, oldest first."""
        self._release_due()
        return [message for _, message in self._queues[queue]]

    def delayed(self, queue: str) -> List[JobMessage]:
        return [raw[1] for _, _, q, raw in sorted(self._delayed) if q == queue]

    async def subscribe(
        self, queue: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessage, JobMessage]]:
        """Subscribe to messages from queue.

        Args:
            queue: The queue to consume from
            lifespan: Maximum time in seconds to keep consuming. If None, runs indefinitely.
        """
        start_time = asyncio.get_running_loop().time() if lifespan else None

        while True:
            if lifespan and start_time:
                elapsed = asyncio.get_running_loop().time() - start_time
                if elapsed >= lifespan:
                    break

            raw_message = self.get_nowait(queue)
            if raw_message is not None:
                yield raw_message, raw_message[1]
                continue

            await asyncio.sleep(self.poll_interval)

    async def ack(self, raw_message: RawMessage) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass

    async def nack(self, raw_message: RawMessage, requeue: bool = True) -> None:
        message = raw_message[1]
        if requeue:
            self._queues[message.queue].append(raw_message)
        else:
            self.dead_letters[message.queue].append(raw_message)
