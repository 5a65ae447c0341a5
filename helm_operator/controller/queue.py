"""Work queue of record identities.

The queue hands each item to at most one worker at a time. An item added
while it is being processed is marked dirty and handed out again once the
worker calls `done`, so notifications that arrive mid-reconcile are never
lost and never processed concurrently.
"""

import asyncio
from collections import deque
import logging
from typing import Generic, TypeVar

__all__ = [
    "QueueShutdown",
    "WorkQueue",
]

_LOGGER = logging.getLogger(__name__)

# Upper bound of the backoff exponent so the delay never overflows a float
_MAX_EXPONENT = 62

T = TypeVar("T")


class QueueShutdown(Exception):
    """Raised by `WorkQueue.get` once the queue has been shut down."""


class WorkQueue(Generic[T]):
    """Deduplicating work queue with delayed and rate limited adds."""

    def __init__(self, base_backoff: float = 0.005, max_backoff: float = 1000.0) -> None:
        """Initialize the WorkQueue.

        Args:
            base_backoff: First delay in seconds used by `add_rate_limited`.
            max_backoff: Upper bound in seconds of the rate limited delay.
        """
        self._base_backoff = base_backoff
        self._max_backoff = max_backoff
        self._queue: deque[T] = deque()
        self._dirty: set[T] = set()
        self._processing: set[T] = set()
        self._failures: dict[T, int] = {}
        self._waiting: dict[T, tuple[float, asyncio.TimerHandle]] = {}
        self._ready = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._shutting_down = False

    def __len__(self) -> int:
        """Number of items ready to be handed out."""
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        """True once `shutdown` has been called."""
        return self._shutting_down

    def add(self, item: T) -> None:
        """Mark the item as needing processing."""
        if self._shutting_down:
            return
        if item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            _LOGGER.debug("Item %s is being processed, will requeue when done", item)
            return
        self._queue.append(item)
        self._update_events()

    def add_after(self, item: T, delay: float) -> None:
        """Add the item once the delay in seconds has passed.

        Only the earliest pending delay per item is kept.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(item)
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        if (pending := self._waiting.get(item)) is not None:
            if pending[0] <= deadline:
                return
            pending[1].cancel()
        _LOGGER.debug("Requeue of %s scheduled in %0.3fs", item, delay)
        handle = loop.call_at(deadline, self._fire_delayed, item)
        self._waiting[item] = (deadline, handle)

    def _fire_delayed(self, item: T) -> None:
        self._waiting.pop(item, None)
        self.add(item)

    def backoff(self, item: T) -> float:
        """Record a failure of the item and return its next retry delay."""
        failures = self._failures.get(item, 0)
        self._failures[item] = failures + 1
        exponent = min(failures, _MAX_EXPONENT)
        return min(self._base_backoff * (2**exponent), self._max_backoff)

    def add_rate_limited(self, item: T) -> None:
        """Add the item after its exponential backoff delay."""
        self.add_after(item, self.backoff(item))

    def forget(self, item: T) -> None:
        """Reset the backoff of the item."""
        self._failures.pop(item, None)

    def num_requeues(self, item: T) -> int:
        """Number of rate limited adds since the item was last forgotten."""
        return self._failures.get(item, 0)

    def pending_delay(self, item: T) -> float | None:
        """Seconds until a delayed add of the item fires, if one is pending."""
        if (pending := self._waiting.get(item)) is None:
            return None
        return max(pending[0] - asyncio.get_running_loop().time(), 0.0)

    async def get(self) -> T:
        """Wait for the next item and mark it as being processed."""
        while not self._queue:
            if self._shutting_down:
                raise QueueShutdown()
            self._ready.clear()
            await self._ready.wait()
        if self._shutting_down:
            raise QueueShutdown()
        item = self._queue.popleft()
        self._dirty.discard(item)
        self._processing.add(item)
        self._update_events()
        return item

    def done(self, item: T) -> None:
        """Mark the item as processed, handing it out again if it became dirty."""
        self._processing.discard(item)
        if item in self._dirty and not self._shutting_down:
            self._queue.append(item)
        self._update_events()

    def is_idle(self) -> bool:
        """True when no item is queued or being processed."""
        return not self._queue and not self._processing

    async def wait_idle(self) -> None:
        """Wait until no item is queued or being processed.

        Items waiting on a delayed add do not count as pending work.
        """
        await self._idle.wait()

    def shutdown(self) -> None:
        """Stop handing out items and cancel delayed adds."""
        _LOGGER.debug("Shutting down work queue")
        self._shutting_down = True
        for _, handle in self._waiting.values():
            handle.cancel()
        self._waiting.clear()
        self._ready.set()
        self._idle.set()

    def _update_events(self) -> None:
        if self._queue:
            self._ready.set()
        if self.is_idle() or self._shutting_down:
            self._idle.set()
        else:
            self._idle.clear()
