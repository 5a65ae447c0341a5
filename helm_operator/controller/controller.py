"""HelmRelease controller.

The controller subscribes to store change notifications, turns them into
record identities on a work queue and runs a fixed pool of worker tasks that
invoke the reconciler and apply the retry policy to the outcome.
"""

import asyncio
from collections.abc import Callable
import logging

from helm_operator.config import ControllerConfig
from helm_operator.exceptions import ConflictError, ReconcileError
from helm_operator.manifest import NamedResource
from helm_operator.registry import ResourceRegistry
from helm_operator.store import Store, StoreEvent, WatchEvent

from .queue import QueueShutdown, WorkQueue
from .reconciler import ReleaseReconciler

__all__ = [
    "ReleaseController",
    "should_enqueue",
]

_LOGGER = logging.getLogger(__name__)


def should_enqueue(event: WatchEvent) -> bool:
    """Return True if the change requires a reconcile.

    Status writes made by the reconciler itself do not change the
    generation, finalizers or deletion marker and are ignored.
    """
    if event.type != StoreEvent.MODIFIED or event.old is None:
        return True
    old, new = event.old.metadata, event.obj.metadata
    return (
        old.generation != new.generation
        or old.finalizers != new.finalizers
        or old.deletion_timestamp != new.deletion_timestamp
    )


class ReleaseController:
    """Runs the reconciler for every changed record with a pool of workers."""

    def __init__(
        self,
        store: Store,
        reconciler: ReleaseReconciler,
        registry: ResourceRegistry,
        config: ControllerConfig | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            store: The record store to watch
            reconciler: Invoked once per dequeued record identity
            registry: Kinds outside the registry are not enqueued
            config: The configuration for the controller
        """
        self._store = store
        self._reconciler = reconciler
        self._kinds = set(registry.kinds())
        self._config = config or ControllerConfig()
        self.queue: WorkQueue[NamedResource] = WorkQueue(
            base_backoff=self._config.base_backoff,
            max_backoff=self._config.max_backoff,
        )
        self._tasks: list[asyncio.Task[None]] = []
        self._remove_listener: Callable[[], None] | None = None

    def start(self) -> None:
        """Subscribe to the store and start the workers."""
        if self._tasks:
            raise RuntimeError("Controller already started")
        self._remove_listener = self._store.add_listener(self._on_event, flush=True)
        _LOGGER.info("Starting %d reconcile workers", self._config.workers)
        for i in range(self._config.workers):
            self._tasks.append(
                asyncio.create_task(self._worker(), name=f"reconcile-worker-{i}")
            )

    def _on_event(self, event: WatchEvent) -> None:
        if event.resource_id.kind not in self._kinds:
            return
        if not should_enqueue(event):
            _LOGGER.debug("Ignoring %s event for %s", event.type.value, event.resource_id)
            return
        _LOGGER.debug("Enqueue %s after %s event", event.resource_id, event.type.value)
        self.queue.add(event.resource_id)

    async def _worker(self) -> None:
        while True:
            try:
                resource_id = await self.queue.get()
            except QueueShutdown:
                return
            try:
                await self._process(resource_id)
            finally:
                self.queue.done(resource_id)

    async def _process(self, resource_id: NamedResource) -> None:
        """Reconcile a single record and requeue it according to the outcome."""
        try:
            async with asyncio.timeout(self._config.reconcile_timeout):
                result = await self._reconciler.reconcile(resource_id)
        except ReconcileError as err:
            if err.requeue_after is None:
                self.queue.add_rate_limited(resource_id)
            else:
                _LOGGER.info(
                    "Reconcile of %s failed, retrying in %ss: %s",
                    resource_id,
                    err.requeue_after,
                    err,
                )
                self.queue.add_after(resource_id, err.requeue_after)
        except ConflictError as err:
            _LOGGER.info("Conflict reconciling %s, retrying: %s", resource_id, err)
            self.queue.add(resource_id)
        except TimeoutError:
            _LOGGER.warning(
                "Reconcile of %s exceeded deadline of %ss",
                resource_id,
                self._config.reconcile_timeout,
            )
            self.queue.add_rate_limited(resource_id)
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.exception("Unexpected error reconciling %s: %s", resource_id, err)
            self.queue.add_rate_limited(resource_id)
        else:
            self.queue.forget(resource_id)
            if result.requeue_after is not None:
                self.queue.add_after(resource_id, result.requeue_after)

    async def wait_idle(self) -> None:
        """Wait until no record is queued or being reconciled."""
        await self.queue.wait_idle()

    async def close(self) -> None:
        """Stop watching the store and cancel the workers."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        self.queue.shutdown()
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
