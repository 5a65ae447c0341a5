"""Module for in memory record store."""

import asyncio
import copy
import datetime
import itertools
import logging
from collections.abc import AsyncGenerator, Callable
from typing import Any

from mashumaro.exceptions import InvalidFieldValue, MissingField

from helm_operator.conditions import CONDITION_READY, find_condition
from helm_operator.exceptions import (
    AlreadyExistsError,
    ConflictError,
    InputException,
    ObjectNotFoundError,
)
from helm_operator.manifest import NamedResource, Phase, ReleaseRequest, ReleaseStatus
from helm_operator.registry import ResourceRegistry

from .store import Store, StoreEvent, WatchEvent


_LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Stores deep copies of records keyed by NamedResource so callers never
    share state with the store, and supports listeners for change
    notifications.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        now: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        """Initialize the InMemoryStore."""
        self._registry = registry
        self._now = now
        self._objects: dict[NamedResource, ReleaseRequest] = {}
        self._listeners: list[Callable[[WatchEvent], None]] = []
        self._versions = itertools.count(1)

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _get_current(self, resource_id: NamedResource) -> ReleaseRequest:
        if (current := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        return current

    @staticmethod
    def _check_version(current: ReleaseRequest, obj: ReleaseRequest) -> None:
        version = obj.metadata.resource_version
        if version is not None and version != current.metadata.resource_version:
            raise ConflictError(
                f"Object {current.resource_id} has been modified; "
                f"resource version {version} is stale "
                f"(current {current.metadata.resource_version})"
            )

    def get(self, resource_id: NamedResource) -> ReleaseRequest | None:
        """Retrieve a copy of the record, or None if it does not exist."""
        if (obj := self._objects.get(resource_id)) is None:
            return None
        return copy.deepcopy(obj)

    def list_objects(
        self, kind: str | None = None, namespace: str | None = None
    ) -> list[ReleaseRequest]:
        """List copies of all records, optionally filtered by kind or namespace."""
        return [
            copy.deepcopy(obj)
            for resource_id, obj in sorted(self._objects.items())
            if (kind is None or resource_id.kind == kind)
            and (namespace is None or resource_id.namespace == namespace)
        ]

    def create(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Create a new record."""
        if not self._registry.is_registered(type(obj)):
            raise InputException(f"Kind {obj.kind} is not registered with the store")
        resource_id = obj.resource_id
        if resource_id in self._objects:
            raise AlreadyExistsError(f"Object {resource_id} already exists")
        new = copy.deepcopy(obj)
        new.metadata.generation = 1
        new.metadata.resource_version = self._next_version()
        new.metadata.creation_timestamp = self._now()
        new.metadata.deletion_timestamp = None
        _LOGGER.debug("Adding object %s to store", resource_id)
        self._objects[resource_id] = new
        self._fire_event(WatchEvent(StoreEvent.ADDED, resource_id, new))
        return copy.deepcopy(new)

    def update(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Replace the metadata and spec of a record."""
        resource_id = obj.resource_id
        current = self._get_current(resource_id)
        self._check_version(current, obj)

        new = copy.deepcopy(current)
        new.metadata.finalizers = list(obj.metadata.finalizers)
        new.metadata.labels = copy.deepcopy(obj.metadata.labels)
        new.spec = copy.deepcopy(obj.spec)
        if new.spec != current.spec:
            new.metadata.generation += 1
        if new.metadata == current.metadata and new.spec == current.spec:
            _LOGGER.debug("Object %s unchanged, skipping update", resource_id)
            return copy.deepcopy(current)

        if new.is_deleting and not new.metadata.finalizers:
            _LOGGER.debug("Last finalizer removed, erasing object %s", resource_id)
            del self._objects[resource_id]
            self._fire_event(WatchEvent(StoreEvent.DELETED, resource_id, new, current))
            return copy.deepcopy(new)

        _LOGGER.debug(
            "Updating object %s (generation %s)", resource_id, new.metadata.generation
        )
        new.metadata.resource_version = self._next_version()
        self._objects[resource_id] = new
        self._fire_event(WatchEvent(StoreEvent.MODIFIED, resource_id, new, current))
        return copy.deepcopy(new)

    def update_status(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Replace the status subresource of a record."""
        resource_id = obj.resource_id
        current = self._get_current(resource_id)
        self._check_version(current, obj)
        if obj.status == current.status:
            _LOGGER.debug("Status of %s unchanged, skipping update", resource_id)
            return copy.deepcopy(current)
        new = copy.deepcopy(current)
        new.status = copy.deepcopy(obj.status)
        return self._write_status(resource_id, current, new)

    def patch_status(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> ReleaseRequest:
        """Merge a partial status document into the status subresource."""
        current = self._get_current(resource_id)
        merged = {**current.status.to_dict(), **patch}
        try:
            status = ReleaseStatus.from_dict(merged)
        except (MissingField, InvalidFieldValue, ValueError) as err:
            raise InputException(f"Invalid status patch for {resource_id}: {err}") from err
        if status == current.status:
            return copy.deepcopy(current)
        new = copy.deepcopy(current)
        new.status = status
        return self._write_status(resource_id, current, new)

    def _write_status(
        self, resource_id: NamedResource, current: ReleaseRequest, new: ReleaseRequest
    ) -> ReleaseRequest:
        if new.status.phase == Phase.FAILED:
            ready = find_condition(new.status.conditions, CONDITION_READY)
            _LOGGER.error(
                "Resource %s status %s with error: %s",
                resource_id.namespaced_name,
                new.status.phase,
                ready.message if ready else None,
            )
        else:
            _LOGGER.debug(
                "Updating status for resource %s to %s",
                resource_id.namespaced_name,
                new.status.phase,
            )
        new.metadata.resource_version = self._next_version()
        self._objects[resource_id] = new
        self._fire_event(WatchEvent(StoreEvent.MODIFIED, resource_id, new, current))
        return copy.deepcopy(new)

    def delete(self, resource_id: NamedResource) -> None:
        """Request deletion of a record."""
        current = self._get_current(resource_id)
        if not current.metadata.finalizers:
            _LOGGER.debug("Erasing object %s", resource_id)
            del self._objects[resource_id]
            self._fire_event(WatchEvent(StoreEvent.DELETED, resource_id, current))
            return
        if current.is_deleting:
            _LOGGER.debug("Object %s is already being deleted", resource_id)
            return
        _LOGGER.debug(
            "Marking object %s for deletion, waiting on finalizers %s",
            resource_id,
            current.metadata.finalizers,
        )
        new = copy.deepcopy(current)
        new.metadata.deletion_timestamp = self._now()
        new.metadata.resource_version = self._next_version()
        self._objects[resource_id] = new
        self._fire_event(WatchEvent(StoreEvent.MODIFIED, resource_id, new, current))

    def add_listener(
        self,
        callback: Callable[[WatchEvent], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback invoked for every change notification."""

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        self._listeners.append(callback)

        if flush:
            _LOGGER.debug("Flushing %d objects to new listener", len(self._objects))
            for resource_id, obj in sorted(self._objects.items()):
                callback(
                    WatchEvent(StoreEvent.ADDED, resource_id, copy.deepcopy(obj))
                )

        return remove

    def _fire_event(self, event: WatchEvent) -> None:
        for cb in list(self._listeners):  # Iterate over a copy for safe removal
            try:
                cb(
                    WatchEvent(
                        event.type,
                        event.resource_id,
                        copy.deepcopy(event.obj),
                        copy.deepcopy(event.old),
                    )
                )
            except Exception:
                _LOGGER.exception(
                    "Store listener callback failed for event %s", event.type
                )

    async def watch(self, kind: str | None = None) -> AsyncGenerator[WatchEvent]:
        """Watch for change notifications, starting with existing records."""
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()

        def callback(event: WatchEvent) -> None:
            if kind is None or event.resource_id.kind == kind:
                queue.put_nowait(event)

        remove_listener = self.add_listener(callback, flush=True)
        try:
            while True:
                event = await queue.get()
                yield event
                queue.task_done()
        except asyncio.CancelledError:
            _LOGGER.debug("watch for kind '%s' cancelled.", kind)
            raise
        finally:
            _LOGGER.debug("Cleaning up listener for watch (kind: %s)", kind)
            remove_listener()
