"""Record store interface holding release requests."""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TYPE_CHECKING

from helm_operator.manifest import NamedResource, ReleaseRequest


class StoreEvent(str, Enum):
    """Enum for store events."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class WatchEvent:
    """A change notification for a single record."""

    type: StoreEvent
    """The kind of change."""

    resource_id: NamedResource
    """Identity of the changed record."""

    obj: ReleaseRequest
    """Copy of the record after the change (last known state when deleted)."""

    old: ReleaseRequest | None = None
    """Copy of the record before the change, if any."""


class Store(ABC):
    """Abstract base class for the desired-state record store.

    Records are keyed by (kind, namespace, name). Writes use optimistic
    concurrency on `metadata.resource_version` and every write returns a
    fresh copy of the stored record.
    """

    @abstractmethod
    def get(self, resource_id: NamedResource) -> ReleaseRequest | None:
        """Retrieve a copy of the record, or None if it does not exist."""

    @abstractmethod
    def list_objects(
        self, kind: str | None = None, namespace: str | None = None
    ) -> list[ReleaseRequest]:
        """List copies of all records, optionally filtered by kind or namespace."""

    @abstractmethod
    def create(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Create a new record.

        Raises:
            AlreadyExistsError: If a record with the same identity exists.
        """

    @abstractmethod
    def update(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Replace the metadata and spec of a record.

        The status is a subresource and is ignored by this call. A spec change
        increments the generation. Clearing the last finalizer of a record that
        is marked for deletion erases it.

        Raises:
            ObjectNotFoundError: If the record does not exist.
            ConflictError: If the record was changed since `obj` was read.
        """

    @abstractmethod
    def update_status(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Replace the status subresource of a record.

        Raises:
            ObjectNotFoundError: If the record does not exist.
            ConflictError: If the record was changed since `obj` was read.
        """

    @abstractmethod
    def patch_status(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> ReleaseRequest:
        """Merge a partial status document into the status subresource.

        Raises:
            ObjectNotFoundError: If the record does not exist.
        """

    @abstractmethod
    def delete(self, resource_id: NamedResource) -> None:
        """Request deletion of a record.

        A record holding finalizers is only marked for deletion and is erased
        once its last finalizer is removed.

        Raises:
            ObjectNotFoundError: If the record does not exist.
        """

    @abstractmethod
    def add_listener(
        self,
        callback: Callable[[WatchEvent], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback invoked for every change notification.

        When `flush` is set, existing records are replayed as ADDED events.
        Returns a callable that can be called to remove the listener.
        """

    @abstractmethod
    async def watch(self, kind: str | None = None) -> AsyncGenerator[WatchEvent]:
        """Watch for change notifications, starting with existing records.

        This is an asynchronous iterator that first yields an ADDED event for
        each existing record of the kind, then every subsequent change.
        """
        if TYPE_CHECKING:
            yield None  # type: ignore[misc]
