"""Registry of record kinds understood by the operator.

The registry is built once at startup with `build_registry` and handed to the
components that need to decode or validate records (the store and the
controller). There is no process wide registration.
"""

import logging
from typing import Any, Protocol

from .exceptions import InputException
from .manifest import ReleaseRequest

__all__ = [
    "Resource",
    "ResourceRegistry",
    "build_registry",
]

_LOGGER = logging.getLogger(__name__)


class Resource(Protocol):
    """Interface of a record class that may be registered."""

    kind: str
    api_version: str

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> Any:
        """Parse the record from a document."""


class ResourceRegistry:
    """Maps (apiVersion, kind) to record classes."""

    def __init__(self) -> None:
        """Initialize an empty ResourceRegistry."""
        self._types: dict[tuple[str, str], type[Resource]] = {}

    def register(self, cls: type[Resource]) -> None:
        """Register a record class under its apiVersion and kind."""
        key = (cls.api_version, cls.kind)
        if key in self._types:
            raise ValueError(f"Kind {cls.kind} ({cls.api_version}) already registered")
        _LOGGER.debug("Registering kind %s (%s)", cls.kind, cls.api_version)
        self._types[key] = cls

    def lookup(self, api_version: str, kind: str) -> type[Resource]:
        """Return the class registered for the apiVersion and kind."""
        if (cls := self._types.get((api_version, kind))) is None:
            raise InputException(f"Unsupported kind {kind} ({api_version})")
        return cls

    def is_registered(self, cls: type[Any]) -> bool:
        """Return True if the class is registered."""
        return self._types.get((cls.api_version, cls.kind)) is cls

    def kinds(self) -> list[str]:
        """Return the registered kinds."""
        return sorted({kind for _, kind in self._types})

    def parse_doc(self, doc: dict[str, Any]) -> Any:
        """Parse a document into the registered record class."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object, expected a mapping: {doc}")
        api_version = doc.get("apiVersion")
        kind = doc.get("kind")
        if not api_version or not kind:
            raise InputException(f"Invalid object missing apiVersion or kind: {doc}")
        return self.lookup(api_version, kind).parse_doc(doc)


def build_registry() -> ResourceRegistry:
    """Create a registry with every record kind managed by the operator."""
    registry = ResourceRegistry()
    registry.register(ReleaseRequest)
    return registry
