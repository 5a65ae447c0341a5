"""
The store module provides the desired-state record store that holds release
requests and delivers change notifications to the controller.

- Uses NamedResource as the key for all records.
- Stores values as ReleaseRequest dataclass instances from manifest.py.
- Writes use optimistic concurrency on the record resource version.
- Deletion is soft while finalizers remain on the record.

This abstract interface allows for various implementations (in-memory,
API server backed, etc.).
"""

from .store import Store, StoreEvent, WatchEvent
from .in_memory import InMemoryStore

__all__ = [
    "Store",
    "StoreEvent",
    "WatchEvent",
    "InMemoryStore",
]
