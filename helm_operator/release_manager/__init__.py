"""Release manager package.

A release manager is the capability interface the reconciler uses to act on
the deployment backend. `HelmReleaseManager` drives the helm command line
tool and `InMemoryReleaseManager` records calls for tests and dry runs.
"""

from .manager import ReleaseManager
from .helm import HelmReleaseManager
from .memory import InMemoryReleaseManager, ReleaseCall

__all__ = [
    "ReleaseManager",
    "HelmReleaseManager",
    "InMemoryReleaseManager",
    "ReleaseCall",
]
