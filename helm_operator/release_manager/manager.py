"""Capability interface of the deployment backend."""

from abc import ABC, abstractmethod
from typing import Any


class ReleaseManager(ABC):
    """Installs, upgrades and removes named releases in a target namespace.

    All operations block until the backend reports completion or failure and
    must be safe to invoke repeatedly with the same arguments. Failures are
    raised as `ReleaseManagerException`.
    """

    @abstractmethod
    async def install(
        self,
        release_name: str,
        chart: str,
        repo_url: str,
        version: str,
        namespace: str,
        values: dict[str, Any],
    ) -> None:
        """Install a new release of the chart."""

    @abstractmethod
    async def upgrade(
        self,
        release_name: str,
        chart: str,
        repo_url: str,
        version: str,
        namespace: str,
        values: dict[str, Any],
    ) -> None:
        """Upgrade an existing release to the chart version and values."""

    @abstractmethod
    async def uninstall(self, release_name: str, namespace: str) -> None:
        """Remove the release and the resources it owns."""

    @abstractmethod
    async def exists(self, release_name: str, namespace: str) -> bool:
        """Return True if the release exists.

        A missing release is a normal outcome and returns False; only a
        failure to answer the question raises.
        """
