"""In-memory release manager that records calls instead of deploying."""

import copy
from dataclasses import dataclass, field
import logging
from typing import Any

from helm_operator.exceptions import ReleaseNotFoundError

from .manager import ReleaseManager

__all__ = [
    "ReleaseCall",
    "Release",
    "InMemoryReleaseManager",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseCall:
    """Arguments of a single call made to the release manager."""

    operation: str
    release_name: str
    namespace: str
    chart: str | None = None
    repo_url: str | None = None
    version: str | None = None
    values: dict[str, Any] | None = None


@dataclass
class Release:
    """A release tracked by the in-memory backend."""

    name: str
    namespace: str
    chart: str
    repo_url: str
    version: str
    values: dict[str, Any] = field(default_factory=dict)
    revision: int = 1


class InMemoryReleaseManager(ReleaseManager):
    """Release manager keeping releases in a dict.

    Every call is recorded in `calls`. The `*_error` attributes make the
    matching operation raise instead, and `exists_result` overrides the
    answer of `exists`.
    """

    def __init__(self) -> None:
        """Initialize InMemoryReleaseManager."""
        self.releases: dict[tuple[str, str], Release] = {}
        self.calls: list[ReleaseCall] = []
        self.install_error: Exception | None = None
        self.upgrade_error: Exception | None = None
        self.uninstall_error: Exception | None = None
        self.exists_error: Exception | None = None
        self.exists_result: bool | None = None

    def calls_for(self, operation: str) -> list[ReleaseCall]:
        """Return the recorded calls of a single operation."""
        return [call for call in self.calls if call.operation == operation]

    async def install(
        self,
        release_name: str,
        chart: str,
        repo_url: str,
        version: str,
        namespace: str,
        values: dict[str, Any],
    ) -> None:
        """Record an install and track the release."""
        self.calls.append(
            ReleaseCall(
                "install",
                release_name,
                namespace,
                chart=chart,
                repo_url=repo_url,
                version=version,
                values=copy.deepcopy(values),
            )
        )
        if self.install_error is not None:
            raise self.install_error
        _LOGGER.info("Installed release %s/%s", namespace, release_name)
        self.releases[(namespace, release_name)] = Release(
            name=release_name,
            namespace=namespace,
            chart=chart,
            repo_url=repo_url,
            version=version,
            values=copy.deepcopy(values),
        )

    async def upgrade(
        self,
        release_name: str,
        chart: str,
        repo_url: str,
        version: str,
        namespace: str,
        values: dict[str, Any],
    ) -> None:
        """Record an upgrade and bump the release revision."""
        self.calls.append(
            ReleaseCall(
                "upgrade",
                release_name,
                namespace,
                chart=chart,
                repo_url=repo_url,
                version=version,
                values=copy.deepcopy(values),
            )
        )
        if self.upgrade_error is not None:
            raise self.upgrade_error
        if (release := self.releases.get((namespace, release_name))) is None:
            raise ReleaseNotFoundError(
                f"upgrade {namespace}/{release_name}: release: not found"
            )
        _LOGGER.info("Upgraded release %s/%s to %s", namespace, release_name, version)
        release.chart = chart
        release.repo_url = repo_url
        release.version = version
        release.values = copy.deepcopy(values)
        release.revision += 1

    async def uninstall(self, release_name: str, namespace: str) -> None:
        """Record an uninstall and forget the release."""
        self.calls.append(ReleaseCall("uninstall", release_name, namespace))
        if self.uninstall_error is not None:
            raise self.uninstall_error
        _LOGGER.info("Uninstalled release %s/%s", namespace, release_name)
        self.releases.pop((namespace, release_name), None)

    async def exists(self, release_name: str, namespace: str) -> bool:
        """Record an existence check."""
        self.calls.append(ReleaseCall("exists", release_name, namespace))
        if self.exists_error is not None:
            raise self.exists_error
        if self.exists_result is not None:
            return self.exists_result
        return (namespace, release_name) in self.releases
