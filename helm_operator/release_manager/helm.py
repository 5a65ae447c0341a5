"""Release manager that drives the `helm` command line tool.

Each operation runs a single helm command against the cluster selected by the
kubeconfig and context in `HelmConfig`:

```python
from helm_operator.config import HelmConfig
from helm_operator.release_manager import HelmReleaseManager

manager = HelmReleaseManager(HelmConfig(kube_context="kind-dev"))
if not await manager.exists("podinfo", "podinfo"):
    await manager.install(
        "podinfo",
        "podinfo",
        "https://stefanprodan.github.io/podinfo",
        "6.5.4",
        "podinfo",
        {"replicaCount": 2},
    )
```
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging
from pathlib import Path
import tempfile
from typing import Any

import aiofiles
import yaml

from helm_operator import command
from helm_operator.config import HelmConfig
from helm_operator.exceptions import HelmException

from .manager import ReleaseManager

__all__ = [
    "HelmReleaseManager",
]

_LOGGER = logging.getLogger(__name__)

RELEASE_NOT_FOUND = "release: not found"


@asynccontextmanager
async def values_file(
    release_name: str, values: dict[str, Any]
) -> AsyncGenerator[Path | None]:
    """Write the values to a temporary YAML file for the --values flag."""
    if not values:
        yield None
        return
    with tempfile.TemporaryDirectory(prefix="helm-operator-") as tmp_dir:
        values_path = Path(tmp_dir) / f"{release_name}-values.yaml"
        async with aiofiles.open(values_path, mode="w") as out:
            await out.write(yaml.dump(values, sort_keys=False))
        yield values_path


class HelmReleaseManager(ReleaseManager):
    """Manages releases by running helm commands."""

    def __init__(self, config: HelmConfig | None = None) -> None:
        """Initialize HelmReleaseManager."""
        self._config = config or HelmConfig()
        self._flags: list[str] = []
        if self._config.kube_context:
            self._flags.extend(["--kube-context", self._config.kube_context])
        if self._config.kubeconfig:
            self._flags.extend(["--kubeconfig", self._config.kubeconfig])

    def _command(self, args: list[str], retcodes: list[int] | None = None) -> command.Command:
        return command.Command(
            [self._config.helm_bin, *args, *self._flags],
            exc=HelmException,
            retcodes=retcodes or [],
            timeout=self._config.command_timeout,
        )

    def _deploy_args(
        self,
        verb: str,
        release_name: str,
        chart: str,
        repo_url: str,
        version: str,
        namespace: str,
    ) -> list[str]:
        args = [
            verb,
            release_name,
            chart,
            "--repo",
            repo_url,
            "--version",
            version,
            "--namespace",
            namespace,
        ]
        if verb == "install" and self._config.create_namespace:
            args.append("--create-namespace")
        if self._config.wait:
            args.append("--wait")
        if self._config.timeout:
            args.extend(["--timeout", self._config.timeout])
        return args

    async def _deploy(
        self,
        verb: str,
        release_name: str,
        chart: str,
        repo_url: str,
        version: str,
        namespace: str,
        values: dict[str, Any],
    ) -> None:
        args = self._deploy_args(verb, release_name, chart, repo_url, version, namespace)
        async with values_file(release_name, values) as values_path:
            if values_path is not None:
                args.extend(["--values", str(values_path)])
            _LOGGER.info(
                "Running helm %s for release %s chart %s version %s in %s",
                verb,
                release_name,
                chart,
                version,
                namespace,
            )
            await command.run(self._command(args))

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
        await self._deploy(
            "install", release_name, chart, repo_url, version, namespace, values
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
        """Upgrade an existing release to the chart version and values."""
        await self._deploy(
            "upgrade", release_name, chart, repo_url, version, namespace, values
        )

    async def uninstall(self, release_name: str, namespace: str) -> None:
        """Remove the release, treating an already missing release as success."""
        _LOGGER.info("Running helm uninstall for release %s in %s", release_name, namespace)
        result = await command.run(
            self._command(
                ["uninstall", release_name, "--namespace", namespace], retcodes=[1]
            )
        )
        if result.returncode:
            if RELEASE_NOT_FOUND in result.stderr:
                _LOGGER.info("Release %s already uninstalled", release_name)
                return
            raise HelmException(
                f"helm uninstall {release_name} failed: {result.stderr.strip()}"
            )

    async def exists(self, release_name: str, namespace: str) -> bool:
        """Return True if helm reports a status for the release."""
        result = await command.run(
            self._command(
                ["status", release_name, "--namespace", namespace], retcodes=[1]
            )
        )
        if not result.returncode:
            return True
        if RELEASE_NOT_FOUND in result.stderr:
            return False
        raise HelmException(
            f"helm status {release_name} failed: {result.stderr.strip()}"
        )
