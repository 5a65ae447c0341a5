"""Tests for the helm command line release manager."""

from pathlib import Path

import pytest
import yaml

from helm_operator.config import HelmConfig
from helm_operator.exceptions import HelmException, ReleaseManagerException
from helm_operator.release_manager import HelmReleaseManager

REPO_URL = "https://stefanprodan.github.io/podinfo"

# Fake helm that logs its arguments and keeps one state file per installed
# release. A release named "broken" fails every command and one named
# "slow" hangs.
FAKE_HELM = """#!/bin/sh
echo "$@" >> "{log}"
verb="$1"
name="$2"
state="{state}/$name"
if [ "$name" = "slow" ]; then
  sleep 10
fi
if [ "$name" = "broken" ]; then
  echo "Error: Kubernetes cluster unreachable" >&2
  exit 1
fi
case "$verb" in
  status)
    [ -f "$state" ] && exit 0
    echo "Error: release: not found" >&2
    exit 1
    ;;
  install)
    touch "$state"
    ;;
  uninstall)
    [ -f "$state" ] && rm "$state" && exit 0
    echo "Error: uninstall: Release not loaded: $name: release: not found" >&2
    exit 1
    ;;
esac
while [ $# -gt 0 ]; do
  if [ "$1" = "--values" ]; then
    cat "$2" >> "{values}"
  fi
  shift
done
exit 0
"""


@pytest.fixture(name="helm_dir")
def helm_dir_fixture(tmp_path: Path) -> Path:
    """Directory holding the fake helm binary and its logs."""
    state = tmp_path / "state"
    state.mkdir()
    helm_bin = tmp_path / "helm"
    helm_bin.write_text(
        FAKE_HELM.format(
            log=tmp_path / "args.log",
            state=state,
            values=tmp_path / "values.log",
        )
    )
    helm_bin.chmod(0o755)
    return tmp_path


@pytest.fixture(name="manager")
def manager_fixture(helm_dir: Path) -> HelmReleaseManager:
    """Release manager running the fake helm binary."""
    return HelmReleaseManager(
        HelmConfig(helm_bin=str(helm_dir / "helm"), kube_context="kind-dev")
    )


def _calls(helm_dir: Path) -> list[list[str]]:
    return [line.split() for line in (helm_dir / "args.log").read_text().splitlines()]


async def test_install(manager: HelmReleaseManager, helm_dir: Path) -> None:
    """Test the install command line and values file."""
    await manager.install(
        "podinfo", "podinfo", REPO_URL, "6.5.4", "podinfo", {"replicaCount": 2}
    )
    calls = _calls(helm_dir)
    assert len(calls) == 1
    args = calls[0]
    assert args[:10] == [
        "install",
        "podinfo",
        "podinfo",
        "--repo",
        REPO_URL,
        "--version",
        "6.5.4",
        "--namespace",
        "podinfo",
        "--create-namespace",
    ]
    assert args[10] == "--values"
    assert args[11].endswith("podinfo-values.yaml")
    assert args[12:] == ["--kube-context", "kind-dev"]
    assert yaml.safe_load((helm_dir / "values.log").read_text()) == {
        "replicaCount": 2
    }
    # The values file is removed once the command completes
    assert not Path(args[11]).exists()


async def test_upgrade_without_values(
    manager: HelmReleaseManager, helm_dir: Path
) -> None:
    """Test upgrading with no values omits the values flag."""
    await manager.upgrade("podinfo", "podinfo", REPO_URL, "6.6.0", "podinfo", {})
    assert _calls(helm_dir) == [
        [
            "upgrade",
            "podinfo",
            "podinfo",
            "--repo",
            REPO_URL,
            "--version",
            "6.6.0",
            "--namespace",
            "podinfo",
            "--kube-context",
            "kind-dev",
        ]
    ]
    assert not (helm_dir / "values.log").exists()


async def test_deploy_flags(helm_dir: Path) -> None:
    """Test the optional wait and timeout flags."""
    manager = HelmReleaseManager(
        HelmConfig(
            helm_bin=str(helm_dir / "helm"),
            kubeconfig="/etc/kubeconfig",
            create_namespace=False,
            wait=True,
            timeout="5m0s",
        )
    )
    await manager.install("podinfo", "podinfo", REPO_URL, "6.5.4", "podinfo", {})
    assert _calls(helm_dir)[0][9:] == [
        "--wait",
        "--timeout",
        "5m0s",
        "--kubeconfig",
        "/etc/kubeconfig",
    ]


async def test_exists(manager: HelmReleaseManager, helm_dir: Path) -> None:
    """Test checking for a release with helm status."""
    assert not await manager.exists("podinfo", "podinfo")
    await manager.install("podinfo", "podinfo", REPO_URL, "6.5.4", "podinfo", {})
    assert await manager.exists("podinfo", "podinfo")
    assert _calls(helm_dir)[0] == [
        "status",
        "podinfo",
        "--namespace",
        "podinfo",
        "--kube-context",
        "kind-dev",
    ]


async def test_uninstall(manager: HelmReleaseManager, helm_dir: Path) -> None:
    """Test uninstalling treats a missing release as success."""
    await manager.install("podinfo", "podinfo", REPO_URL, "6.5.4", "podinfo", {})
    await manager.uninstall("podinfo", "podinfo")
    assert not await manager.exists("podinfo", "podinfo")
    await manager.uninstall("podinfo", "podinfo")
    assert [args[0] for args in _calls(helm_dir)] == [
        "install",
        "uninstall",
        "status",
        "uninstall",
    ]


async def test_backend_failures(manager: HelmReleaseManager) -> None:
    """Test helm failures are raised as release manager errors."""
    with pytest.raises(HelmException, match="cluster unreachable"):
        await manager.exists("broken", "podinfo")
    with pytest.raises(HelmException, match="cluster unreachable"):
        await manager.uninstall("broken", "podinfo")
    with pytest.raises(ReleaseManagerException, match="return code 1"):
        await manager.install("broken", "podinfo", REPO_URL, "6.5.4", "podinfo", {})


async def test_command_timeout(helm_dir: Path) -> None:
    """Test a hanging helm process is killed after the command timeout."""
    manager = HelmReleaseManager(
        HelmConfig(helm_bin=str(helm_dir / "helm"), command_timeout=0.2)
    )
    with pytest.raises(HelmException, match="timed out"):
        await manager.exists("slow", "podinfo")
