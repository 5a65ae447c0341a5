"""Tests for the in-memory release manager."""

import pytest

from helm_operator.exceptions import ReleaseManagerException, ReleaseNotFoundError
from helm_operator.release_manager import InMemoryReleaseManager, ReleaseCall

REPO_URL = "https://stefanprodan.github.io/podinfo"


async def test_release_lifecycle(release_manager: InMemoryReleaseManager) -> None:
    """Test installing, upgrading and uninstalling a release."""
    assert not await release_manager.exists("podinfo", "podinfo")

    await release_manager.install(
        "podinfo", "podinfo", REPO_URL, "6.5.4", "podinfo", {"replicaCount": 2}
    )
    assert await release_manager.exists("podinfo", "podinfo")
    assert not await release_manager.exists("podinfo", "other")
    release = release_manager.releases[("podinfo", "podinfo")]
    assert release.version == "6.5.4"
    assert release.revision == 1

    await release_manager.upgrade(
        "podinfo", "podinfo", REPO_URL, "6.6.0", "podinfo", {}
    )
    assert release.version == "6.6.0"
    assert release.values == {}
    assert release.revision == 2

    await release_manager.uninstall("podinfo", "podinfo")
    assert not await release_manager.exists("podinfo", "podinfo")
    # Uninstalling a missing release succeeds
    await release_manager.uninstall("podinfo", "podinfo")

    assert [call.operation for call in release_manager.calls] == [
        "exists",
        "install",
        "exists",
        "exists",
        "upgrade",
        "uninstall",
        "exists",
        "uninstall",
    ]
    assert release_manager.calls_for("install") == [
        ReleaseCall(
            "install",
            "podinfo",
            "podinfo",
            chart="podinfo",
            repo_url=REPO_URL,
            version="6.5.4",
            values={"replicaCount": 2},
        )
    ]


async def test_upgrade_missing(release_manager: InMemoryReleaseManager) -> None:
    """Test upgrading a release that was never installed."""
    with pytest.raises(ReleaseNotFoundError, match="release: not found"):
        await release_manager.upgrade(
            "podinfo", "podinfo", REPO_URL, "6.6.0", "podinfo", {}
        )


async def test_injected_errors(release_manager: InMemoryReleaseManager) -> None:
    """Test failures can be injected per operation."""
    release_manager.install_error = ReleaseManagerException("install failed")
    release_manager.exists_error = ReleaseManagerException("cluster unreachable")
    release_manager.uninstall_error = ReleaseManagerException("uninstall failed")

    with pytest.raises(ReleaseManagerException, match="install failed"):
        await release_manager.install("a", "podinfo", REPO_URL, "6.5.4", "ns", {})
    assert not release_manager.releases
    with pytest.raises(ReleaseManagerException, match="cluster unreachable"):
        await release_manager.exists("a", "ns")
    with pytest.raises(ReleaseManagerException, match="uninstall failed"):
        await release_manager.uninstall("a", "ns")

    release_manager.exists_error = None
    release_manager.exists_result = True
    assert await release_manager.exists("a", "ns")


async def test_values_are_copied(release_manager: InMemoryReleaseManager) -> None:
    """Test the recorded values are not shared with the caller."""
    values = {"image": {"tag": "6.5.4"}}
    await release_manager.install("a", "podinfo", REPO_URL, "6.5.4", "ns", values)
    values["image"]["tag"] = "latest"
    assert release_manager.calls_for("install")[0].values == {
        "image": {"tag": "6.5.4"}
    }
    assert release_manager.releases[("ns", "a")].values == {"image": {"tag": "6.5.4"}}
