"""Shared fixtures for helm-operator tests."""

from collections.abc import Callable
import datetime
from typing import Any

import pytest

from helm_operator.manifest import ReleaseRequest
from helm_operator.registry import ResourceRegistry, build_registry
from helm_operator.release_manager import InMemoryReleaseManager
from helm_operator.store import InMemoryStore

START = datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = START

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float = 60) -> None:
        self.now += datetime.timedelta(seconds=seconds)


def _release_doc(
    name: str = "podinfo",
    namespace: str = "default",
    version: str = "6.5.4",
    values: Any = None,
    **spec: Any,
) -> dict[str, Any]:
    """Return a HelmRelease document."""
    doc: dict[str, Any] = {
        "apiVersion": "helm.example.com/v1alpha1",
        "kind": "HelmRelease",
        "metadata": {
            "name": name,
            "namespace": namespace,
        },
        "spec": {
            "chart": "podinfo",
            "repoURL": "https://stefanprodan.github.io/podinfo",
            "version": version,
            "targetNamespace": "podinfo",
            **spec,
        },
    }
    if values is not None:
        doc["spec"]["values"] = values
    return doc


@pytest.fixture(name="make_doc")
def make_doc_fixture() -> Callable[..., dict[str, Any]]:
    """Factory for HelmRelease documents."""
    return _release_doc


@pytest.fixture(name="registry")
def registry_fixture() -> ResourceRegistry:
    """Registry with the operator kinds."""
    return build_registry()


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    """A controllable clock."""
    return FakeClock()


@pytest.fixture(name="store")
def store_fixture(registry: ResourceRegistry, clock: FakeClock) -> InMemoryStore:
    """An empty record store."""
    return InMemoryStore(registry, now=clock)


@pytest.fixture(name="release_manager")
def release_manager_fixture() -> InMemoryReleaseManager:
    """A release manager that records calls."""
    return InMemoryReleaseManager()


@pytest.fixture(name="release")
def release_fixture() -> ReleaseRequest:
    """A release request that has not been stored yet."""
    return ReleaseRequest.parse_doc(_release_doc(values={"replicaCount": 2}))
