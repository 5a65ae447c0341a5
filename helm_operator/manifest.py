"""Representation of the release request records managed by the operator.

A `ReleaseRequest` is the desired/observed state record for one Helm release.
Its wire format mirrors a Kubernetes custom resource of kind `HelmRelease`
in the `helm.example.com` group:

```yaml
apiVersion: helm.example.com/v1alpha1
kind: HelmRelease
metadata:
  name: podinfo
  namespace: default
spec:
  chart: podinfo
  repoURL: https://stefanprodan.github.io/podinfo
  version: 6.5.4
  targetNamespace: podinfo
  values:
    replicaCount: 2
```

The `status` block is owned by the reconciler and `metadata.generation`,
`metadata.resourceVersion` and `metadata.deletionTimestamp` are owned by the
record store.
"""

from dataclasses import dataclass, field
import datetime
from enum import StrEnum
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "Phase",
    "ConditionStatus",
    "Condition",
    "ObjectMeta",
    "ReleaseSpec",
    "ReleaseStatus",
    "ReleaseRequest",
]

_LOGGER = logging.getLogger(__name__)


API_GROUP = "helm.example.com"
API_VERSION = f"{API_GROUP}/v1alpha1"
HELM_RELEASE = "HelmRelease"
FINALIZER = f"{API_GROUP}/finalizer"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if api_version != version:
        raise InputException(f"Invalid object expected '{version}': {doc}")


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a record in the store."""

    kind: str
    namespace: str
    name: str

    @property
    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


class Phase(StrEnum):
    """Coarse lifecycle state of a release request."""

    INSTALLING = "Installing"
    UPGRADING = "Upgrading"
    READY = "Ready"
    FAILED = "Failed"
    UNINSTALLING = "Uninstalling"


class ConditionStatus(StrEnum):
    """Boolean-like value of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class Condition(BaseManifest):
    """A typed, timestamped observation attached to the record status."""

    type: str
    """The condition type e.g. Ready or Progressing."""

    status: ConditionStatus
    """Whether the condition currently holds."""

    reason: str
    """A machine readable reason code for the last change."""

    message: str = ""
    """A human readable message with details about the last change."""

    last_transition_time: datetime.datetime | None = field(
        metadata=field_options(alias="lastTransitionTime"), default=None
    )
    """When the status value last changed."""

    observed_generation: int = field(
        metadata=field_options(alias="observedGeneration"), default=0
    )
    """The record generation this condition was computed from."""


@dataclass
class ObjectMeta(BaseManifest):
    """Record metadata, mostly owned by the store."""

    name: str
    """The name of the record."""

    namespace: str
    """The namespace that owns the record."""

    generation: int = 0
    """Incremented by the store on every spec change."""

    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    """Opaque version used for optimistic concurrency on writes."""

    finalizers: list[str] = field(default_factory=list)
    """Tokens that block permanent removal of the record."""

    deletion_timestamp: datetime.datetime | None = field(
        metadata=field_options(alias="deletionTimestamp"), default=None
    )
    """Set by the store when deletion was requested."""

    creation_timestamp: datetime.datetime | None = field(
        metadata=field_options(alias="creationTimestamp"), default=None
    )
    """Set by the store when the record is created."""

    labels: dict[str, str] | None = None
    """Labels on the record."""


@dataclass
class ReleaseSpec(BaseManifest):
    """The desired state of a release."""

    chart: str
    """The name of the chart to deploy."""

    repo_url: str = field(metadata=field_options(alias="repoURL"))
    """The URL of the chart repository."""

    version: str
    """The chart version to deploy."""

    target_namespace: str = field(metadata=field_options(alias="targetNamespace"))
    """The namespace the release is installed into."""

    release_name: str | None = field(
        metadata=field_options(alias="releaseName"), default=None
    )
    """Overrides the release name, defaults to the record name."""

    values: Any = None
    """Opaque values payload, either a mapping or a JSON/YAML document string."""


@dataclass
class ReleaseStatus(BaseManifest):
    """The observed state of a release, written only by the reconciler."""

    phase: Phase | None = None
    """The current lifecycle phase."""

    conditions: list[Condition] = field(default_factory=list)
    """The latest observations of the record state."""

    deployed_version: str | None = field(
        metadata=field_options(alias="deployedVersion"), default=None
    )
    """The chart version currently deployed."""

    observed_generation: int = field(
        metadata=field_options(alias="observedGeneration"), default=0
    )
    """The generation last successfully reconciled."""

    last_deployed_at: datetime.datetime | None = field(
        metadata=field_options(alias="lastDeployedAt"), default=None
    )
    """When the last successful reconcile completed."""


@dataclass
class ReleaseRequest(BaseManifest):
    """A request to keep a Helm release deployed."""

    kind: ClassVar[str] = HELM_RELEASE
    """The kind of the object."""

    api_version: ClassVar[str] = API_VERSION
    """The apiVersion of the object."""

    metadata: ObjectMeta
    """Identity and store-managed bookkeeping."""

    spec: ReleaseSpec
    """The desired state."""

    status: ReleaseStatus = field(default_factory=ReleaseStatus)
    """The observed state."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ReleaseRequest":
        """Parse a ReleaseRequest from a kubernetes style resource object."""
        _check_version(doc, cls.api_version)
        if doc.get("kind") != cls.kind:
            raise InputException(f"Invalid {cls.__name__} expected kind {cls.kind}: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
        if not metadata.get("name"):
            raise InputException(f"Invalid {cls.__name__} missing metadata.name: {doc}")
        if not metadata.get("namespace"):
            raise InputException(
                f"Invalid {cls.__name__} missing metadata.namespace: {doc}"
            )
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        for key in ("chart", "repoURL", "version", "targetNamespace"):
            if not spec.get(key):
                raise InputException(f"Invalid {cls.__name__} missing spec.{key}: {doc}")
        try:
            return cls.from_dict(
                {
                    "metadata": metadata,
                    "spec": spec,
                    "status": doc.get("status") or {},
                }
            )
        except (MissingField, InvalidFieldValue, ValueError) as err:
            raise InputException(f"Invalid {cls.__name__}: {err}") from err

    def to_doc(self) -> dict[str, Any]:
        """Return the kubernetes style resource object for the record."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            **self.to_dict(),
        }

    @property
    def name(self) -> str:
        """The name of the record."""
        return self.metadata.name

    @property
    def namespace(self) -> str:
        """The namespace of the record."""
        return self.metadata.namespace

    @property
    def namespaced_name(self) -> str:
        """Return the namespace and name concatenated as an id."""
        return f"{self.namespace}/{self.name}"

    @property
    def resource_id(self) -> NamedResource:
        """Identity of the record in the store."""
        return NamedResource(kind=self.kind, namespace=self.namespace, name=self.name)

    @property
    def effective_release_name(self) -> str:
        """The release name used with the deployment backend."""
        return self.spec.release_name or self.metadata.name

    @property
    def is_deleting(self) -> bool:
        """True when the store has marked the record for deletion."""
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        """Return True if the finalizer token is attached."""
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str) -> None:
        """Attach the finalizer token if not already present."""
        if finalizer not in self.metadata.finalizers:
            self.metadata.finalizers.append(finalizer)

    def remove_finalizer(self, finalizer: str) -> None:
        """Remove the finalizer token if present."""
        self.metadata.finalizers = [
            f for f in self.metadata.finalizers if f != finalizer
        ]
