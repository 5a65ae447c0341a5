"""Configuration objects for helm-operator."""

from dataclasses import dataclass

from .manifest import FINALIZER


@dataclass
class ReconcilerConfig:
    """Configuration for the ReleaseReconciler."""

    finalizer: str = FINALIZER
    """Token attached to records to block removal until uninstall completes."""

    requeue_on_failure: float = 30.0
    """Fixed delay in seconds before retrying a failed reconcile."""


@dataclass
class ControllerConfig:
    """Configuration for the ReleaseController."""

    workers: int = 4
    """Number of records reconciled concurrently."""

    reconcile_timeout: float | None = 300.0
    """Deadline in seconds for a single reconcile invocation."""

    base_backoff: float = 0.005
    """First delay in seconds of the per-record exponential error backoff."""

    max_backoff: float = 1000.0
    """Upper bound in seconds of the per-record exponential error backoff."""


@dataclass
class HelmConfig:
    """Configuration for the helm command line release manager."""

    helm_bin: str = "helm"
    """Path to the helm binary."""

    kube_context: str | None = None
    """Value of the helm --kube-context flag."""

    kubeconfig: str | None = None
    """Value of the helm --kubeconfig flag."""

    create_namespace: bool = True
    """Create the target namespace on install if it does not exist."""

    wait: bool = False
    """Wait for release resources to become ready before returning."""

    timeout: str | None = None
    """Value of the helm --timeout flag, e.g. 5m0s."""

    command_timeout: float | None = None
    """Seconds after which a running helm process is killed."""
