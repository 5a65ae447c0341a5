"""Reconciler for HelmRelease records.

The reconciler consumes one record identity per invocation, re-reads the
record from the store, decides which transition is owed and calls the release
manager, then records the observed state back onto the record status.

Key Concepts:
    - Finalizer: attached on first sight in its own invocation and removed
      only after a successful uninstall, so a record can never disappear
      while its release is still deployed.
    - Generation: the store bumps `metadata.generation` on every spec change.
      An existing release is only upgraded when the generation differs from
      `status.observedGeneration`, which makes repeated invocations no-ops.
    - Failure: any backend or input error moves the record to the Failed
      phase and raises `ReconcileError` asking for a retry after a fixed
      interval.
"""

from dataclasses import dataclass
import datetime
import logging
from collections.abc import Callable

from helm_operator.conditions import (
    CONDITION_PROGRESSING,
    CONDITION_READY,
    MESSAGE_COMPLETE,
    MESSAGE_READY,
    REASON_ERROR,
    REASON_SUCCESS,
    set_condition,
)
from helm_operator.config import ReconcilerConfig
from helm_operator.context import trace_context
from helm_operator.exceptions import (
    HelmOperatorException,
    InputException,
    ReconcileError,
)
from helm_operator.manifest import (
    Condition,
    ConditionStatus,
    NamedResource,
    Phase,
    ReleaseRequest,
)
from helm_operator.release_manager import ReleaseManager
from helm_operator.store import Store
from helm_operator.values import decode_values

__all__ = [
    "Result",
    "ReleaseReconciler",
]

_LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class Result:
    """Outcome of a successful reconcile invocation."""

    requeue_after: float | None = None
    """Seconds after which the record should be reconciled again, if any."""


class ReleaseReconciler:
    """Drives the release manager toward the state described by a record."""

    def __init__(
        self,
        store: Store,
        release_manager: ReleaseManager,
        config: ReconcilerConfig | None = None,
        now: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        """Initialize the reconciler.

        Args:
            store: The record store holding release requests
            release_manager: The deployment backend
            config: The configuration for the reconciler
            now: Clock used for condition and deployment timestamps
        """
        self._store = store
        self._release_manager = release_manager
        self._config = config or ReconcilerConfig()
        self._now = now

    async def reconcile(self, resource_id: NamedResource) -> Result:
        """Reconcile the record with the given identity.

        Raises:
            ReconcileError: The record was marked Failed and should be
                retried after `requeue_after` seconds.
            StoreException: A required write to the store was rejected, e.g.
                a `ConflictError` when the record changed concurrently.
        """
        with trace_context(f"reconcile {resource_id}"):
            release = self._store.get(resource_id)
            if release is None:
                _LOGGER.debug("Record %s no longer exists, nothing to do", resource_id)
                return Result()

            if release.is_deleting:
                return await self._reconcile_delete(release)

            if not release.has_finalizer(self._config.finalizer):
                release.add_finalizer(self._config.finalizer)
                self._store.update(release)
                _LOGGER.info("Added finalizer to %s", resource_id)
                return Result()

            return await self._reconcile_normal(release)

    async def _reconcile_normal(self, release: ReleaseRequest) -> Result:
        """Install or upgrade the release as needed and mark the record Ready."""
        release_name = release.effective_release_name
        namespace = release.spec.target_namespace

        try:
            values = decode_values(release.spec.values)
        except InputException as err:
            raise self._set_failed_status(release, err) from err

        try:
            with trace_context("exists"):
                exists = await self._release_manager.exists(release_name, namespace)
        except Exception as err:
            raise self._set_failed_status(release, err) from err

        if not exists:
            _LOGGER.info(
                "Installing Helm release %s for %s", release_name, release.resource_id
            )
            release.status.phase = Phase.INSTALLING
            release = self._update_status_best_effort(release)
            try:
                with trace_context("install"):
                    await self._release_manager.install(
                        release_name,
                        release.spec.chart,
                        release.spec.repo_url,
                        release.spec.version,
                        namespace,
                        values,
                    )
            except Exception as err:
                raise self._set_failed_status(release, err) from err
        elif release.status.observed_generation != release.metadata.generation:
            _LOGGER.info(
                "Upgrading Helm release %s for %s (generation %s, observed %s)",
                release_name,
                release.resource_id,
                release.metadata.generation,
                release.status.observed_generation,
            )
            release.status.phase = Phase.UPGRADING
            release = self._update_status_best_effort(release)
            try:
                with trace_context("upgrade"):
                    await self._release_manager.upgrade(
                        release_name,
                        release.spec.chart,
                        release.spec.repo_url,
                        release.spec.version,
                        namespace,
                        values,
                    )
            except Exception as err:
                raise self._set_failed_status(release, err) from err

        now = self._now()
        generation = release.metadata.generation
        release.status.phase = Phase.READY
        release.status.deployed_version = release.spec.version
        release.status.last_deployed_at = now
        release.status.observed_generation = generation
        set_condition(
            release.status.conditions,
            Condition(
                type=CONDITION_READY,
                status=ConditionStatus.TRUE,
                reason=REASON_SUCCESS,
                message=MESSAGE_READY,
                observed_generation=generation,
            ),
            now,
        )
        set_condition(
            release.status.conditions,
            Condition(
                type=CONDITION_PROGRESSING,
                status=ConditionStatus.FALSE,
                reason=REASON_SUCCESS,
                message=MESSAGE_COMPLETE,
                observed_generation=generation,
            ),
            now,
        )
        self._store.update_status(release)
        _LOGGER.info(
            "Reconciliation of %s complete, phase %s",
            release.resource_id,
            release.status.phase,
        )
        return Result()

    async def _reconcile_delete(self, release: ReleaseRequest) -> Result:
        """Uninstall the release and release the finalizer."""
        if not release.has_finalizer(self._config.finalizer):
            _LOGGER.debug("Record %s has no finalizer, nothing to clean up", release.resource_id)
            return Result()

        release_name = release.effective_release_name
        release.status.phase = Phase.UNINSTALLING
        release = self._update_status_best_effort(release)

        _LOGGER.info("Uninstalling Helm release %s for %s", release_name, release.resource_id)
        try:
            with trace_context("uninstall"):
                await self._release_manager.uninstall(
                    release_name, release.spec.target_namespace
                )
        except Exception as err:
            raise self._set_failed_status(release, err) from err

        release.remove_finalizer(self._config.finalizer)
        self._store.update(release)
        _LOGGER.info("Finalizer removed from %s, deletion complete", release.resource_id)
        return Result()

    def _update_status_best_effort(self, release: ReleaseRequest) -> ReleaseRequest:
        """Write the status, keeping the in-hand copy if the store rejects it."""
        try:
            return self._store.update_status(release)
        except HelmOperatorException as err:
            _LOGGER.warning(
                "Unable to update status of %s to %s: %s",
                release.resource_id,
                release.status.phase,
                err,
            )
            return release

    def _set_failed_status(
        self, release: ReleaseRequest, err: Exception
    ) -> ReconcileError:
        """Record the failure on the status and return the error to raise."""
        _LOGGER.warning("Failed to reconcile %s: %s", release.resource_id, err)
        release.status.phase = Phase.FAILED
        set_condition(
            release.status.conditions,
            Condition(
                type=CONDITION_READY,
                status=ConditionStatus.FALSE,
                reason=REASON_ERROR,
                message=str(err),
                observed_generation=release.metadata.generation,
            ),
            self._now(),
        )
        self._update_status_best_effort(release)
        return ReconcileError(
            str(err), err, requeue_after=self._config.requeue_on_failure
        )
