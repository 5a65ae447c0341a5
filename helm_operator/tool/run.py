"""helm-operator run action."""

import logging
import pathlib
from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import Any, cast

import aiofiles
import yaml

from helm_operator.conditions import CONDITION_READY, find_condition, is_condition_true
from helm_operator.config import ControllerConfig, HelmConfig, ReconcilerConfig
from helm_operator.controller import ReleaseController, ReleaseReconciler
from helm_operator.exceptions import InputException
from helm_operator.manifest import ReleaseRequest
from helm_operator.registry import ResourceRegistry, build_registry
from helm_operator.release_manager import (
    HelmReleaseManager,
    InMemoryReleaseManager,
    ReleaseManager,
)
from helm_operator.store import InMemoryStore, Store

from .format import PrintFormatter, YamlFormatter

_LOGGER = logging.getLogger(__name__)

COLUMNS = ["namespace", "name", "chart", "version", "phase", "ready", "message"]


async def load_records(
    path: pathlib.Path, registry: ResourceRegistry
) -> list[ReleaseRequest]:
    """Parse every document in the YAML file into a record."""
    try:
        async with aiofiles.open(str(path)) as records_file:
            content = await records_file.read()
    except OSError as err:
        raise InputException(f"Unable to read {path}: {err}") from err
    try:
        docs = [doc for doc in yaml.safe_load_all(content) if doc]
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse {path}: {err}") from err
    return [registry.parse_doc(doc) for doc in docs]


def build_release_manager(backend: str, **kwargs: Any) -> ReleaseManager:
    """Create the release manager for the named backend."""
    if backend == "memory":
        return InMemoryReleaseManager()
    return HelmReleaseManager(
        HelmConfig(
            helm_bin=kwargs.get("helm_bin") or "helm",
            kube_context=kwargs.get("kube_context"),
            kubeconfig=kwargs.get("kubeconfig"),
            create_namespace=kwargs.get("create_namespace", True),
            wait=kwargs.get("wait", False),
            timeout=kwargs.get("helm_timeout"),
            command_timeout=kwargs.get("command_timeout"),
        )
    )


def summarize(release: ReleaseRequest) -> dict[str, Any]:
    """Return the table row for a record."""
    ready = find_condition(release.status.conditions, CONDITION_READY)
    return {
        "namespace": release.namespace,
        "name": release.name,
        "chart": release.spec.chart,
        "version": release.spec.version,
        "phase": release.status.phase,
        "ready": str(is_condition_true(release.status.conditions, CONDITION_READY)),
        "message": ready.message if ready else "",
    }


class RunAction:
    """Reconcile the records in a file until there is nothing left to do."""

    @classmethod
    def register(
        cls,
        subparsers: SubParsersAction,  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "run",
                help="Reconcile HelmRelease records from a file",
                description=(
                    "Load HelmRelease records into the store, run the controller "
                    "until the work queue is idle and print the resulting status."
                ),
            ),
        )
        args.add_argument(
            "--path",
            type=pathlib.Path,
            required=True,
            help="YAML file containing HelmRelease documents",
        )
        args.add_argument(
            "--backend",
            choices=["helm", "memory"],
            default="helm",
            help="Deployment backend; memory records calls without deploying",
        )
        args.add_argument(
            "--workers",
            type=int,
            default=ControllerConfig.workers,
            help="Number of records reconciled concurrently",
        )
        args.add_argument(
            "--helm-bin", default="helm", help="Path to the helm binary"
        )
        args.add_argument("--kube-context", help="Kubernetes context passed to helm")
        args.add_argument("--kubeconfig", help="Kubeconfig file passed to helm")
        args.add_argument(
            "--wait",
            action="store_true",
            help="Wait for release resources to become ready before returning",
        )
        args.add_argument(
            "--no-create-namespace",
            dest="create_namespace",
            action="store_false",
            help="Do not create the target namespace on install",
        )
        args.add_argument(
            "--helm-timeout", help="Value of the helm --timeout flag, e.g. 5m0s"
        )
        args.add_argument(
            "--command-timeout",
            type=float,
            help="Seconds after which a running helm process is killed",
        )
        args.add_argument(
            "--reconcile-timeout",
            type=float,
            default=ControllerConfig.reconcile_timeout,
            help="Deadline in seconds for a single reconcile",
        )
        args.add_argument(
            "--requeue-on-failure",
            type=float,
            default=ReconcilerConfig.requeue_on_failure,
            help="Seconds to wait before retrying a failed reconcile",
        )
        args.add_argument(
            "--delete",
            action="store_true",
            help="Delete every record once reconciled and wait for the uninstalls",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["table", "yaml"],
            default="table",
            help="Output format of the final record status",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        path: pathlib.Path,
        backend: str = "helm",
        workers: int = ControllerConfig.workers,
        reconcile_timeout: float | None = ControllerConfig.reconcile_timeout,
        requeue_on_failure: float = ReconcilerConfig.requeue_on_failure,
        delete: bool = False,
        output: str = "table",
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        registry = build_registry()
        records = await load_records(path, registry)
        _LOGGER.info("Loaded %d records from %s", len(records), path)

        store: Store = InMemoryStore(registry)
        reconciler = ReleaseReconciler(
            store,
            build_release_manager(backend, **kwargs),
            ReconcilerConfig(requeue_on_failure=requeue_on_failure),
        )
        controller = ReleaseController(
            store,
            reconciler,
            registry,
            ControllerConfig(workers=workers, reconcile_timeout=reconcile_timeout),
        )
        for record in records:
            store.create(record)

        controller.start()
        try:
            await controller.wait_idle()
            if delete:
                for record in store.list_objects():
                    store.delete(record.resource_id)
                await controller.wait_idle()
        finally:
            await controller.close()

        results = store.list_objects()
        if output == "yaml":
            YamlFormatter().print([release.to_doc() for release in results])
            return
        if not results:
            print("No HelmRelease objects remaining")
            return
        PrintFormatter(COLUMNS).print([summarize(release) for release in results])
