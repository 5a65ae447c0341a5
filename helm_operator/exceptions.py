"""Exceptions related to helm-operator."""

__all__ = [
    "HelmOperatorException",
    "InputException",
    "CommandException",
    "HelmException",
    "ReleaseManagerException",
    "ReleaseNotFoundError",
    "StoreException",
    "ObjectNotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "ReconcileError",
]


class HelmOperatorException(Exception):
    """Generic base exception used for this library."""


class InputException(HelmOperatorException):
    """Raised when the input documents or values are not formatted as expected."""


class CommandException(HelmOperatorException):
    """Raised when there is a failure running a subcommand."""


class ReleaseManagerException(HelmOperatorException):
    """Raised when the deployment backend fails an operation."""


class HelmException(CommandException, ReleaseManagerException):
    """Raised when there is a failure running a helm command."""


class ReleaseNotFoundError(ReleaseManagerException):
    """Raised when the deployment backend has no release with the given name."""


class StoreException(HelmOperatorException):
    """Raised when a record store operation is rejected."""


class ObjectNotFoundError(StoreException):
    """Raised when an object is not found in the store."""


class AlreadyExistsError(StoreException):
    """Raised when creating an object whose identity is already taken."""


class ConflictError(StoreException):
    """Raised when a write is based on an outdated read of the object."""


class ReconcileError(HelmOperatorException):
    """Raised when a reconciliation has failed and should be retried.

    The original error is kept as `error` and `requeue_after` is the fixed
    delay in seconds the caller should wait before trying again.
    """

    def __init__(
        self, message: str, error: Exception, requeue_after: float | None = None
    ) -> None:
        super().__init__(message)
        self.error = error
        self.requeue_after = requeue_after
