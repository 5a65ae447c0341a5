"""Controller package.

The controller dispatches store change notifications as record identities
on a work queue and runs the reconciler for each one.
"""

from .controller import ReleaseController, should_enqueue
from .queue import QueueShutdown, WorkQueue
from .reconciler import ReleaseReconciler, Result

__all__ = [
    "ReleaseController",
    "ReleaseReconciler",
    "Result",
    "WorkQueue",
    "QueueShutdown",
    "should_enqueue",
]
