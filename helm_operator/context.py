"""Utilities for tracing nested reconcile steps."""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


_stack: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "trace_stack", default=()
)


@dataclass
class Trace:
    """Timing of a single traced step."""

    label: str
    """The nested label, e.g. `HelmRelease/default/web > install`."""

    elapsed: float = 0.0
    """Seconds spent in the step, set when the step exits."""


@contextmanager
def trace_context(name: str) -> Generator[Trace, None, None]:
    """Trace a named step, nesting under the step active in this task.

    Each worker task has its own context so concurrent reconciles of
    different records keep separate stacks.
    """
    stack = _stack.get() + (name,)
    token = _stack.set(stack)
    trace = Trace(label=" > ".join(stack))
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", trace.label)
    try:
        yield trace
    finally:
        trace.elapsed = perf_counter() - t1
        _stack.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", trace.label, trace.elapsed)
