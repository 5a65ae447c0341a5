"""Bookkeeping for the conditions recorded on a release request status."""

import datetime

from .manifest import Condition, ConditionStatus

__all__ = [
    "CONDITION_READY",
    "CONDITION_PROGRESSING",
    "REASON_SUCCESS",
    "REASON_ERROR",
    "find_condition",
    "set_condition",
    "is_condition_true",
]

CONDITION_READY = "Ready"
CONDITION_PROGRESSING = "Progressing"

REASON_SUCCESS = "ReconcileSuccess"
REASON_ERROR = "ReconcileError"

MESSAGE_READY = "Helm release is ready"
MESSAGE_COMPLETE = "Helm release reconciliation complete"


def find_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    """Return the condition with the given type, if any."""
    return next((c for c in conditions if c.type == condition_type), None)


def set_condition(
    conditions: list[Condition],
    condition: Condition,
    now: datetime.datetime,
) -> Condition:
    """Upsert a condition by type.

    The transition timestamp only moves when the status value changes, so
    repeated identical observations do not churn it. Returns the entry now
    stored in the list.
    """
    for i, existing in enumerate(conditions):
        if existing.type != condition.type:
            continue
        if existing.status == condition.status:
            condition.last_transition_time = existing.last_transition_time
        else:
            condition.last_transition_time = now
        conditions[i] = condition
        return condition
    condition.last_transition_time = now
    conditions.append(condition)
    return condition


def is_condition_true(conditions: list[Condition], condition_type: str) -> bool:
    """Return True if the condition exists and holds."""
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE
