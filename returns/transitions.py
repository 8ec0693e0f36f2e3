"""
Returns Module - Status Transition Table

Every status change made by the services goes through check_transition().
The table must list every ReturnStatus; a new status without an entry
fails at import time instead of silently skipping the check.
"""

from django.core.exceptions import ImproperlyConfigured

from .models import ReturnStatus
from .results import IllegalTransitionError

S = ReturnStatus

TRANSITIONS = {
    S.PENDING: frozenset({S.APPROVED, S.REJECTED, S.CANCELLED}),
    S.APPROVED: frozenset({S.SHIPPED, S.RECEIVED, S.REJECTED, S.CANCELLED}),
    S.SHIPPED: frozenset({S.RECEIVED, S.REJECTED}),
    S.RECEIVED: frozenset({S.INSPECTING, S.REFUNDED, S.REJECTED}),
    S.INSPECTING: frozenset({S.REFUNDED, S.REJECTED}),
    S.REFUNDED: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.REJECTED: frozenset(),
    S.CANCELLED: frozenset(),
}

_missing = set(ReturnStatus) - set(TRANSITIONS)
if _missing:
    raise ImproperlyConfigured(f"No transitions defined for: {', '.join(sorted(_missing))}")


def allowed_targets(status):
    return TRANSITIONS[ReturnStatus(status)]


def check_transition(current, target):
    current, target = ReturnStatus(current), ReturnStatus(target)
    if target not in TRANSITIONS[current]:
        raise IllegalTransitionError(f'Cannot move return from {current.value} to {target.value}')
    return target
