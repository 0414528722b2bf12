"""
Job State Manager
=================

Finite state machine governing all valid job status transitions. Every
status change MUST go through ``validate_transition`` before being persisted.

State machine overview::

    pending_payment --> paid --> assigned --> in_progress --> completed

    pending_payment --> cancelled
    paid            --> cancelled | refunded | refunded_unattended
    assigned        --> paid (cleaner released the job) | cancelled | refunded
    in_progress     --> cancelled | refunded
    completed       --> refunded

    cancelled, refunded, refunded_unattended are terminal.

A completed job can never return to ``assigned``.  Guards enforce that only
the correct actor type can trigger certain transitions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from washpro.models.job import JobStatus


# ---------------------------------------------------------------------------
# Actor types for guard enforcement
# ---------------------------------------------------------------------------

class ActorType(str, enum.Enum):
    CUSTOMER = "customer"
    CLEANER = "cleaner"
    COMPANY_ADMIN = "company_admin"
    ADMIN = "admin"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Transition guard result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

# Each key is the current status, and the value is a set of statuses it can
# transition to. Guards are checked separately.
VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING_PAYMENT: {
        JobStatus.PAID,
        JobStatus.CANCELLED,
    },
    JobStatus.PAID: {
        JobStatus.ASSIGNED,
        JobStatus.CANCELLED,
        JobStatus.REFUNDED,
        JobStatus.REFUNDED_UNATTENDED,
    },
    JobStatus.ASSIGNED: {
        JobStatus.IN_PROGRESS,
        JobStatus.PAID,  # cleaner released the job back to the pool
        JobStatus.CANCELLED,
        JobStatus.REFUNDED,
    },
    JobStatus.IN_PROGRESS: {
        JobStatus.COMPLETED,
        JobStatus.CANCELLED,
        JobStatus.REFUNDED,
    },
    JobStatus.COMPLETED: {
        JobStatus.REFUNDED,
    },
    JobStatus.CANCELLED: set(),
    JobStatus.REFUNDED: set(),
    JobStatus.REFUNDED_UNATTENDED: set(),
}

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Statuses in which the customer can still cancel
_CUSTOMER_CANCELLABLE: frozenset[JobStatus] = frozenset({
    JobStatus.PENDING_PAYMENT,
})

_WORKERS: frozenset[ActorType] = frozenset({
    ActorType.CLEANER,
    ActorType.COMPANY_ADMIN,
    ActorType.SYSTEM,
    ActorType.ADMIN,
})

_REFUNDERS: frozenset[ActorType] = frozenset({
    ActorType.COMPANY_ADMIN,
    ActorType.SYSTEM,
    ActorType.ADMIN,
})


# ---------------------------------------------------------------------------
# Guard functions
# ---------------------------------------------------------------------------

def _guard_mark_paid(
    current: JobStatus,
    actor_type: ActorType,
) -> TransitionResult:
    """Payment confirmation comes from the payment webhook (system) or an
    admin; releasing an assigned job back to ``paid`` is a worker action."""
    if current == JobStatus.ASSIGNED:
        if actor_type in _WORKERS:
            return TransitionResult(allowed=True)
        return TransitionResult(
            allowed=False,
            reason="Only the cleaner or company can release an assigned job.",
        )
    if actor_type not in (ActorType.SYSTEM, ActorType.ADMIN):
        return TransitionResult(
            allowed=False,
            reason="Only the payment system or an admin can mark a job as paid.",
        )
    return TransitionResult(allowed=True)


def _guard_worker(actor_type: ActorType, action: str) -> TransitionResult:
    if actor_type not in _WORKERS:
        return TransitionResult(
            allowed=False,
            reason=f"Only a cleaner or the company can {action} a job.",
        )
    return TransitionResult(allowed=True)


def _guard_cancel(
    current: JobStatus,
    actor_type: ActorType,
) -> TransitionResult:
    """Customers may only cancel before paying; everyone else with access
    may cancel any live job."""
    if actor_type == ActorType.CUSTOMER and current not in _CUSTOMER_CANCELLABLE:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Customer cannot cancel a job in '{current.value}' status. "
                f"Cancellation by customer is only allowed in: "
                f"{', '.join(s.value for s in sorted(_CUSTOMER_CANCELLABLE, key=lambda s: s.value))}."
            ),
        )
    if actor_type == ActorType.CLEANER:
        return TransitionResult(
            allowed=False,
            reason="Cleaners release jobs instead of cancelling them.",
        )
    return TransitionResult(allowed=True)


def _guard_refund(actor_type: ActorType) -> TransitionResult:
    if actor_type not in _REFUNDERS:
        return TransitionResult(
            allowed=False,
            reason="Only an admin, the company or the system can refund a job.",
        )
    return TransitionResult(allowed=True)


def _guard_refund_unattended(actor_type: ActorType) -> TransitionResult:
    if actor_type != ActorType.SYSTEM:
        return TransitionResult(
            allowed=False,
            reason="Unattended refunds are issued automatically by the system.",
        )
    return TransitionResult(allowed=True)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(
    current_status: JobStatus,
    new_status: JobStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> TransitionResult:
    """Validate whether a job status transition is allowed.

    Checks two layers:
    1. Is the transition structurally valid per the state machine?
    2. Does the actor have permission for this specific transition (guards)?

    Returns a ``TransitionResult`` with ``allowed=True`` if the transition
    is permitted, or ``allowed=False`` with a human-readable ``reason``.
    """
    # 1. Structural check
    allowed_targets = VALID_TRANSITIONS.get(current_status, set())
    if new_status not in allowed_targets:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Invalid transition: '{current_status.value}' -> '{new_status.value}'. "
                f"Allowed transitions from '{current_status.value}': "
                f"{', '.join(s.value for s in sorted(allowed_targets, key=lambda s: s.value)) or 'none'}."
            ),
        )

    # 2. Guard checks for specific transitions
    if new_status == JobStatus.PAID:
        return _guard_mark_paid(current_status, actor_type)

    if new_status == JobStatus.ASSIGNED:
        return _guard_worker(actor_type, "accept")

    if new_status == JobStatus.IN_PROGRESS:
        return _guard_worker(actor_type, "start")

    if new_status == JobStatus.COMPLETED:
        return _guard_worker(actor_type, "complete")

    if new_status == JobStatus.CANCELLED:
        return _guard_cancel(current_status, actor_type)

    if new_status == JobStatus.REFUNDED:
        return _guard_refund(actor_type)

    if new_status == JobStatus.REFUNDED_UNATTENDED:
        return _guard_refund_unattended(actor_type)

    return TransitionResult(allowed=True)


def get_valid_transitions(
    current_status: JobStatus,
    actor_type: ActorType = ActorType.SYSTEM,
) -> list[JobStatus]:
    """Return the list of statuses that the given actor can transition to
    from the current status.

    Useful for UI hints (e.g. showing available actions to the user).
    """
    candidates = VALID_TRANSITIONS.get(current_status, set())
    valid: list[JobStatus] = []
    for target in candidates:
        result = validate_transition(current_status, target, actor_type)
        if result.allowed:
            valid.append(target)
    return sorted(valid, key=lambda s: s.value)


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES
