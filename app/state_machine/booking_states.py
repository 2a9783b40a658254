"""
Booking State Model

Canonical booking states and the directed graph of legal transitions.
Ledger side effects (wallet hold-credit, inventory consumption) happen
only on the transition into COMPLETED.
"""
from enum import Enum
from typing import Optional


class BookingState(str, Enum):
    """Canonical booking lifecycle states"""

    CREATED = "created"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


INITIAL_STATE = BookingState.CREATED

BOOKING_TRANSITIONS: dict[BookingState, list[BookingState]] = {
    BookingState.CREATED: [BookingState.ASSIGNED, BookingState.CANCELLED],
    BookingState.ASSIGNED: [BookingState.ACCEPTED, BookingState.CANCELLED],
    BookingState.ACCEPTED: [BookingState.IN_PROGRESS, BookingState.CANCELLED],
    # technician is on-site: no unilateral cancellation anymore
    BookingState.IN_PROGRESS: [BookingState.COMPLETED, BookingState.DISPUTED],
    BookingState.COMPLETED: [BookingState.DISPUTED],
    BookingState.CANCELLED: [],
    BookingState.DISPUTED: [],
}

TERMINAL_STATES = frozenset(
    state for state, targets in BOOKING_TRANSITIONS.items() if not targets
)

# Which booking timestamp column a transition into the state stamps
TIMESTAMP_FIELDS: dict[BookingState, str] = {
    BookingState.ASSIGNED: "assigned_at",
    BookingState.IN_PROGRESS: "started_at",
    BookingState.COMPLETED: "completed_at",
}

_DESCRIPTIONS: dict[BookingState, str] = {
    BookingState.CREATED: "Service request created",
    BookingState.ASSIGNED: "Partner assigned to service",
    BookingState.ACCEPTED: "Partner accepted the service",
    BookingState.IN_PROGRESS: "Service work in progress",
    BookingState.COMPLETED: "Service completed successfully",
    BookingState.CANCELLED: "Service cancelled",
    BookingState.DISPUTED: "Service under dispute",
}


def _coerce(state) -> Optional[BookingState]:
    if isinstance(state, BookingState):
        return state
    try:
        return BookingState(state)
    except ValueError:
        return None


def allowed_targets(state) -> list[BookingState]:
    """Legal next states; empty for terminal or unrecognized states."""
    current = _coerce(state)
    if current is None:
        return []
    return list(BOOKING_TRANSITIONS[current])


def is_legal(from_state, to_state) -> bool:
    """True when to_state is reachable from from_state in one step."""
    target = _coerce(to_state)
    return target is not None and target in allowed_targets(from_state)


def can_cancel(state) -> bool:
    """Cancellation is only allowed before work starts."""
    return is_legal(state, BookingState.CANCELLED)


def triggers_ledger(target_state) -> bool:
    """Wallet credit and inventory consumption run only on completion."""
    return _coerce(target_state) is BookingState.COMPLETED


def describe_state(state) -> str:
    current = _coerce(state)
    if current is None:
        return "Unknown state"
    return _DESCRIPTIONS[current]
