"""
Booking State Compatibility Mapping

Older rows persist booking status under a different naming scheme
(placed, confirmed, partner_assigned, ...). Reads normalize any stored
value to the canonical BookingState; writes go out in the legacy scheme
so existing consumers of the column keep working.

DISPUTED has no legacy value and is written as "cancelled". Once stored,
a disputed booking reads back as CANCELLED. This loss is known and kept
as-is; see DESIGN.md.
"""
from enum import Enum

from app.core.logging import get_logger
from app.state_machine.booking_states import BookingState

logger = get_logger(__name__)


class LegacyBookingState(str, Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    PARTNER_ASSIGNED = "partner_assigned"
    SERVICE_STARTED = "service_started"
    SERVICE_COMPLETED = "service_completed"
    CANCELLED = "cancelled"


_LEGACY_TO_CANONICAL: dict[LegacyBookingState, BookingState] = {
    LegacyBookingState.PLACED: BookingState.CREATED,
    LegacyBookingState.CONFIRMED: BookingState.ACCEPTED,
    LegacyBookingState.PARTNER_ASSIGNED: BookingState.ASSIGNED,
    LegacyBookingState.SERVICE_STARTED: BookingState.IN_PROGRESS,
    LegacyBookingState.SERVICE_COMPLETED: BookingState.COMPLETED,
    LegacyBookingState.CANCELLED: BookingState.CANCELLED,
}

_CANONICAL_TO_LEGACY: dict[BookingState, LegacyBookingState] = {
    BookingState.CREATED: LegacyBookingState.PLACED,
    BookingState.ASSIGNED: LegacyBookingState.PARTNER_ASSIGNED,
    BookingState.ACCEPTED: LegacyBookingState.CONFIRMED,
    BookingState.IN_PROGRESS: LegacyBookingState.SERVICE_STARTED,
    BookingState.COMPLETED: LegacyBookingState.SERVICE_COMPLETED,
    BookingState.CANCELLED: LegacyBookingState.CANCELLED,
    # lossy: no distinct legacy value
    BookingState.DISPUTED: LegacyBookingState.CANCELLED,
}

_CANONICAL_VALUES = {state.value for state in BookingState}
_LEGACY_VALUES = {state.value for state in LegacyBookingState}


def to_canonical(raw: str) -> BookingState:
    """
    Map a stored status (legacy or canonical) to a canonical state.

    Never raises: an unknown value is logged and read as CREATED.
    """
    value = raw.value if isinstance(raw, Enum) else raw
    if value in _CANONICAL_VALUES:
        return BookingState(value)
    if value in _LEGACY_VALUES:
        return _LEGACY_TO_CANONICAL[LegacyBookingState(value)]

    logger.warning(
        "Unknown booking status, defaulting to CREATED",
        extra_data={"raw_status": value},
    )
    return BookingState.CREATED


def to_legacy(state: BookingState) -> str:
    """Persisted representation of a canonical state."""
    return _CANONICAL_TO_LEGACY[BookingState(state)].value


def normalize_state(raw: str) -> BookingState:
    """Idempotent: normalizing a canonical value returns it unchanged."""
    return to_canonical(raw)


def is_legacy_state(raw: str) -> bool:
    return raw in _LEGACY_VALUES
