"""
Booking State Machine: canonical states, legacy mapping, transition gates
"""
from app.state_machine.booking_states import BookingState, BOOKING_TRANSITIONS, is_legal
from app.state_machine.state_mapping import LegacyBookingState, to_canonical, to_legacy, normalize_state

__all__ = [
    "BookingState",
    "BOOKING_TRANSITIONS",
    "is_legal",
    "LegacyBookingState",
    "to_canonical",
    "to_legacy",
    "normalize_state",
]
