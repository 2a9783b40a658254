"""
Transition Gates

Pure predicates deciding whether a transition needs an external
precondition on top of the state graph. The transition service asks the
matching collaborator (OTP / payment) only when a gate applies.
"""
from enum import Enum

from app.state_machine.booking_states import BookingState


class Gate(str, Enum):
    OTP_HANDSHAKE = "otp_handshake"
    FINAL_PAYMENT = "final_payment"
    PARTNER_ASSIGNED = "partner_assigned"


def requires_otp_handshake(from_state: BookingState, to_state: BookingState) -> bool:
    """Work may only start after the customer's code was verified on-site."""
    return from_state == BookingState.ACCEPTED and to_state == BookingState.IN_PROGRESS


def requires_final_payment(from_state: BookingState, to_state: BookingState) -> bool:
    return to_state == BookingState.COMPLETED


def gates_for(from_state: BookingState, to_state: BookingState) -> list[Gate]:
    gates = []
    if requires_otp_handshake(from_state, to_state):
        gates.append(Gate.OTP_HANDSHAKE)
    if requires_final_payment(from_state, to_state):
        gates.append(Gate.FINAL_PAYMENT)
    return gates
