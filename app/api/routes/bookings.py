"""
Booking API Routes
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BookingNotFoundError
from app.db.database import get_db
from app.db.models.booking import Booking
from app.db.unit_of_work import UnitOfWork
from app.domain.services.booking_transition_service import BookingTransitionService
from app.domain.services.otp_service import OtpService
from app.state_machine.booking_states import BookingState, allowed_targets, describe_state
from app.state_machine.state_mapping import normalize_state
from app.state_machine.transition_metadata import TransitionMetadata

router = APIRouter()


class TransitionRequest(BaseModel):
    target_state: BookingState
    actor_id: Optional[int] = None
    metadata: TransitionMetadata = Field(default_factory=TransitionMetadata)


class BookingResponse(BaseModel):
    id: int
    reference_code: str
    customer_id: int
    partner_id: Optional[int]
    state: BookingState
    state_description: str
    persisted_status: str
    allowed_transitions: list[BookingState]
    total_amount: Optional[float]
    commission_amount: Optional[float]
    created_at: Optional[datetime]
    assigned_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]


class OtpGenerateRequest(BaseModel):
    customer_id: int


class OtpGenerateResponse(BaseModel):
    booking_id: int
    otp_code: str
    expires_at: datetime


class OtpVerifyRequest(BaseModel):
    otp_code: str = Field(min_length=1, max_length=8)
    technician_id: int


class OtpVerifyResponse(BaseModel):
    success: bool
    message: str


def _to_response(booking: Booking) -> BookingResponse:
    state = normalize_state(booking.status)
    return BookingResponse(
        id=booking.id,
        reference_code=booking.reference_code,
        customer_id=booking.customer_id,
        partner_id=booking.partner_id,
        state=state,
        state_description=describe_state(state),
        persisted_status=booking.status,
        allowed_transitions=allowed_targets(state),
        total_amount=float(booking.total_amount) if booking.total_amount is not None else None,
        commission_amount=(
            float(booking.commission_amount) if booking.commission_amount is not None else None
        ),
        created_at=booking.created_at,
        assigned_at=booking.assigned_at,
        started_at=booking.started_at,
        completed_at=booking.completed_at,
    )


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    summary="Get a booking",
    description="Returns the booking with its canonical state and the states it may move to next.",
)
async def get_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db)
):
    booking = await db.get(Booking, booking_id)
    if not booking:
        raise BookingNotFoundError(booking_id)
    return _to_response(booking)


@router.post(
    "/{booking_id}/transition",
    response_model=BookingResponse,
    summary="Transition a booking",
    description=(
        "Moves the booking to target_state. Completion credits the partner's held "
        "earnings and consumes any inventory listed in metadata, atomically."
    ),
)
async def transition_booking(
    booking_id: int,
    request: TransitionRequest,
    db: AsyncSession = Depends(get_db)
):
    service = BookingTransitionService(db)
    booking = await service.transition(
        booking_id,
        request.target_state,
        actor_id=request.actor_id,
        metadata=request.metadata,
    )
    return _to_response(booking)


@router.post(
    "/{booking_id}/otp",
    response_model=OtpGenerateResponse,
    summary="Generate a start-of-work handshake code",
)
async def generate_otp(
    booking_id: int,
    request: OtpGenerateRequest,
    db: AsyncSession = Depends(get_db)
):
    async with UnitOfWork(db, "otp_generate") as uow:
        code, expires_at = await OtpService().generate_otp(uow, booking_id, request.customer_id)
    return OtpGenerateResponse(booking_id=booking_id, otp_code=code, expires_at=expires_at)


@router.post(
    "/{booking_id}/otp/verify",
    response_model=OtpVerifyResponse,
    summary="Verify a start-of-work handshake code",
)
async def verify_otp(
    booking_id: int,
    request: OtpVerifyRequest,
    db: AsyncSession = Depends(get_db)
):
    async with UnitOfWork(db, "otp_verify") as uow:
        success, message = await OtpService().validate_otp(
            uow, booking_id, request.otp_code, request.technician_id
        )
    return OtpVerifyResponse(success=success, message=message)
