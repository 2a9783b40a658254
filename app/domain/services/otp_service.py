"""
OTP Service - on-site start-of-work handshake

The customer generates a short code once the partner accepted the job and
reads it to the technician on arrival; the technician enters it to prove
presence. A verified code is what the ACCEPTED -> IN_PROGRESS gate checks.
"""
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BookingNotFoundError, ValidationException
from app.core.logging import get_logger
from app.db.models.booking import Booking
from app.db.models.service_otp import ServiceOtp
from app.db.unit_of_work import UnitOfWork
from app.state_machine.booking_states import BookingState
from app.state_machine.state_mapping import normalize_state

logger = get_logger(__name__)

OTP_LENGTH = 4


def generate_code() -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(OTP_LENGTH))


class OtpService:

    def __init__(self, expire_seconds: Optional[int] = None):
        self.expire_seconds = expire_seconds or settings.OTP_EXPIRE_SECONDS

    async def generate_otp(
        self, uow: UnitOfWork, booking_id: int, customer_id: int
    ) -> Tuple[str, datetime]:
        """Issue a new code, invalidating any unused older one. Returns (code, expires_at)."""
        booking = await uow.session.get(Booking, booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)

        if booking.customer_id != customer_id:
            raise ValidationException(
                "Only the booking's customer can generate a handshake code",
                field="customer_id",
            )

        state = normalize_state(booking.status)
        if state != BookingState.ACCEPTED:
            raise ValidationException(
                f"Handshake code can only be generated for an accepted booking (current: {state.value})",
                field="status",
            )

        await uow.session.execute(
            update(ServiceOtp)
            .where(
                ServiceOtp.booking_id == booking_id,
                ServiceOtp.is_verified.is_(False),
                ServiceOtp.is_invalidated.is_(False),
            )
            .values(is_invalidated=True)
        )

        code = generate_code()
        expires_at = datetime.utcnow() + timedelta(seconds=self.expire_seconds)
        uow.session.add(
            ServiceOtp(
                booking_id=booking_id,
                otp_code=code,
                generated_by=customer_id,
                expires_at=expires_at,
            )
        )
        await uow.flush()

        logger.info(
            "Handshake code generated",
            extra_data={"booking_id": booking_id, "expires_at": expires_at},
        )
        return code, expires_at

    async def validate_otp(
        self, uow: UnitOfWork, booking_id: int, code: str, technician_id: int
    ) -> Tuple[bool, str]:
        """Returns (success, message)"""
        result = await uow.session.execute(
            select(ServiceOtp)
            .where(
                ServiceOtp.booking_id == booking_id,
                ServiceOtp.is_verified.is_(False),
                ServiceOtp.is_invalidated.is_(False),
            )
            .order_by(ServiceOtp.created_at.desc(), ServiceOtp.id.desc())
            .limit(1)
            .with_for_update()
        )
        otp = result.scalar_one_or_none()

        if not otp:
            return False, "No active handshake code for this booking"

        if otp.expires_at < datetime.utcnow():
            otp.is_invalidated = True
            await uow.flush()
            return False, "Handshake code expired, ask the customer for a new one"

        if not hmac.compare_digest(otp.otp_code, str(code).strip()):
            logger.warning(
                "Handshake code mismatch",
                extra_data={"booking_id": booking_id, "technician_id": technician_id},
            )
            return False, "Handshake code does not match"

        otp.is_verified = True
        otp.verified_by = technician_id
        otp.verified_at = datetime.utcnow()
        await uow.flush()

        logger.info(
            "Handshake verified",
            extra_data={"booking_id": booking_id, "technician_id": technician_id},
        )
        return True, "Handshake verified"

    async def has_valid_handshake(self, uow: UnitOfWork, booking_id: int) -> bool:
        return await self.is_verified(uow.session, booking_id)

    async def is_verified(self, db: AsyncSession, booking_id: int) -> bool:
        result = await db.execute(
            select(ServiceOtp.id)
            .where(
                ServiceOtp.booking_id == booking_id,
                ServiceOtp.is_verified.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def purge_expired(
        self, uow: UnitOfWork, now: Optional[datetime] = None, older_than_hours: Optional[int] = None
    ) -> int:
        """Delete unverified codes that expired more than older_than_hours ago; returns the count"""
        now = now or datetime.utcnow()
        if older_than_hours is None:
            older_than_hours = settings.OTP_PURGE_AFTER_HOURS
        cutoff = now - timedelta(hours=older_than_hours)

        result = await uow.session.execute(
            delete(ServiceOtp)
            .where(
                ServiceOtp.is_verified.is_(False),
                ServiceOtp.expires_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        purged = result.rowcount or 0
        logger.info(
            "Expired OTP codes purged",
            extra_data={"purged": purged, "cutoff": cutoff},
        )
        return purged
