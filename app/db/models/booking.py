"""
Booking Model - Service Requests
"""
import secrets
from datetime import datetime
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Numeric

from app.db.database import Base
from app.state_machine.state_mapping import LegacyBookingState


def generate_reference_code() -> str:
    """Human-readable booking reference, e.g. BK-3F9A1C07"""
    return f"BK-{secrets.token_hex(4).upper()}"


class Booking(Base):
    """One customer service request.

    `status` holds the persisted (legacy-named) representation and may also
    contain canonical values written by newer code; always read it through
    app.state_machine.state_mapping.normalize_state. Only the booking
    transition service may write it.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    reference_code = Column(
        String(32), unique=True, nullable=False, default=generate_reference_code, index=True
    )

    customer_id = Column(BigInteger, nullable=False, index=True)
    # nullable until ASSIGNED
    partner_id = Column(BigInteger, nullable=True, index=True)

    status = Column(String(32), nullable=False, default=LegacyBookingState.PLACED.value, index=True)

    total_amount = Column(Numeric(10, 2), nullable=True)
    commission_amount = Column(Numeric(10, 2), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    assigned_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
