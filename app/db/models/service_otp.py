"""
Service OTP Model - customer/technician start-of-work handshake
"""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, BigInteger, DateTime, ForeignKey, String

from app.db.database import Base


class ServiceOtp(Base):
    __tablename__ = "service_otps"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    otp_code = Column(String(8), nullable=False)
    generated_by = Column(BigInteger, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    is_verified = Column(Boolean, nullable=False, default=False)
    # superseded by a newer code before being used
    is_invalidated = Column(Boolean, nullable=False, default=False)
    verified_by = Column(BigInteger, nullable=True)
    verified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
