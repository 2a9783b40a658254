"""
Payment Transaction Model - gateway payment events per booking
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, String, Enum as SQLEnum

from app.db.database import Base


class PaymentKind(str, enum.Enum):
    BOOKING_FEE = "booking_fee"
    FINAL = "final"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    CAPTURED = "captured"  # verified by the gateway
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    kind = Column(SQLEnum(PaymentKind), nullable=False)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    amount = Column(Numeric(10, 2), nullable=False)
    gateway_reference = Column(String(100), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
