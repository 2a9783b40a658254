"""
Invoice Model - one invoice per completed booking
"""
from datetime import datetime
from sqlalchemy import Column, Integer, BigInteger, Numeric, DateTime, ForeignKey, String

from app.db.database import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(32), unique=True, nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), unique=True, nullable=False)
    customer_id = Column(BigInteger, nullable=False)
    partner_id = Column(BigInteger, nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
