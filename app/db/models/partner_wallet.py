"""
Partner Wallet Model - Hold / Available Balances
"""
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Column, Integer, BigInteger, Numeric, DateTime, CheckConstraint

from app.db.database import Base


class PartnerWallet(Base):
    """Current balances per partner. Every change is explained by a WalletLedger row."""

    __tablename__ = "partner_wallets"

    id = Column(Integer, primary_key=True, index=True)
    partner_id = Column(BigInteger, unique=True, nullable=False, index=True)

    # earnings waiting for the hold window to mature
    balance_hold = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    # withdrawable
    balance_available = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    # lifetime, never decreases
    total_earned = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("balance_hold >= 0", name="ck_partner_wallet_hold_non_negative"),
        CheckConstraint("balance_available >= 0", name="ck_partner_wallet_available_non_negative"),
    )
