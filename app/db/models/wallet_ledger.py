"""
Wallet Ledger Model - Immutable Wallet Mutation History
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Boolean, Column, Integer, BigInteger, Numeric, DateTime, ForeignKey, String, Index,
    Enum as SQLEnum, UniqueConstraint,
)

from app.db.database import Base


class WalletEntryType(str, enum.Enum):
    HOLD_CREDIT = "hold_credit"  # earnings credited to hold on completion
    RELEASE = "release"  # hold -> available after the hold window
    WITHDRAW_BANK = "withdraw_bank"  # available -> paid out by bank transfer
    WITHDRAW_UPI = "withdraw_upi"  # available -> paid out over UPI


class WithdrawalMethod(str, enum.Enum):
    BANK = "bank"
    UPI = "upi"

    @property
    def entry_type(self) -> WalletEntryType:
        if self is WithdrawalMethod.BANK:
            return WalletEntryType.WITHDRAW_BANK
        return WalletEntryType.WITHDRAW_UPI


class WalletLedger(Base):
    """One row per wallet mutation, with before/after snapshots of both balances"""

    __tablename__ = "wallet_ledger"

    id = Column(Integer, primary_key=True, index=True)
    partner_id = Column(BigInteger, nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)

    entry_type = Column(SQLEnum(WalletEntryType), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)

    balance_hold_before = Column(Numeric(10, 2), nullable=False)
    balance_hold_after = Column(Numeric(10, 2), nullable=False)
    balance_available_before = Column(Numeric(10, 2), nullable=False)
    balance_available_after = Column(Numeric(10, 2), nullable=False)

    # hold_credit only
    release_date = Column(DateTime, nullable=True)
    is_released = Column(Boolean, nullable=False, default=False)
    released_at = Column(DateTime, nullable=True)

    # release entries point at the hold_credit they mature
    parent_entry_id = Column(Integer, ForeignKey("wallet_ledger.id"), nullable=True)

    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        # Idempotency key: one hold_credit (and one release) per booking;
        # withdrawals carry no booking and NULLs never collide
        UniqueConstraint("booking_id", "entry_type", name="uq_wallet_ledger_booking_type"),
        Index("ix_wallet_ledger_release_due", "is_released", "release_date"),
    )
