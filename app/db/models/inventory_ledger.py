"""
Inventory Ledger Model - Immutable Stock Movement History
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, BigInteger, Numeric, DateTime, ForeignKey, String,
    Enum as SQLEnum, UniqueConstraint,
)

from app.db.database import Base


class InventoryEntryType(str, enum.Enum):
    CONSUMPTION = "consumption"  # used during a booking
    RESTOCK = "restock"


class InventoryLedger(Base):
    """Stock movement with the unit cost frozen at the time it happened"""

    __tablename__ = "inventory_ledger"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)

    entry_type = Column(SQLEnum(InventoryEntryType), nullable=False)
    quantity = Column(Integer, nullable=False)  # negative for consumption
    unit_cost_snapshot = Column(Numeric(10, 2), nullable=False)
    total_cost = Column(Numeric(10, 2), nullable=False)

    performed_by = Column(BigInteger, nullable=True)
    stock_before = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)

    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        # Idempotency key: an item is consumed at most once per booking
        UniqueConstraint("booking_id", "item_id", "entry_type", name="uq_inventory_ledger_booking_item_type"),
    )
