"""
Inventory Item Model - Stocked Consumables
"""
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, Numeric, DateTime, String, CheckConstraint

from app.db.database import Base


class InventoryItem(Base):
    """Consumable part used during service jobs. Stock changes only through InventoryLedger."""

    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    item_code = Column(String(64), unique=True, nullable=False, index=True)
    item_name = Column(String(200), nullable=False)
    unit = Column(String(20), nullable=False, default="piece")

    unit_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    current_stock = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=10)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_item_stock_non_negative"),
    )
