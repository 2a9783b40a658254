"""
Audit Log Model, an append-only record of state changes and admin actions

Written by the booking transition service (one row per transition) and by
admin-facing writes (config updates, restocks). Never updated or deleted.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, BigInteger, DateTime, String, Enum as SQLEnum
from sqlalchemy.types import JSON

from app.db.database import Base


class AuditAction(str, enum.Enum):
    STATE_CHANGE = "state_change"
    CONFIG_UPDATE = "config_update"
    INVENTORY_RESTOCK = "inventory_restock"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(50), nullable=False, index=True)  # 'booking', 'config', 'inventory_item'
    entity_id = Column(String(64), nullable=False, index=True)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    from_state = Column(String(32), nullable=True)
    to_state = Column(String(32), nullable=True)
    actor_id = Column(BigInteger, nullable=True, index=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
