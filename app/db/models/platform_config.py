"""
Platform Config Model - admin-tunable runtime values
"""
from datetime import datetime
from sqlalchemy import Column, Integer, BigInteger, DateTime, String, Text

from app.db.database import Base


class PlatformConfig(Base):
    """Key/value settings such as BUSINESS_CONFIG.PARTNER_SHARE_PERCENTAGE"""

    __tablename__ = "platform_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    value_type = Column(String(16), nullable=False, default="string")  # string/number/boolean/json
    category = Column(String(32), nullable=False, default="BUSINESS_CONFIG", index=True)
    description = Column(String(500), nullable=True)
    updated_by = Column(BigInteger, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
