"""
Per-company customer-service configuration and AI pricing models
"""
from sqlalchemy import Column, DateTime, ForeignKey, Float
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from cs_core.core.database import Base, JSONType


class CSConfig(Base):
    __tablename__ = "cs_configs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, unique=True, index=True)
    # {maxDiscountPercent, maxRefundAmount, maxWaiveAmount, maxGoodwillCredit}
    ai_rep_config = Column(JSONType, nullable=True)
    ai_manager_config = Column(JSONType, nullable=True)
    # {"chat": {"startingTier": "AI_REP"}, "voice": {...}}
    channel_configs = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="cs_config")


class CSAIPricing(Base):
    __tablename__ = "cs_ai_pricing"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(UUID(as_uuid=True), nullable=False, unique=True, index=True)
    ai_rep_multiplier = Column(Float, nullable=False, default=1.2)  # 1.2 == 20% markup
    ai_manager_multiplier = Column(Float, nullable=False, default=1.2)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
