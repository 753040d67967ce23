"""
Company (tenant) and per-tenant LLM integration models
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from cs_core.core.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    client_id = Column(UUID(as_uuid=True), nullable=True, index=True)  # Billing client owning this company
    organization_id = Column(UUID(as_uuid=True), nullable=True, index=True)  # Pricing lookup key
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    customers = relationship("Customer", back_populates="company")
    cs_sessions = relationship("CSSession", back_populates="company")
    cs_config = relationship("CSConfig", back_populates="company", uselist=False)
    llm_integration = relationship("LLMIntegration", back_populates="company", uselist=False)


class LLMIntegration(Base):
    __tablename__ = "llm_integrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, unique=True, index=True)
    provider = Column(String, nullable=False, default="anthropic")
    api_key = Column(String, nullable=True)
    default_model = Column(String, nullable=True)
    max_tokens = Column(Integer, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="llm_integration")
