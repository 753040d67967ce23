"""
AI usage ledger model
Append-only billing records, one per AI-assisted turn or session activity
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
import uuid
import enum
from cs_core.core.database import Base, JSONType
from cs_core.models.cs_session import CSTier


class UsageType(str, enum.Enum):
    CHAT_SESSION = "CHAT_SESSION"
    LLM_COMPLETION = "LLM_COMPLETION"


class CSAIUsage(Base):
    __tablename__ = "cs_ai_usage"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    client_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    cs_session_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    usage_type = Column(SQLEnum(UsageType), nullable=False)
    tier = Column(SQLEnum(CSTier), nullable=False)
    channel = Column(String, nullable=False)
    message_count = Column(Integer, nullable=False, default=0)
    ai_message_count = Column(Integer, nullable=False, default=0)
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    billing_period = Column(String, nullable=False, index=True)  # YYYY-MM
    base_cost = Column(Integer, nullable=False, default=0)  # cents
    markup_cost = Column(Integer, nullable=False, default=0)  # cents
    total_cost = Column(Integer, nullable=False, default=0)  # cents
    usage_metadata = Column("metadata", JSONType, nullable=True)  # model, latencyMs
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
