"""
Customer-service session and message models
"""
from sqlalchemy import Column, DateTime, ForeignKey, Enum as SQLEnum, Integer, Boolean, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from cs_core.core.database import Base, JSONType


class CSTier(str, enum.Enum):
    AI_REP = "AI_REP"
    AI_MANAGER = "AI_MANAGER"
    HUMAN_AGENT = "HUMAN_AGENT"


class CSSessionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    WAITING_CUSTOMER = "WAITING_CUSTOMER"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"
    ABANDONED = "ABANDONED"


TERMINAL_STATUSES = (CSSessionStatus.RESOLVED, CSSessionStatus.ABANDONED)


class CSChannel(str, enum.Enum):
    VOICE = "voice"
    CHAT = "chat"
    EMAIL = "email"
    SMS = "sms"


class MessageRole(str, enum.Enum):
    CUSTOMER = "customer"
    AI_REP = "ai_rep"
    AI_MANAGER = "ai_manager"
    HUMAN_AGENT = "human_agent"
    SYSTEM = "system"


ROLE_BY_TIER = {
    CSTier.AI_REP: MessageRole.AI_REP,
    CSTier.AI_MANAGER: MessageRole.AI_MANAGER,
    CSTier.HUMAN_AGENT: MessageRole.HUMAN_AGENT,
}


class CustomerSentiment(str, enum.Enum):
    HAPPY = "HAPPY"
    SATISFIED = "SATISFIED"
    NEUTRAL = "NEUTRAL"
    FRUSTRATED = "FRUSTRATED"
    ANGRY = "ANGRY"
    IRATE = "IRATE"


SENTIMENT_SCORES = {
    CustomerSentiment.HAPPY: 1.0,
    CustomerSentiment.SATISFIED: 0.75,
    CustomerSentiment.NEUTRAL: 0.5,
    CustomerSentiment.FRUSTRATED: 0.25,
    CustomerSentiment.ANGRY: 0.1,
    CustomerSentiment.IRATE: 0.0,
}


class IssueCategory(str, enum.Enum):
    BILLING = "BILLING"
    SHIPPING = "SHIPPING"
    PRODUCT_QUALITY = "PRODUCT_QUALITY"
    REFUND = "REFUND"
    CANCELLATION = "CANCELLATION"
    ACCOUNT_ACCESS = "ACCOUNT_ACCESS"
    TECHNICAL_SUPPORT = "TECHNICAL_SUPPORT"
    ORDER_STATUS = "ORDER_STATUS"
    SUBSCRIPTION_CHANGE = "SUBSCRIPTION_CHANGE"
    GENERAL_INQUIRY = "GENERAL_INQUIRY"


class EscalationReason(str, enum.Enum):
    IRATE_CUSTOMER = "IRATE_CUSTOMER"
    REFUND_REQUEST = "REFUND_REQUEST"
    COMPLEX_ISSUE = "COMPLEX_ISSUE"
    REPEAT_CONTACT = "REPEAT_CONTACT"
    HIGH_VALUE_CUSTOMER = "HIGH_VALUE_CUSTOMER"
    LEGAL_MENTION = "LEGAL_MENTION"
    SOCIAL_MEDIA_THREAT = "SOCIAL_MEDIA_THREAT"
    REFUND_OVER_THRESHOLD = "REFUND_OVER_THRESHOLD"
    CUSTOMER_REQUEST = "CUSTOMER_REQUEST"
    POLICY_EXCEPTION = "POLICY_EXCEPTION"
    ESCALATED_COMPLAINT = "ESCALATED_COMPLAINT"
    TECHNICAL_LIMITATION = "TECHNICAL_LIMITATION"


class ResolutionType(str, enum.Enum):
    ISSUE_RESOLVED = "ISSUE_RESOLVED"
    REFUND_ISSUED = "REFUND_ISSUED"
    REPLACEMENT_SENT = "REPLACEMENT_SENT"
    CREDIT_APPLIED = "CREDIT_APPLIED"
    DISCOUNT_APPLIED = "DISCOUNT_APPLIED"
    SUBSCRIPTION_MODIFIED = "SUBSCRIPTION_MODIFIED"
    ESCALATED_TO_HUMAN = "ESCALATED_TO_HUMAN"
    TRANSFERRED = "TRANSFERRED"
    CUSTOMER_DECLINED = "CUSTOMER_DECLINED"
    UNRESOLVED = "UNRESOLVED"


class CSSession(Base):
    __tablename__ = "cs_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    channel = Column(SQLEnum(CSChannel), nullable=False, default=CSChannel.CHAT, index=True)
    current_tier = Column(SQLEnum(CSTier), nullable=False, default=CSTier.AI_REP, index=True)
    status = Column(SQLEnum(CSSessionStatus), nullable=False, default=CSSessionStatus.ACTIVE, index=True)
    issue_category = Column(SQLEnum(IssueCategory), nullable=True)
    customer_sentiment = Column(SQLEnum(CustomerSentiment), nullable=False, default=CustomerSentiment.NEUTRAL)
    # Append-only histories; always reassigned, never mutated in place
    sentiment_history = Column(JSONType, nullable=False, default=list)  # [{sentiment, score, timestamp, trigger}]
    escalation_history = Column(JSONType, nullable=False, default=list)  # [{fromTier, toTier, reason, timestamp, notes}]
    context = Column(JSONType, nullable=True)  # Customer context snapshot taken at start
    resolution_type = Column(SQLEnum(ResolutionType), nullable=True)
    resolution_summary = Column(Text, nullable=True)
    resolution_actions = Column(JSONType, nullable=True)
    follow_up_required = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(DateTime, nullable=True)
    customer_satisfaction = Column(Integer, nullable=True)  # 1-5
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    company = relationship("Company", back_populates="cs_sessions")
    messages = relationship(
        "CSMessage",
        back_populates="session",
        order_by="CSMessage.sequence",
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def resolution(self):
        if self.resolution_type is None:
            return None
        return {
            "type": self.resolution_type.value,
            "summary": self.resolution_summary or "",
            "actionsTaken": list(self.resolution_actions or []),
            "customerSatisfaction": self.customer_satisfaction,
            "followUpRequired": bool(self.follow_up_required),
            "followUpDate": self.follow_up_date.isoformat() if self.follow_up_date else None,
        }


class CSMessage(Base):
    __tablename__ = "cs_messages"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_cs_messages_session_sequence"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(UUID(as_uuid=True), ForeignKey("cs_sessions.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # Position within the session, starting at 1
    role = Column(SQLEnum(MessageRole), nullable=False)
    content = Column(Text, nullable=False)
    sentiment = Column(SQLEnum(CustomerSentiment), nullable=True)  # Customer messages only
    message_metadata = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    session = relationship("CSSession", back_populates="messages")
