"""
SQLAlchemy models
"""
from cs_core.models.tenant import Company, LLMIntegration
from cs_core.models.customer import Customer, Order, Subscription, Transaction
from cs_core.models.cs_session import (
    CSSession,
    CSMessage,
    CSTier,
    CSSessionStatus,
    CSChannel,
    MessageRole,
    CustomerSentiment,
    IssueCategory,
    EscalationReason,
    ResolutionType,
)
from cs_core.models.cs_config import CSConfig, CSAIPricing
from cs_core.models.usage import CSAIUsage, UsageType
from cs_core.models.audit import AuditEvent

__all__ = [
    "Company",
    "LLMIntegration",
    "Customer",
    "Order",
    "Subscription",
    "Transaction",
    "CSSession",
    "CSMessage",
    "CSTier",
    "CSSessionStatus",
    "CSChannel",
    "MessageRole",
    "CustomerSentiment",
    "IssueCategory",
    "EscalationReason",
    "ResolutionType",
    "CSConfig",
    "CSAIPricing",
    "CSAIUsage",
    "UsageType",
    "AuditEvent",
]
