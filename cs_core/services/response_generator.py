"""
AI response generation with template fallback

generate() always returns a response. The LLM is tried first for AI tiers when
the tenant has a provider configured; any provider failure falls back to
deterministic template text.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cs_core.core.config import EngineConfig
from cs_core.core.exceptions import ProviderError
from cs_core.models.cs_session import (
    CSSession,
    CSTier,
    CustomerSentiment,
    IssueCategory,
    MessageRole,
    ROLE_BY_TIER,
)
from cs_core.services.customer_context import get_tier_limits
from cs_core.services.llm_client import AnthropicClient, LLMRequest
from cs_core.services.prompts import (
    CustomerProfile,
    PromptContext,
    build_conversation_messages,
    build_system_prompt,
)
from cs_core.services.usage_service import LLMCallUsage

logger = logging.getLogger(__name__)

AI_ROLES = (MessageRole.AI_REP, MessageRole.AI_MANAGER, MessageRole.HUMAN_AGENT)

DEESCALATION_ACTIONS = ["Offer immediate callback", "Provide compensation", "Escalate to human"]
DEESCALATION_NOTE = "Customer is irate - following de-escalation protocol"

SUGGESTED_ACTIONS = {
    IssueCategory.REFUND: ["Process full refund", "Process partial refund", "Offer store credit", "Escalate to finance"],
    IssueCategory.SHIPPING: ["Track package", "Expedite shipping", "Send replacement", "Issue shipping refund"],
    IssueCategory.CANCELLATION: ["Process cancellation", "Offer discount to stay", "Pause subscription", "Downgrade plan"],
    IssueCategory.BILLING: ["Adjust charge", "Apply credit", "Explain charge", "Update payment method"],
    IssueCategory.PRODUCT_QUALITY: ["Send replacement", "Process refund", "Log quality report"],
    IssueCategory.ACCOUNT_ACCESS: ["Send password reset", "Verify identity", "Unlock account"],
    IssueCategory.TECHNICAL_SUPPORT: ["Walk through troubleshooting", "Check known issues", "Escalate to technical team"],
    IssueCategory.ORDER_STATUS: ["Check order status", "Track package", "Send order confirmation"],
    IssueCategory.SUBSCRIPTION_CHANGE: ["Upgrade plan", "Downgrade plan", "Pause subscription", "Change billing date"],
}
DEFAULT_SUGGESTED_ACTIONS = ["Gather more information", "Check order history", "Review account"]


@dataclass
class GeneratedResponse:
    """One reply ready to be appended to the session"""
    role: MessageRole
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    usage: Optional[LLMCallUsage] = None  # Set for LLM replies only

    @property
    def ai_generated(self) -> bool:
        return bool(self.metadata.get("aiGenerated"))


def get_suggested_actions(category: Optional[IssueCategory]) -> List[str]:
    return list(SUGGESTED_ACTIONS.get(category, DEFAULT_SUGGESTED_ACTIONS))


def welcome_message(tier: CSTier, customer_name: str) -> str:
    if tier == CSTier.AI_REP:
        return (
            f"Hello {customer_name}! I'm your AI Customer Support Representative. "
            "I'm here to help you today. How can I assist you?"
        )
    if tier == CSTier.AI_MANAGER:
        return (
            f"Hello {customer_name}, I'm the AI Customer Service Manager. I understand you need some additional "
            "assistance. I have elevated permissions to help resolve your issue. What can I do for you?"
        )
    return f"Hello {customer_name}, you're now connected with our customer service team. How can we help you today?"


def deescalation_message(tier: CSTier) -> str:
    if tier == CSTier.AI_MANAGER:
        return (
            "I sincerely apologize for the frustration you're experiencing. As a Customer Service Manager, "
            "I have the authority to make things right. Please let me review your situation and find a solution "
            "that works for you. Your satisfaction is my priority."
        )
    return (
        "I completely understand your frustration, and I want you to know that your concerns are valid and "
        "important to us. Let me connect you with someone who has the authority to fully resolve this for you."
    )


def category_message(tier: CSTier, category: Optional[IssueCategory]) -> str:
    manager_prefix = "As a manager, " if tier == CSTier.AI_MANAGER else ""

    if category == IssueCategory.REFUND:
        return (
            f"{manager_prefix}I'd be happy to help you with your refund request. "
            "Let me pull up your order details and review the refund options available to you."
        )
    if category == IssueCategory.SHIPPING:
        return (
            "I can help you track your order and resolve any shipping concerns. "
            "Let me check the current status of your delivery."
        )
    if category == IssueCategory.CANCELLATION:
        return (
            "I understand you're considering cancellation. Before we proceed, I'd love to understand what's led "
            "to this decision and see if there's anything we can do to address your concerns."
        )
    if category == IssueCategory.BILLING:
        return (
            "I can help you with your billing inquiry. "
            "Let me review your account and recent charges to ensure everything is correct."
        )
    if category == IssueCategory.PRODUCT_QUALITY:
        return (
            f"I'm sorry to hear you're experiencing product issues. {manager_prefix}"
            "I can help arrange a replacement or refund for you right away."
        )
    if category == IssueCategory.ACCOUNT_ACCESS:
        return (
            "I can help you get back into your account. "
            "For your security, I'll walk you through verifying your identity and resetting your access."
        )
    if category == IssueCategory.TECHNICAL_SUPPORT:
        return (
            "Let's get this working for you. Could you describe what happens when the problem occurs, "
            "including any error message you see?"
        )
    if category == IssueCategory.ORDER_STATUS:
        return "I can check on your order for you. Let me look up its current status."
    if category == IssueCategory.SUBSCRIPTION_CHANGE:
        return (
            f"{manager_prefix}I can help you change your subscription. "
            "Let me review your current plan and the options available to you."
        )
    return "I'm here to help! Could you please tell me more about what you need assistance with today?"


def _history(session: CSSession) -> List[Dict[str, Any]]:
    return [{"role": m.role, "content": m.content} for m in session.messages]


def _customer_profile(session: CSSession) -> Optional[CustomerProfile]:
    context = session.context or {}
    customer = context.get("customer")
    if not customer:
        return None
    subscription = context.get("activeSubscription")
    return CustomerProfile(
        name=customer.get("name") or "Customer",
        is_vip=bool(customer.get("isVIP")),
        lifetime_value=float(customer.get("lifetimeValue") or 0),
        tenure_months=int(customer.get("tenureMonths") or 0),
        recent_orders=len(context.get("orderHistory") or []),
        active_subscription=subscription.get("plan") if subscription else None,
    )


def _customer_name(session: CSSession) -> str:
    return ((session.context or {}).get("customer") or {}).get("name") or "Customer"


class ResponseGenerator:
    """Produces the next tier reply for a session"""

    def __init__(self, db: Session, llm_client: AnthropicClient, config: EngineConfig):
        self.db = db
        self.llm_client = llm_client
        self.config = config

    async def generate(self, session: CSSession, tier: CSTier) -> GeneratedResponse:
        tier = CSTier(tier)
        role = ROLE_BY_TIER[tier]

        if tier != CSTier.HUMAN_AGENT:
            if self._provider_configured(session.company_id):
                try:
                    return await self._generate_llm_response(session, tier, role)
                except ProviderError:
                    logger.error("LLM call failed for session %s, falling back to template", session.id, exc_info=True)
            else:
                logger.debug("LLM provider not configured for company %s - using template responses", session.company_id)

        return self.generate_template_response(session, tier, role)

    def _provider_configured(self, company_id) -> bool:
        try:
            return self.llm_client.is_configured(company_id)
        except Exception:
            logger.error("Could not read LLM configuration for company %s", company_id, exc_info=True)
            return False

    async def _generate_llm_response(self, session: CSSession, tier: CSTier, role: MessageRole) -> GeneratedResponse:
        company = session.company
        context = PromptContext(
            company_name=company.name if company else "Our Company",
            customer_name=_customer_name(session),
            tier=tier,
            sentiment=session.customer_sentiment,
            tier_limits=get_tier_limits(self.db, session.company_id, tier),
            issue_category=session.issue_category,
            customer=_customer_profile(session),
            conversation_history=_history(session),
            generous_ltv_threshold=self.config.generous_ltv_threshold,
        )

        try:
            model = self.llm_client.get_default_model(session.company_id)
            max_tokens = min(self.llm_client.get_max_tokens(session.company_id), self.config.max_tokens_ceiling)
            request = LLMRequest(
                model=model,
                max_tokens=max_tokens,
                system=build_system_prompt(context),
                messages=build_conversation_messages(context),
            )

            start = time.monotonic()
            response = await self.llm_client.send_message(session.company_id, request)
            latency_ms = int((time.monotonic() - start) * 1000)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"LLM call failed: {e}") from e

        return GeneratedResponse(
            role=role,
            content=response.content,
            metadata={
                "suggestedActions": get_suggested_actions(session.issue_category),
                "aiGenerated": True,
                "model": response.model,
                "tokens": {
                    "input": response.usage.input_tokens,
                    "output": response.usage.output_tokens,
                },
                "latencyMs": latency_ms,
            },
            usage=LLMCallUsage(
                tier=tier,
                model=response.model,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                latency_ms=latency_ms,
            ),
        )

    def generate_template_response(self, session: CSSession, tier: CSTier, role: MessageRole) -> GeneratedResponse:
        suggested_actions: List[str] = []
        internal_notes = None

        if not any(m.role in AI_ROLES for m in session.messages):
            content = welcome_message(tier, _customer_name(session))
        elif session.customer_sentiment == CustomerSentiment.IRATE:
            content = deescalation_message(tier)
            suggested_actions = list(DEESCALATION_ACTIONS)
            internal_notes = DEESCALATION_NOTE
        else:
            content = category_message(tier, session.issue_category)
            suggested_actions = get_suggested_actions(session.issue_category)

        metadata: Dict[str, Any] = {"suggestedActions": suggested_actions, "aiGenerated": False}
        if internal_notes:
            metadata["internalNotes"] = internal_notes
        return GeneratedResponse(role=role, content=content, metadata=metadata)
