"""
Prompt construction for the AI customer-service tiers

The system prompt is assembled from a tier-specific base text, a sentiment
block, an issue-category block and a customer profile block. Conversation
history is mapped onto the user/assistant turn format the LLM expects.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cs_core.models.cs_session import CSTier, CustomerSentiment, IssueCategory, MessageRole


OPENING_USER_TURN = "Hello, I need help."


@dataclass
class TierLimits:
    """Monetary authority of one tier"""
    max_discount_percent: float
    max_refund_amount: float
    max_waive_amount: float
    max_goodwill_credit: float


DEFAULT_TIER_LIMITS = {
    CSTier.AI_REP: TierLimits(max_discount_percent=15, max_refund_amount=50, max_waive_amount=25, max_goodwill_credit=10),
    CSTier.AI_MANAGER: TierLimits(max_discount_percent=30, max_refund_amount=200, max_waive_amount=100, max_goodwill_credit=50),
}


@dataclass
class CustomerProfile:
    name: str
    is_vip: bool = False
    lifetime_value: float = 0.0
    tenure_months: int = 0
    recent_orders: int = 0
    active_subscription: Optional[str] = None  # Plan name


@dataclass
class PromptContext:
    company_name: str
    customer_name: str
    tier: CSTier
    sentiment: CustomerSentiment
    tier_limits: TierLimits
    issue_category: Optional[IssueCategory] = None
    customer: Optional[CustomerProfile] = None
    # [{"role": MessageRole, "content": str}] in chronological order
    conversation_history: List[Dict[str, Any]] = field(default_factory=list)
    generous_ltv_threshold: float = 5000


AI_REP_PROMPT = """You are an AI Customer Support Representative for {company_name}.

Your job is to resolve the customer's issue quickly, accurately and kindly.

Your authority:
- You may offer discounts of up to {max_discount_percent}%
- You may issue refunds of up to ${max_refund_amount}
- You may waive fees of up to ${max_waive_amount}
- You may grant goodwill credits of up to ${max_goodwill_credit}

Anything beyond these limits needs a manager. Tell the customer you are bringing in a manager rather than promising what you cannot deliver.

Guidelines:
- Keep replies short and conversational (2-4 sentences)
- Never claim an action was taken unless it was confirmed
- Ask one clarifying question when the request is ambiguous
- Never provide legal advice"""

AI_MANAGER_PROMPT = """You are an AI Customer Service Manager for {company_name}.

This conversation was escalated to you from a support representative. The customer needs someone with more authority, so own the problem and resolve it.

Your authority:
- You may offer discounts of up to {max_discount_percent}%
- You may issue refunds of up to ${max_refund_amount}
- You may waive fees of up to ${max_waive_amount}
- You may grant goodwill credits of up to ${max_goodwill_credit}

Anything beyond these limits, or any legal matter, goes to a human agent.

Guidelines:
- Acknowledge the escalation and apologise once for the trouble
- Offer a concrete resolution within your limits
- Keep replies short and conversational (2-4 sentences)
- Never claim an action was taken unless it was confirmed
- Never provide legal advice"""

BASE_PROMPTS = {
    CSTier.AI_REP: AI_REP_PROMPT,
    CSTier.AI_MANAGER: AI_MANAGER_PROMPT,
}

SENTIMENT_INSTRUCTIONS = {
    CustomerSentiment.HAPPY: (
        "CUSTOMER MOOD: Happy.\n"
        "Match their positive energy, confirm everything is in order and look for a natural chance to thank them for their loyalty."
    ),
    CustomerSentiment.SATISFIED: (
        "CUSTOMER MOOD: Satisfied.\n"
        "Keep the interaction efficient and friendly. Confirm the outcome and ask whether there is anything else you can help with."
    ),
    CustomerSentiment.NEUTRAL: (
        "CUSTOMER MOOD: Neutral.\n"
        "Be clear and helpful. Focus on understanding the request and moving it toward resolution."
    ),
    CustomerSentiment.FRUSTRATED: (
        "CUSTOMER MOOD: Frustrated.\n"
        "Acknowledge the inconvenience before anything else. Be patient, avoid scripted phrasing and give a concrete next step."
    ),
    CustomerSentiment.ANGRY: (
        "CUSTOMER MOOD: Angry.\n"
        "Apologise sincerely and take ownership. Do not argue or deflect. Offer a meaningful remedy within your authority right away."
    ),
    CustomerSentiment.IRATE: (
        "CUSTOMER MOOD: Irate.\n"
        "This customer is extremely upset and this conversation may require human escalation. "
        "De-escalate first: stay calm, validate their feelings, apologise without excuses and offer the strongest remedy you are allowed to give. "
        "If the customer mentions legal action, do not discuss it; tell them a senior team member will follow up."
    ),
}

CATEGORY_CONTEXT = {
    IssueCategory.BILLING: (
        "ISSUE: Billing.\n"
        "Review the charges the customer is asking about, explain each one plainly and correct any error within your authority."
    ),
    IssueCategory.SHIPPING: (
        "ISSUE: Shipping.\n"
        "Check the delivery status of the order, give the customer a realistic timeline and offer a replacement or shipping refund for lost or late packages."
    ),
    IssueCategory.PRODUCT_QUALITY: (
        "ISSUE: Product quality.\n"
        "Ask what is wrong with the product if it is unclear, then offer a replacement or refund. Do not ask the customer to prove the defect at length."
    ),
    IssueCategory.REFUND: (
        "ISSUE: Refund request.\n"
        "Confirm which order the refund is for and the reason. Process refunds within your limit; anything larger needs approval from the next tier."
    ),
    IssueCategory.CANCELLATION: (
        "ISSUE: Cancellation.\n"
        "Understand why the customer wants to cancel before processing it. Offer one relevant alternative (pause, downgrade or discount), and respect a firm decision."
    ),
    IssueCategory.ACCOUNT_ACCESS: (
        "ISSUE: Account access.\n"
        "Help the customer regain access. Never ask for or reveal passwords; direct them to the secure reset flow."
    ),
    IssueCategory.TECHNICAL_SUPPORT: (
        "ISSUE: Technical support.\n"
        "Troubleshoot step by step, one step per reply, and confirm the result of each step before moving on."
    ),
    IssueCategory.ORDER_STATUS: (
        "ISSUE: Order status.\n"
        "Look up the order and report its current status and the next expected update."
    ),
    IssueCategory.SUBSCRIPTION_CHANGE: (
        "ISSUE: Subscription change.\n"
        "Explain the available plans and what changes on the next billing date before making any change."
    ),
    IssueCategory.GENERAL_INQUIRY: (
        "ISSUE: General inquiry.\n"
        "Answer the question directly. If it is unclear what the customer needs, ask one focused clarifying question."
    ),
}

ASSISTANT_ROLES = (MessageRole.AI_REP, MessageRole.AI_MANAGER, MessageRole.HUMAN_AGENT)


def build_system_prompt(context: PromptContext) -> str:
    """Assemble the full system prompt for one AI turn"""
    if context.tier not in BASE_PROMPTS:
        raise ValueError(f"No AI prompt for tier {context.tier}")

    limits = context.tier_limits
    sections = [
        BASE_PROMPTS[context.tier].format(
            company_name=context.company_name,
            max_discount_percent=_fmt(limits.max_discount_percent),
            max_refund_amount=_fmt(limits.max_refund_amount),
            max_waive_amount=_fmt(limits.max_waive_amount),
            max_goodwill_credit=_fmt(limits.max_goodwill_credit),
        ),
        SENTIMENT_INSTRUCTIONS[context.sentiment],
    ]

    if context.issue_category:
        sections.append(CATEGORY_CONTEXT.get(context.issue_category, CATEGORY_CONTEXT[IssueCategory.GENERAL_INQUIRY]))

    profile = _build_profile_block(context)
    if profile:
        sections.append(profile)

    notes = [m["content"] for m in context.conversation_history if m["role"] == MessageRole.SYSTEM]
    if notes:
        sections.append("SESSION NOTES:\n" + "\n".join(f"- {note}" for note in notes))

    return "\n\n".join(sections)


def _build_profile_block(context: PromptContext) -> Optional[str]:
    customer = context.customer
    if customer is None:
        return None

    lines = [
        "CUSTOMER PROFILE:",
        f"- Name: {customer.name}",
        f"- VIP: {'Yes' if customer.is_vip else 'No'}",
        f"- Lifetime value: ${customer.lifetime_value:,.2f}",
        f"- Customer for: {customer.tenure_months} months",
        f"- Recent orders: {customer.recent_orders}",
        f"- Active subscription: {customer.active_subscription or 'None'}",
    ]
    if customer.is_vip or customer.lifetime_value > context.generous_ltv_threshold:
        lines.append(
            "This is a high-value customer. Treat them generously: lean toward the upper end of your authority "
            "and make sure they feel valued."
        )
    return "\n".join(lines)


def build_conversation_messages(context: PromptContext) -> List[Dict[str, str]]:
    """
    Map session history to LLM turns.

    customer -> user, ai_rep/ai_manager/human_agent -> assistant. System
    messages are left out here; build_system_prompt summarises them.
    Consecutive turns of the same role are merged and the list always starts
    with a user turn.
    """
    turns: List[Dict[str, str]] = []
    for message in context.conversation_history:
        role = MessageRole(message["role"])
        if role == MessageRole.CUSTOMER:
            llm_role = "user"
        elif role in ASSISTANT_ROLES:
            llm_role = "assistant"
        else:
            continue

        if turns and turns[-1]["role"] == llm_role:
            turns[-1]["content"] += "\n\n" + message["content"]
        else:
            turns.append({"role": llm_role, "content": message["content"]})

    if not turns or turns[0]["role"] != "user":
        turns.insert(0, {"role": "user", "content": OPENING_USER_TURN})
    return turns


def _fmt(value: float) -> str:
    return f"{value:g}"
