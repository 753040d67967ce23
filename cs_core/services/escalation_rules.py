"""
Escalation rule evaluation

Rules are checked in a fixed order and the first match wins, so a single
customer message can never produce two escalation reasons. The evaluator
only decides; applying the tier change is the session engine's job.
"""
from dataclasses import dataclass
from typing import Optional

from cs_core.models.cs_session import CSTier, CustomerSentiment, EscalationReason, IssueCategory
from cs_core.services.message_analyzer import MessageAnalysis


LEGAL_KEYWORDS = frozenset(["lawyer", "attorney", "lawsuit", "sue", "legal action", "court"])
SOCIAL_MEDIA_KEYWORDS = frozenset(["twitter", "facebook", "review", "yelp", "post online", "tell everyone"])


@dataclass
class EscalationDecision:
    should_escalate: bool
    reason: Optional[EscalationReason] = None
    target_tier: Optional[CSTier] = None
    notes: Optional[str] = None


NO_ESCALATION = EscalationDecision(should_escalate=False)

TIER_RANK = {
    CSTier.AI_REP: 0,
    CSTier.AI_MANAGER: 1,
    CSTier.HUMAN_AGENT: 2,
}


def _is_vip(session) -> bool:
    context = session.context or {}
    return bool((context.get("customer") or {}).get("isVIP"))


def _mentions_any(analysis: MessageAnalysis, vocabulary: frozenset) -> bool:
    return any(keyword.lower() in vocabulary for keyword in analysis.keywords)


def evaluate_escalation(session, analysis: MessageAnalysis) -> EscalationDecision:
    """
    Decide whether the analyzed message should move the session to another tier.

    Order:
    1. irate sentiment        -> AI_MANAGER (from AI_REP) or HUMAN_AGENT
    2. legal keyword          -> HUMAN_AGENT
    3. social-media keyword   -> AI_MANAGER
    4. refund issue at AI_REP -> AI_MANAGER
    5. VIP customer at AI_REP -> AI_MANAGER

    "lawyer" and "attorney" are also irate keywords, so rule 1 wins whenever
    both would match. A rule whose target is not above the current tier does
    not match; tiers only move forward.
    """
    current_tier = CSTier(session.current_tier)

    for rule in (_irate_rule, _legal_rule, _social_media_rule, _refund_rule, _vip_rule):
        decision = rule(session, analysis, current_tier)
        if decision and TIER_RANK[decision.target_tier] > TIER_RANK[current_tier]:
            return decision

    return NO_ESCALATION


def _irate_rule(session, analysis, current_tier):
    if analysis.sentiment == CustomerSentiment.IRATE:
        return EscalationDecision(
            should_escalate=True,
            reason=EscalationReason.IRATE_CUSTOMER,
            target_tier=CSTier.AI_MANAGER if current_tier == CSTier.AI_REP else CSTier.HUMAN_AGENT,
            notes=f"Irate customer detected. Trigger: {analysis.trigger}",
        )
    return None


def _legal_rule(session, analysis, current_tier):
    if _mentions_any(analysis, LEGAL_KEYWORDS):
        return EscalationDecision(
            should_escalate=True,
            reason=EscalationReason.LEGAL_MENTION,
            target_tier=CSTier.HUMAN_AGENT,
            notes="Customer mentioned legal action",
        )
    return None


def _social_media_rule(session, analysis, current_tier):
    if _mentions_any(analysis, SOCIAL_MEDIA_KEYWORDS):
        return EscalationDecision(
            should_escalate=True,
            reason=EscalationReason.SOCIAL_MEDIA_THREAT,
            target_tier=CSTier.AI_MANAGER,
            notes="Customer threatened social media action",
        )
    return None


def _refund_rule(session, analysis, current_tier):
    if session.issue_category == IssueCategory.REFUND and current_tier == CSTier.AI_REP:
        return EscalationDecision(
            should_escalate=True,
            reason=EscalationReason.REFUND_REQUEST,
            target_tier=CSTier.AI_MANAGER,
            notes="Refund request requires manager approval",
        )
    return None


def _vip_rule(session, analysis, current_tier):
    if _is_vip(session) and current_tier == CSTier.AI_REP:
        return EscalationDecision(
            should_escalate=True,
            reason=EscalationReason.HIGH_VALUE_CUSTOMER,
            target_tier=CSTier.AI_MANAGER,
            notes="VIP customer auto-escalated",
        )
    return None
