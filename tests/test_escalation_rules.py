"""
Tests for escalation rule evaluation
"""
from types import SimpleNamespace

import pytest

from cs_core.models.cs_session import CSTier, EscalationReason, IssueCategory
from cs_core.services.escalation_rules import evaluate_escalation
from cs_core.services.message_analyzer import analyze_message


def make_session(tier=CSTier.AI_REP, category=None, vip=False):
    return SimpleNamespace(
        current_tier=tier,
        issue_category=category,
        context={"customer": {"name": "Jane", "isVIP": vip}},
    )


def test_irate_at_rep_goes_to_manager():
    """Irate customer at AI_REP escalates to AI_MANAGER"""
    decision = evaluate_escalation(make_session(), analyze_message("This is ridiculous"))
    assert decision.should_escalate
    assert decision.reason == EscalationReason.IRATE_CUSTOMER
    assert decision.target_tier == CSTier.AI_MANAGER
    assert "ridiculous" in decision.notes


def test_irate_at_manager_goes_to_human():
    """Irate customer already at AI_MANAGER escalates to HUMAN_AGENT"""
    decision = evaluate_escalation(
        make_session(tier=CSTier.AI_MANAGER),
        analyze_message("This is unacceptable, I am furious"),
    )
    assert decision.reason == EscalationReason.IRATE_CUSTOMER
    assert decision.target_tier == CSTier.HUMAN_AGENT


@pytest.mark.parametrize("text", [
    "I am calling my lawyer",
    "My attorney will hear about this",
    "Expect a lawsuit",
])
def test_irate_wins_over_legal(text):
    """Legal words that are also irate words always yield IRATE_CUSTOMER"""
    decision = evaluate_escalation(make_session(), analyze_message(text))
    assert decision.reason == EscalationReason.IRATE_CUSTOMER


def test_legal_mention_goes_to_human():
    """Legal keywords without irate words escalate to HUMAN_AGENT"""
    decision = evaluate_escalation(make_session(), analyze_message("I will see you in court"))
    assert decision.reason == EscalationReason.LEGAL_MENTION
    assert decision.target_tier == CSTier.HUMAN_AGENT
    assert decision.notes == "Customer mentioned legal action"


def test_legal_phrase_is_matched():
    """Two-word legal phrases are matched"""
    decision = evaluate_escalation(make_session(), analyze_message("I may take legal action"))
    assert decision.reason == EscalationReason.LEGAL_MENTION


def test_social_media_threat():
    """Social-media keywords escalate to AI_MANAGER"""
    decision = evaluate_escalation(make_session(), analyze_message("I will post online about this"))
    assert decision.reason == EscalationReason.SOCIAL_MEDIA_THREAT
    assert decision.target_tier == CSTier.AI_MANAGER


def test_refund_category_at_rep():
    """A REFUND session at AI_REP escalates on any message"""
    decision = evaluate_escalation(
        make_session(category=IssueCategory.REFUND),
        analyze_message("Hello again"),
    )
    assert decision.reason == EscalationReason.REFUND_REQUEST
    assert decision.target_tier == CSTier.AI_MANAGER


def test_vip_at_rep():
    """A VIP customer at AI_REP escalates on a neutral message"""
    decision = evaluate_escalation(make_session(vip=True), analyze_message("Where is my order"))
    assert decision.reason == EscalationReason.HIGH_VALUE_CUSTOMER
    assert decision.target_tier == CSTier.AI_MANAGER
    assert decision.notes == "VIP customer auto-escalated"


def test_refund_beats_vip():
    """Earlier rules take precedence over later ones"""
    decision = evaluate_escalation(
        make_session(category=IssueCategory.REFUND, vip=True),
        analyze_message("Hi"),
    )
    assert decision.reason == EscalationReason.REFUND_REQUEST


def test_no_escalation_for_neutral_message():
    """Nothing matches for a plain message from a regular customer"""
    decision = evaluate_escalation(make_session(), analyze_message("Where is my order"))
    assert not decision.should_escalate
    assert decision.reason is None
    assert decision.target_tier is None


def test_rules_never_move_tier_backwards():
    """A social-media threat at AI_MANAGER does not drop the session to AI_MANAGER again"""
    decision = evaluate_escalation(
        make_session(tier=CSTier.AI_MANAGER, vip=True),
        analyze_message("I will tell everyone on twitter"),
    )
    assert not decision.should_escalate


def test_human_agent_is_final():
    """Nothing escalates past HUMAN_AGENT"""
    decision = evaluate_escalation(
        make_session(tier=CSTier.HUMAN_AGENT),
        analyze_message("This is unacceptable, I will sue"),
    )
    assert not decision.should_escalate
