"""
Tests for usage and cost tracking
"""
import uuid
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from cs_core.models.cs_config import CSAIPricing
from cs_core.models.cs_session import CSChannel, CSMessage, CSSession, CSTier, MessageRole
from cs_core.models.usage import CSAIUsage, UsageType
from cs_core.services.usage_service import (
    LLMCallUsage,
    calculate_cost,
    current_billing_period,
    get_markup_percent,
    log_session_usage,
    record_llm_usage,
)


@pytest.fixture
def cs_session(db_session, company, customer):
    """Stored session with a short conversation"""
    session = CSSession(
        company_id=company.id,
        customer_id=customer.id,
        channel=CSChannel.VOICE,
        current_tier=CSTier.AI_MANAGER,
        sentiment_history=[],
        escalation_history=[],
    )
    session.messages = [
        CSMessage(sequence=1, role=MessageRole.AI_REP, content="Hello"),
        CSMessage(sequence=2, role=MessageRole.CUSTOMER, content="Hi"),
        CSMessage(sequence=3, role=MessageRole.SYSTEM, content="Escalated"),
        CSMessage(sequence=4, role=MessageRole.AI_MANAGER, content="Manager here"),
    ]
    db_session.add(session)
    db_session.commit()
    return session


def test_cost_rounds_up_to_whole_cents(engine_config):
    """Base and markup are each rounded up"""
    cost = calculate_cost(1200, 300, 20, engine_config)
    assert (cost.base_cost, cost.markup_cost, cost.total_cost) == (1, 1, 2)


def test_cost_for_a_million_tokens(engine_config):
    """$3 per million input and $15 per million output"""
    cost = calculate_cost(1_000_000, 1_000_000, 20, engine_config)
    assert cost.base_cost == 1800
    assert cost.markup_cost == 360
    assert cost.total_cost == 2160


def test_zero_tokens_cost_nothing(engine_config):
    cost = calculate_cost(0, 0, 20, engine_config)
    assert cost.total_cost == 0


def test_billing_period_format():
    assert current_billing_period(datetime(2024, 3, 9, 23, 59)) == "2024-03"


def test_markup_defaults_without_pricing(db_session, engine_config):
    """No organization or no pricing row means the default markup"""
    assert get_markup_percent(db_session, None, CSTier.AI_REP, engine_config) == 20
    assert get_markup_percent(db_session, uuid.uuid4(), CSTier.AI_REP, engine_config) == 20


def test_markup_from_tier_multiplier(db_session, engine_config):
    """Multipliers are converted to a percentage per tier"""
    organization_id = uuid.uuid4()
    db_session.add(CSAIPricing(organization_id=organization_id, ai_rep_multiplier=1.2, ai_manager_multiplier=1.5))
    db_session.commit()

    assert get_markup_percent(db_session, organization_id, CSTier.AI_REP, engine_config) == 20
    assert get_markup_percent(db_session, organization_id, CSTier.AI_MANAGER, engine_config) == 50


def test_record_llm_usage_writes_priced_row(db_session, company, cs_session, engine_config):
    """One LLM_COMPLETION row carrying tokens, cost and model metadata"""
    company.organization_id = uuid.uuid4()
    db_session.add(CSAIPricing(organization_id=company.organization_id, ai_manager_multiplier=1.5))
    db_session.commit()

    usage = LLMCallUsage(tier=CSTier.AI_MANAGER, model="claude-test",
                         input_tokens=1_000_000, output_tokens=0, latency_ms=812)
    record = record_llm_usage(db_session, cs_session, usage, engine_config)

    assert record is not None
    stored = db_session.query(CSAIUsage).one()
    assert stored.usage_type == UsageType.LLM_COMPLETION
    assert stored.tier == CSTier.AI_MANAGER
    assert stored.channel == "voice"
    assert stored.cs_session_id == cs_session.id
    assert (stored.base_cost, stored.markup_cost, stored.total_cost) == (300, 150, 450)
    assert stored.usage_metadata == {"model": "claude-test", "latencyMs": 812}
    assert stored.billing_period == current_billing_period()


def test_log_session_usage_counts_messages(db_session, cs_session):
    """Session activity is a zero-cost row with the counts the caller passes"""
    record = log_session_usage(db_session, cs_session, message_count=2, ai_message_count=1)

    assert record.usage_type == UsageType.CHAT_SESSION
    assert record.message_count == 2
    assert record.ai_message_count == 1
    assert record.total_cost == 0


def test_failed_write_is_swallowed(db_session, cs_session, engine_config, monkeypatch, caplog):
    """A ledger failure is logged and returns None instead of raising"""

    def failing_commit():
        raise OperationalError("INSERT INTO cs_ai_usage", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "commit", failing_commit)
    usage = LLMCallUsage(tier=CSTier.AI_REP, model="claude-test", input_tokens=10, output_tokens=10, latency_ms=5)

    assert record_llm_usage(db_session, cs_session, usage, engine_config) is None
    assert log_session_usage(db_session, cs_session, 2, 1) is None
    assert "Usage tracking failed" in caplog.text

    monkeypatch.undo()
    assert db_session.query(CSAIUsage).count() == 0
