"""
Usage and cost tracking for AI-assisted turns

Writes are best-effort: a failed ledger write is logged and rolled back, and
never fails the operation that produced the usage.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cs_core.core.config import EngineConfig
from cs_core.core.exceptions import UsageTrackingError
from cs_core.models.cs_config import CSAIPricing
from cs_core.models.cs_session import CSSession, CSTier, MessageRole
from cs_core.models.usage import CSAIUsage, UsageType

logger = logging.getLogger(__name__)

AI_ROLES = (MessageRole.AI_REP, MessageRole.AI_MANAGER)


@dataclass
class LLMCallUsage:
    """Token usage of one completed LLM call"""
    tier: CSTier
    model: str
    input_tokens: int
    output_tokens: int
    latency_ms: int


@dataclass
class UsageCost:
    base_cost: int  # cents
    markup_cost: int  # cents
    total_cost: int  # cents


def current_billing_period(now: Optional[datetime] = None) -> str:
    """Billing period key, YYYY-MM"""
    now = now or datetime.utcnow()
    return now.strftime("%Y-%m")


def calculate_cost(input_tokens: int, output_tokens: int, markup_percent: float, config: EngineConfig) -> UsageCost:
    """
    Cost in cents. Base cost uses the per-million-token input/output rates and
    is rounded up; the markup is a percentage of the base, also rounded up.
    """
    base = math.ceil(
        input_tokens / 1_000_000 * config.input_cost_cents_per_million
        + output_tokens / 1_000_000 * config.output_cost_cents_per_million
    )
    markup = math.ceil(base * markup_percent / 100)
    return UsageCost(base_cost=base, markup_cost=markup, total_cost=base + markup)


def get_markup_percent(db: Session, organization_id, tier: CSTier, config: EngineConfig) -> float:
    """Tier markup from tenant pricing; a multiplier of 1.2 is a 20% markup"""
    if organization_id is None:
        return config.usage_markup_default_percent

    pricing = db.query(CSAIPricing).filter(CSAIPricing.organization_id == organization_id).first()
    if not pricing:
        return config.usage_markup_default_percent

    multiplier = pricing.ai_manager_multiplier if tier == CSTier.AI_MANAGER else pricing.ai_rep_multiplier
    if multiplier is None:
        return config.usage_markup_default_percent
    return round(multiplier * 100 - 100, 4)


def _write_usage_record(db: Session, record: CSAIUsage) -> CSAIUsage:
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise UsageTrackingError(f"Failed to write usage record for session {record.cs_session_id}") from e
    return record


def record_llm_usage(db: Session, session: CSSession, usage: LLMCallUsage, config: EngineConfig) -> Optional[CSAIUsage]:
    """Append one LLM_COMPLETION ledger row. Returns None when the write failed."""
    try:
        company = session.company
        organization_id = company.organization_id if company else None
        cost = calculate_cost(
            usage.input_tokens,
            usage.output_tokens,
            get_markup_percent(db, organization_id, usage.tier, config),
            config,
        )
        record = CSAIUsage(
            company_id=session.company_id,
            client_id=company.client_id if company else None,
            cs_session_id=session.id,
            usage_type=UsageType.LLM_COMPLETION,
            tier=usage.tier,
            channel=session.channel.value,
            message_count=1,
            ai_message_count=1,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            billing_period=current_billing_period(),
            base_cost=cost.base_cost,
            markup_cost=cost.markup_cost,
            total_cost=cost.total_cost,
            usage_metadata={"model": usage.model, "latencyMs": usage.latency_ms},
        )
        return _write_usage_record(db, record)
    except (UsageTrackingError, SQLAlchemyError):
        db.rollback()
        logger.error("Usage tracking failed for session %s", session.id, exc_info=True)
        return None


def log_session_usage(
    db: Session,
    session: CSSession,
    message_count: int,
    ai_message_count: int,
) -> Optional[CSAIUsage]:
    """Append a zero-cost CHAT_SESSION row for the messages one operation added"""
    try:
        company = session.company
        record = CSAIUsage(
            company_id=session.company_id,
            client_id=company.client_id if company else None,
            cs_session_id=session.id,
            usage_type=UsageType.CHAT_SESSION,
            tier=session.current_tier,
            channel=session.channel.value,
            message_count=message_count,
            ai_message_count=ai_message_count,
            billing_period=current_billing_period(),
            base_cost=0,
            markup_cost=0,
            total_cost=0,
        )
        return _write_usage_record(db, record)
    except (UsageTrackingError, SQLAlchemyError):
        db.rollback()
        logger.error("Session usage logging failed for session %s", session.id, exc_info=True)
        return None
