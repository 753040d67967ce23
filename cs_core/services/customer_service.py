"""
Customer-service session engine

Owns the session lifecycle: start, send_message, escalate, resolve, abandon.
Each mutating operation runs under a per-session lock and commits once, so a
request either applies all of its appends or none of them. Usage records and
events are written after the commit and never fail the operation.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cs_core.core.config import EngineConfig, get_engine_config
from cs_core.core.exceptions import (
    CompanyNotFoundError,
    InvalidSessionStateError,
    SessionConflictError,
    SessionNotFoundError,
)
from cs_core.models.cs_session import (
    CSChannel,
    CSMessage,
    CSSession,
    CSSessionStatus,
    CSTier,
    CustomerSentiment,
    EscalationReason,
    IssueCategory,
    MessageRole,
    ResolutionType,
)
from cs_core.models.tenant import Company
from cs_core.services import events
from cs_core.services.customer_context import build_customer_context, determine_starting_tier
from cs_core.services.escalation_rules import evaluate_escalation
from cs_core.services.events import EventBus
from cs_core.services.llm_client import AnthropicClient, get_llm_client
from cs_core.services.message_analyzer import analyze_message, get_sentiment_score
from cs_core.services.response_generator import GeneratedResponse, ResponseGenerator
from cs_core.services.session_locks import SessionLockRegistry
from cs_core.services.usage_service import AI_ROLES, LLMCallUsage, log_session_usage, record_llm_usage

logger = logging.getLogger(__name__)

ESCALATABLE_STATUSES = (CSSessionStatus.ACTIVE, CSSessionStatus.WAITING_CUSTOMER, CSSessionStatus.ESCALATED)

SEQUENCE_CONSTRAINT = "uq_cs_messages_session_sequence"
# SQLite names the columns instead of the constraint
SEQUENCE_CONSTRAINT_COLUMNS = "cs_messages.session_id, cs_messages.sequence"

# Shared by every engine in the process
session_locks = SessionLockRegistry()


@dataclass
class SendMessageResult:
    session: CSSession
    response: CSMessage


@dataclass
class _Outcome:
    """Side effects collected during an operation, applied after commit"""
    usages: List[LLMCallUsage] = field(default_factory=list)
    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    # Highest message sequence before the operation; later messages are this turn's
    baseline_sequence: int = 0
    message_count: int = 0
    ai_message_count: int = 0


def escalation_message(to_tier: CSTier) -> str:
    if to_tier == CSTier.AI_MANAGER:
        return "Your conversation has been escalated to an AI Customer Service Manager for additional assistance."
    if to_tier == CSTier.HUMAN_AGENT:
        return "You're being connected with a human customer service representative who will assist you further."
    return "Your request is being escalated for additional review."


def _now_iso(now: Optional[datetime] = None) -> str:
    return (now or datetime.utcnow()).isoformat()


def _as_uuid(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _is_sequence_violation(error: IntegrityError) -> bool:
    detail = str(error.orig)
    return SEQUENCE_CONSTRAINT in detail or SEQUENCE_CONSTRAINT_COLUMNS in detail


class CustomerServiceEngine:
    """Session state machine coordinating analysis, escalation and replies"""

    def __init__(
        self,
        db: Session,
        llm_client: Optional[AnthropicClient] = None,
        event_bus: Optional[EventBus] = None,
        config: Optional[EngineConfig] = None,
        locks: Optional[SessionLockRegistry] = None,
    ):
        self.db = db
        self.config = config or get_engine_config()
        self.event_bus = event_bus or EventBus()
        self.locks = locks or session_locks
        self.generator = ResponseGenerator(db, llm_client or get_llm_client(), self.config)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self, session_id) -> CSSession:
        try:
            key = _as_uuid(session_id)
        except ValueError:
            raise SessionNotFoundError(session_id)

        session = self.db.query(CSSession).filter(CSSession.id == key).first()
        if not session:
            raise SessionNotFoundError(session_id)
        return session

    def get_sessions(
        self,
        company_id,
        status: Optional[CSSessionStatus] = None,
        tier: Optional[CSTier] = None,
        customer_id=None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[CSSession], int]:
        """Newest first, with the total count before pagination"""
        query = self.db.query(CSSession).filter(CSSession.company_id == _as_uuid(company_id))

        if status:
            query = query.filter(CSSession.status == status)
        if tier:
            query = query.filter(CSSession.current_tier == tier)
        if customer_id:
            query = query.filter(CSSession.customer_id == _as_uuid(customer_id))
        if start_date:
            query = query.filter(CSSession.created_at >= start_date)
        if end_date:
            query = query.filter(CSSession.created_at <= end_date)

        total = query.count()
        items = query.order_by(CSSession.created_at.desc()).offset(offset).limit(limit).all()
        return items, total

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_session(
        self,
        company_id,
        customer_id,
        channel: CSChannel = CSChannel.CHAT,
        issue_category: Optional[IssueCategory] = None,
        initial_message: Optional[str] = None,
    ) -> CSSession:
        company_id = _as_uuid(company_id)
        customer_id = _as_uuid(customer_id)
        channel = CSChannel(channel)
        logger.info("Starting CS session for customer %s", customer_id)

        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise CompanyNotFoundError(company_id)

        starting_tier = determine_starting_tier(self.db, company_id, channel)
        context = build_customer_context(self.db, company_id, customer_id, self.config, starting_tier)
        now = datetime.utcnow()

        session = CSSession(
            id=uuid.uuid4(),
            company_id=company_id,
            customer_id=customer_id,
            channel=channel,
            current_tier=starting_tier,
            status=CSSessionStatus.ACTIVE,
            issue_category=issue_category,
            customer_sentiment=CustomerSentiment.NEUTRAL,
            sentiment_history=[{
                "sentiment": CustomerSentiment.NEUTRAL.value,
                "score": get_sentiment_score(CustomerSentiment.NEUTRAL),
                "timestamp": _now_iso(now),
            }],
            escalation_history=[],
            context=context,
            created_at=now,
            updated_at=now,
        )
        session.company = company
        outcome = _Outcome()

        try:
            self.db.add(session)

            if initial_message:
                analysis = analyze_message(initial_message)
                self._append_customer_message(session, initial_message, analysis)
                session.issue_category = issue_category or analysis.category

            response = await self.generator.generate(session, starting_tier)
            self._append_response(session, response, outcome)
            outcome.events.append((events.SESSION_STARTED, {
                "sessionId": str(session.id),
                "companyId": str(company_id),
                "customerId": str(customer_id),
                "tier": starting_tier.value,
                "channel": channel.value,
            }))
            self._count_turn_messages(session, outcome)
        except Exception:
            self.db.rollback()
            raise

        self._commit(session.id)
        await self._after_commit(session, outcome, log_activity=True)

        logger.info("CS session %s started with tier %s", session.id, starting_tier.value)
        return session

    async def send_message(self, session_id, message: str) -> SendMessageResult:
        async with self.locks.hold(session_id):
            session = self.get_session(session_id)
            if session.status != CSSessionStatus.ACTIVE:
                raise InvalidSessionStateError(session.id, session.status, "send a message to")

            outcome = _Outcome(baseline_sequence=max((m.sequence for m in session.messages), default=0))
            try:
                analysis = analyze_message(message)
                self._append_customer_message(session, message, analysis)

                decision = evaluate_escalation(session, analysis)
                if decision.should_escalate:
                    await self._escalate_locked(session, decision.reason, decision.target_tier, decision.notes, outcome)

                response = await self.generator.generate(session, session.current_tier)
                saved_response = self._append_response(session, response, outcome)
                outcome.events.append((events.MESSAGE_RECEIVED, {
                    "sessionId": str(session.id),
                    "companyId": str(session.company_id),
                    "sentiment": analysis.sentiment.value,
                    "requiresEscalation": decision.should_escalate,
                }))
                self._count_turn_messages(session, outcome)
            except Exception:
                self.db.rollback()
                raise

            self._commit(session.id)
            await self._after_commit(session, outcome, log_activity=True)
            return SendMessageResult(session=session, response=saved_response)

    async def escalate_session(
        self,
        session_id,
        reason: EscalationReason,
        target_tier: CSTier,
        notes: Optional[str] = None,
    ) -> CSSession:
        async with self.locks.hold(session_id):
            session = self.get_session(session_id)
            if session.status not in ESCALATABLE_STATUSES:
                raise InvalidSessionStateError(session.id, session.status, "escalate")

            outcome = _Outcome()
            try:
                await self._escalate_locked(session, EscalationReason(reason), CSTier(target_tier), notes, outcome)
            except Exception:
                self.db.rollback()
                raise
            self._commit(session.id)
            await self._after_commit(session, outcome)
            return session

    async def _escalate_locked(
        self,
        session: CSSession,
        reason: EscalationReason,
        target_tier: CSTier,
        notes: Optional[str],
        outcome: _Outcome,
    ) -> None:
        """Apply a tier change to an already locked, loaded session"""
        previous_tier = CSTier(session.current_tier)
        event = {
            "fromTier": previous_tier.value,
            "toTier": target_tier.value,
            "reason": reason.value,
            "timestamp": _now_iso(),
        }
        if notes:
            event["notes"] = notes
        session.escalation_history = list(session.escalation_history or []) + [event]
        session.current_tier = target_tier
        if target_tier == CSTier.HUMAN_AGENT:
            session.status = CSSessionStatus.ESCALATED

        self._append_message(session, MessageRole.SYSTEM, escalation_message(target_tier))

        # A reply is generated even for HUMAN_AGENT; it comes from the template path
        response = await self.generator.generate(session, target_tier)
        self._append_response(session, response, outcome)

        outcome.events.append((events.SESSION_ESCALATED, {
            "sessionId": str(session.id),
            "companyId": str(session.company_id),
            "fromTier": previous_tier.value,
            "toTier": target_tier.value,
            "reason": reason.value,
        }))
        logger.info("Session %s escalated from %s to %s (%s)", session.id, previous_tier.value, target_tier.value, reason.value)

    async def resolve_session(
        self,
        session_id,
        resolution_type: ResolutionType,
        summary: str,
        actions_taken: Optional[List[str]] = None,
        follow_up_required: bool = False,
        follow_up_date: Optional[datetime] = None,
    ) -> CSSession:
        async with self.locks.hold(session_id):
            session = self.get_session(session_id)
            if session.is_terminal:
                raise InvalidSessionStateError(session.id, session.status, "resolve")

            resolution_type = ResolutionType(resolution_type)
            resolved_at = datetime.utcnow()
            session.status = CSSessionStatus.RESOLVED
            session.resolution_type = resolution_type
            session.resolution_summary = summary
            session.resolution_actions = list(actions_taken or [])
            session.follow_up_required = bool(follow_up_required)
            session.follow_up_date = follow_up_date
            session.resolved_at = resolved_at
            self._append_message(session, MessageRole.SYSTEM, f"Session resolved: {resolution_type.value}. {summary}")

            outcome = _Outcome()
            duration_ms = int((resolved_at - session.created_at).total_seconds() * 1000)
            outcome.events.append((events.SESSION_RESOLVED, {
                "sessionId": str(session.id),
                "companyId": str(session.company_id),
                "resolutionType": resolution_type.value,
                "tier": CSTier(session.current_tier).value,
                "duration": duration_ms,
            }))

            self._commit(session.id)
            await self._after_commit(session, outcome)
            logger.info("Session %s resolved: %s", session.id, resolution_type.value)
            return session

    async def abandon_session(self, session_id, reason: Optional[str] = None) -> CSSession:
        async with self.locks.hold(session_id):
            session = self.get_session(session_id)
            if session.is_terminal:
                raise InvalidSessionStateError(session.id, session.status, "abandon")

            session.status = CSSessionStatus.ABANDONED
            content = f"Session abandoned: {reason}" if reason else "Session abandoned."
            self._append_message(session, MessageRole.SYSTEM, content)

            outcome = _Outcome()
            outcome.events.append((events.SESSION_ABANDONED, {
                "sessionId": str(session.id),
                "companyId": str(session.company_id),
                "tier": CSTier(session.current_tier).value,
                "reason": reason,
            }))

            self._commit(session.id)
            await self._after_commit(session, outcome)
            logger.info("Session %s abandoned", session.id)
            return session

    async def record_satisfaction(self, session_id, score: int) -> CSSession:
        """Store a 1-5 customer satisfaction score"""
        if not 1 <= int(score) <= 5:
            raise ValueError("Satisfaction score must be between 1 and 5")

        async with self.locks.hold(session_id):
            session = self.get_session(session_id)
            session.customer_satisfaction = int(score)
            self._commit(session.id)
            return session

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append_message(
        self,
        session: CSSession,
        role: MessageRole,
        content: str,
        sentiment: Optional[CustomerSentiment] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CSMessage:
        sequence = max((m.sequence for m in session.messages), default=0) + 1
        message = CSMessage(
            id=uuid.uuid4(),
            sequence=sequence,
            role=role,
            content=content,
            sentiment=sentiment,
            message_metadata=metadata,
            created_at=datetime.utcnow(),
        )
        session.messages.append(message)
        session.updated_at = message.created_at
        return message

    def _append_customer_message(self, session: CSSession, text: str, analysis) -> CSMessage:
        message = self._append_message(session, MessageRole.CUSTOMER, text, sentiment=analysis.sentiment)
        snapshot = {
            "sentiment": analysis.sentiment.value,
            "score": analysis.score,
            "timestamp": _now_iso(message.created_at),
        }
        if analysis.trigger:
            snapshot["trigger"] = analysis.trigger
        session.sentiment_history = list(session.sentiment_history or []) + [snapshot]
        session.customer_sentiment = analysis.sentiment
        return message

    def _append_response(self, session: CSSession, response: GeneratedResponse, outcome: _Outcome) -> CSMessage:
        if response.usage:
            outcome.usages.append(response.usage)
        return self._append_message(session, response.role, response.content, metadata=response.metadata)

    def _count_turn_messages(self, session: CSSession, outcome: _Outcome) -> None:
        added = [m for m in session.messages if m.sequence > outcome.baseline_sequence]
        outcome.message_count = len(added)
        outcome.ai_message_count = sum(1 for m in added if m.role in AI_ROLES)

    def _commit(self, session_id) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning("Concurrent update detected for session %s", session_id)
            raise SessionConflictError(session_id) from e
        except IntegrityError as e:
            self.db.rollback()
            if not _is_sequence_violation(e):
                raise
            logger.warning("Duplicate message sequence for session %s", session_id)
            raise SessionConflictError(session_id) from e

    async def _after_commit(self, session: CSSession, outcome: _Outcome, log_activity: bool = False) -> None:
        for usage in outcome.usages:
            record_llm_usage(self.db, session, usage, self.config)
        if log_activity:
            log_session_usage(self.db, session, outcome.message_count, outcome.ai_message_count)
        for event_type, payload in outcome.events:
            await self.event_bus.emit(event_type, payload)
