"""
Customer-service sessions API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
import uuid

from cs_core.core.config import get_engine_config
from cs_core.core.database import get_db
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
    EscalationReason,
    IssueCategory,
    ResolutionType,
)
from cs_core.services.analytics_service import get_analytics
from cs_core.services.customer_service import CustomerServiceEngine
from cs_core.services.events import get_event_bus
from cs_core.services.llm_client import get_llm_client

router = APIRouter()


class StartSessionRequest(BaseModel):
    company_id: uuid.UUID
    customer_id: uuid.UUID
    channel: CSChannel = CSChannel.CHAT
    issue_category: Optional[IssueCategory] = None
    initial_message: Optional[str] = None


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)


class EscalateRequest(BaseModel):
    reason: EscalationReason
    target_tier: CSTier
    notes: Optional[str] = None


class ResolveRequest(BaseModel):
    resolution_type: ResolutionType
    summary: str
    actions_taken: List[str] = []
    follow_up_required: bool = False
    follow_up_date: Optional[datetime] = None


class AbandonRequest(BaseModel):
    reason: Optional[str] = None


class SatisfactionRequest(BaseModel):
    score: int = Field(..., ge=1, le=5)


class MessageResponse(BaseModel):
    id: uuid.UUID
    sequence: int
    role: str
    content: str
    sentiment: Optional[str]
    metadata: Optional[Dict[str, Any]]
    created_at: datetime


class SessionResponse(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    customer_id: uuid.UUID
    channel: str
    current_tier: str
    status: str
    issue_category: Optional[str]
    customer_sentiment: str
    sentiment_history: List[Dict[str, Any]]
    escalation_history: List[Dict[str, Any]]
    context: Optional[Dict[str, Any]]
    resolution: Optional[Dict[str, Any]]
    messages: List[MessageResponse]
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime]


class SendMessageResponse(BaseModel):
    session: SessionResponse
    response: MessageResponse


class SessionListResponse(BaseModel):
    items: List[SessionResponse]
    total: int


def get_engine(db: Session = Depends(get_db)) -> CustomerServiceEngine:
    return CustomerServiceEngine(db, get_llm_client(), get_event_bus(), get_engine_config())


def _message_response(message: CSMessage) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        sequence=message.sequence,
        role=message.role.value,
        content=message.content,
        sentiment=message.sentiment.value if message.sentiment else None,
        metadata=message.message_metadata,
        created_at=message.created_at,
    )


def _session_response(session: CSSession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        company_id=session.company_id,
        customer_id=session.customer_id,
        channel=session.channel.value,
        current_tier=session.current_tier.value,
        status=session.status.value,
        issue_category=session.issue_category.value if session.issue_category else None,
        customer_sentiment=session.customer_sentiment.value,
        sentiment_history=session.sentiment_history or [],
        escalation_history=session.escalation_history or [],
        context=session.context,
        resolution=session.resolution,
        messages=[_message_response(m) for m in session.messages],
        created_at=session.created_at,
        updated_at=session.updated_at,
        resolved_at=session.resolved_at,
    )


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _raise_http(error: Exception):
    if isinstance(error, (SessionNotFoundError, CompanyNotFoundError)):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, InvalidSessionStateError):
        raise HTTPException(status_code=400, detail=str(error))
    if isinstance(error, SessionConflictError):
        raise HTTPException(status_code=409, detail=str(error))
    raise error


@router.post("/sessions", response_model=SessionResponse)
async def start_session(
    request: StartSessionRequest,
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """Start a customer-service session"""
    try:
        session = await engine.start_session(
            company_id=request.company_id,
            customer_id=request.customer_id,
            channel=request.channel,
            issue_category=request.issue_category,
            initial_message=request.initial_message,
        )
    except CompanyNotFoundError as e:
        _raise_http(e)
    return _session_response(session)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    company_id: uuid.UUID,
    status: Optional[CSSessionStatus] = None,
    tier: Optional[CSTier] = None,
    customer_id: Optional[uuid.UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """List sessions for a company, newest first"""
    items, total = engine.get_sessions(
        company_id,
        status=status,
        tier=tier,
        customer_id=customer_id,
        start_date=_naive_utc(start_date),
        end_date=_naive_utc(end_date),
        limit=limit,
        offset=offset,
    )
    return SessionListResponse(items=[_session_response(s) for s in items], total=total)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: uuid.UUID,
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """Get session details with its messages"""
    try:
        return _session_response(engine.get_session(session_id))
    except SessionNotFoundError as e:
        _raise_http(e)


@router.post("/sessions/{session_id}/messages", response_model=SendMessageResponse)
async def send_message(
    session_id: uuid.UUID,
    request: SendMessageRequest,
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """Send a customer message and get the tier reply"""
    try:
        result = await engine.send_message(session_id, request.message)
    except (SessionNotFoundError, InvalidSessionStateError, SessionConflictError) as e:
        _raise_http(e)
    return SendMessageResponse(
        session=_session_response(result.session),
        response=_message_response(result.response),
    )


@router.post("/sessions/{session_id}/escalate", response_model=SessionResponse)
async def escalate_session(
    session_id: uuid.UUID,
    request: EscalateRequest,
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """Escalate a session to another tier"""
    try:
        session = await engine.escalate_session(session_id, request.reason, request.target_tier, request.notes)
    except (SessionNotFoundError, InvalidSessionStateError, SessionConflictError) as e:
        _raise_http(e)
    return _session_response(session)


@router.post("/sessions/{session_id}/resolve", response_model=SessionResponse)
async def resolve_session(
    session_id: uuid.UUID,
    request: ResolveRequest,
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """Resolve a session"""
    try:
        session = await engine.resolve_session(
            session_id,
            request.resolution_type,
            request.summary,
            request.actions_taken,
            follow_up_required=request.follow_up_required,
            follow_up_date=_naive_utc(request.follow_up_date),
        )
    except (SessionNotFoundError, InvalidSessionStateError, SessionConflictError) as e:
        _raise_http(e)
    return _session_response(session)


@router.post("/sessions/{session_id}/abandon", response_model=SessionResponse)
async def abandon_session(
    session_id: uuid.UUID,
    request: AbandonRequest,
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """Mark a session as abandoned"""
    try:
        session = await engine.abandon_session(session_id, request.reason)
    except (SessionNotFoundError, InvalidSessionStateError, SessionConflictError) as e:
        _raise_http(e)
    return _session_response(session)


@router.post("/sessions/{session_id}/satisfaction", response_model=SessionResponse)
async def record_satisfaction(
    session_id: uuid.UUID,
    request: SatisfactionRequest,
    engine: CustomerServiceEngine = Depends(get_engine)
):
    """Record the customer's 1-5 satisfaction score"""
    try:
        session = await engine.record_satisfaction(session_id, request.score)
    except (SessionNotFoundError, SessionConflictError) as e:
        _raise_http(e)
    return _session_response(session)


@router.get("/analytics", response_model=Dict[str, Any])
async def analytics(
    company_id: uuid.UUID,
    start_date: datetime,
    end_date: datetime,
    db: Session = Depends(get_db)
):
    """Session analytics for a company over a date range"""
    start_date, end_date = _naive_utc(start_date), _naive_utc(end_date)
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    return get_analytics(db, company_id, start_date, end_date, get_engine_config())
