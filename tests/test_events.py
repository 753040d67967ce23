"""
Tests for lifecycle event delivery
"""
import json
import uuid

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cs_core.core.database import Base
from cs_core.models.audit import AuditEvent
from cs_core.services.events import (
    SESSION_ESCALATED,
    SESSION_STARTED,
    EventBus,
    audit_subscriber,
    webhook_subscriber,
)


@pytest.mark.asyncio
async def test_handlers_receive_their_events():
    """Typed handlers see only their event; "*" sees everything"""
    bus = EventBus()
    started, everything = [], []
    bus.subscribe(SESSION_STARTED, lambda event_type, payload: started.append(payload))
    bus.subscribe("*", lambda event_type, payload: everything.append(event_type))

    await bus.emit(SESSION_STARTED, {"sessionId": "s1"})
    await bus.emit(SESSION_ESCALATED, {"sessionId": "s1"})

    assert started == [{"sessionId": "s1"}]
    assert everything == [SESSION_STARTED, SESSION_ESCALATED]


@pytest.mark.asyncio
async def test_async_handlers_are_awaited():
    bus = EventBus()
    received = []

    async def handler(event_type, payload):
        received.append(event_type)

    bus.subscribe(SESSION_STARTED, handler)
    await bus.emit(SESSION_STARTED, {})

    assert received == [SESSION_STARTED]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_delivery(caplog):
    """A broken handler is logged and the next handler still runs"""
    bus = EventBus()
    received = []

    def broken(event_type, payload):
        raise RuntimeError("boom")

    bus.subscribe(SESSION_STARTED, broken)
    bus.subscribe(SESSION_STARTED, lambda event_type, payload: received.append(event_type))

    await bus.emit(SESSION_STARTED, {})

    assert received == [SESSION_STARTED]
    assert "Event handler" in caplog.text


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    def handler(event_type, payload):
        received.append(event_type)

    bus.subscribe(SESSION_STARTED, handler)
    bus.unsubscribe(SESSION_STARTED, handler)
    await bus.emit(SESSION_STARTED, {})

    assert received == []


@pytest.mark.asyncio
async def test_audit_subscriber_writes_rows():
    """Every event becomes an AuditEvent row"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine)

    bus = EventBus()
    bus.subscribe("*", audit_subscriber(session_factory))
    company_id, session_id = uuid.uuid4(), uuid.uuid4()

    await bus.emit(SESSION_STARTED, {"companyId": str(company_id), "sessionId": str(session_id), "tier": "AI_REP"})

    db = session_factory()
    event = db.query(AuditEvent).one()
    assert event.event_type == SESSION_STARTED
    assert event.company_id == company_id
    assert event.session_id == session_id
    assert event.payload["tier"] == "AI_REP"
    db.close()


@pytest.mark.asyncio
async def test_webhook_subscriber_posts_event():
    """The webhook body carries event, payload and timestamp"""
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return httpx.Response(204)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    bus = EventBus()
    bus.subscribe("*", webhook_subscriber("https://hooks.test/cs", client=client))

    await bus.emit(SESSION_ESCALATED, {"sessionId": "s1", "toTier": "AI_MANAGER"})

    assert captured[0]["event"] == SESSION_ESCALATED
    assert captured[0]["payload"] == {"sessionId": "s1", "toTier": "AI_MANAGER"}
    assert "timestamp" in captured[0]
    await client.aclose()


@pytest.mark.asyncio
async def test_webhook_failure_is_contained():
    """A 500 from the webhook is logged, not raised"""
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    bus = EventBus()
    bus.subscribe("*", webhook_subscriber("https://hooks.test/cs", client=client))

    await bus.emit(SESSION_STARTED, {})
    await client.aclose()
