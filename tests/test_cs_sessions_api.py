"""
Tests for the customer-service sessions API
"""
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cs_core.api.v1.cs_sessions import get_engine
from cs_core.core.config import EngineConfig
from cs_core.core.database import Base, get_db
from cs_core.main import app
from cs_core.models.customer import Customer
from cs_core.models.tenant import Company
from cs_core.services.customer_service import CustomerServiceEngine
from cs_core.services.events import EventBus
from cs_core.services.session_locks import SessionLockRegistry


@pytest.fixture
def api_db():
    """In-memory database shared with the app's worker thread"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    db = sessionmaker(bind=engine)()
    yield db
    db.close()


@pytest.fixture
def client(api_db, template_llm):
    app.dependency_overrides[get_db] = lambda: api_db
    app.dependency_overrides[get_engine] = lambda: CustomerServiceEngine(
        api_db, template_llm, EventBus(), EngineConfig(), SessionLockRegistry()
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tenant(api_db):
    company = Company(name="Acme Outfitters")
    api_db.add(company)
    api_db.commit()
    customer = Customer(company_id=company.id, email="jane@example.com", first_name="Jane", last_name="Doe")
    api_db.add(customer)
    api_db.commit()
    return {"company_id": str(company.id), "customer_id": str(customer.id)}


def start(client, tenant, **extra):
    response = client.post("/v1/cs/sessions", json={**tenant, **extra})
    assert response.status_code == 200
    return response.json()


def test_start_session(client, tenant):
    data = start(client, tenant, channel="sms")

    assert data["status"] == "ACTIVE"
    assert data["current_tier"] == "AI_REP"
    assert data["channel"] == "sms"
    assert len(data["messages"]) == 1
    assert data["messages"][0]["role"] == "ai_rep"
    assert data["resolution"] is None


def test_send_message_returns_reply(client, tenant):
    session = start(client, tenant)

    response = client.post(f"/v1/cs/sessions/{session['id']}/messages", json={"message": "Where is my order?"})

    assert response.status_code == 200
    data = response.json()
    assert data["session"]["customer_sentiment"] == "NEUTRAL"
    assert data["response"]["role"] == "ai_rep"
    assert [m["role"] for m in data["session"]["messages"]] == ["ai_rep", "customer", "ai_rep"]


def test_refund_session_escalates_over_http(client, tenant):
    session = start(client, tenant, issue_category="REFUND")

    data = client.post(f"/v1/cs/sessions/{session['id']}/messages", json={"message": "Hi"}).json()

    assert data["session"]["current_tier"] == "AI_MANAGER"
    assert data["response"]["role"] == "ai_manager"


def test_empty_message_is_rejected(client, tenant):
    session = start(client, tenant)
    response = client.post(f"/v1/cs/sessions/{session['id']}/messages", json={"message": ""})
    assert response.status_code == 422


def test_unknown_session_is_404(client):
    assert client.get(f"/v1/cs/sessions/{uuid.uuid4()}").status_code == 404
    response = client.post(f"/v1/cs/sessions/{uuid.uuid4()}/messages", json={"message": "Hello"})
    assert response.status_code == 404


def test_unknown_company_is_404(client, tenant):
    response = client.post("/v1/cs/sessions", json={**tenant, "company_id": str(uuid.uuid4())})
    assert response.status_code == 404


def test_message_to_resolved_session_is_400(client, tenant):
    session = start(client, tenant)
    resolved = client.post(
        f"/v1/cs/sessions/{session['id']}/resolve",
        json={"resolution_type": "ISSUE_RESOLVED", "summary": "Answered", "actions_taken": ["explained policy"]},
    )
    assert resolved.status_code == 200
    assert resolved.json()["resolution"]["type"] == "ISSUE_RESOLVED"
    assert resolved.json()["resolution"]["actionsTaken"] == ["explained policy"]

    response = client.post(f"/v1/cs/sessions/{session['id']}/messages", json={"message": "One more thing"})
    assert response.status_code == 400


def test_escalate_and_abandon(client, tenant):
    session = start(client, tenant)

    escalated = client.post(
        f"/v1/cs/sessions/{session['id']}/escalate",
        json={"reason": "CUSTOMER_REQUEST", "target_tier": "HUMAN_AGENT", "notes": "asked for a person"},
    ).json()
    assert escalated["status"] == "ESCALATED"
    assert escalated["escalation_history"][0]["notes"] == "asked for a person"

    abandoned = client.post(f"/v1/cs/sessions/{session['id']}/abandon", json={"reason": "disconnected"}).json()
    assert abandoned["status"] == "ABANDONED"
    assert abandoned["messages"][-1]["content"] == "Session abandoned: disconnected"


def test_satisfaction_validation(client, tenant):
    session = start(client, tenant)

    assert client.post(f"/v1/cs/sessions/{session['id']}/satisfaction", json={"score": 6}).status_code == 422
    response = client.post(f"/v1/cs/sessions/{session['id']}/satisfaction", json={"score": 5})
    assert response.status_code == 200


def test_list_sessions_by_status(client, tenant):
    first = start(client, tenant)
    start(client, tenant)
    client.post(f"/v1/cs/sessions/{first['id']}/abandon", json={})

    all_sessions = client.get("/v1/cs/sessions", params={"company_id": tenant["company_id"]}).json()
    abandoned = client.get(
        "/v1/cs/sessions",
        params={"company_id": tenant["company_id"], "status": "ABANDONED"},
    ).json()

    assert all_sessions["total"] == 2
    assert abandoned["total"] == 1
    assert abandoned["items"][0]["id"] == first["id"]


def test_analytics_endpoint(client, tenant):
    start(client, tenant)

    response = client.get("/v1/cs/analytics", params={
        "company_id": tenant["company_id"],
        "start_date": "2000-01-01T00:00:00Z",
        "end_date": "2100-01-01T00:00:00Z",
    })

    assert response.status_code == 200
    assert response.json()["overview"]["totalSessions"] == 1


def test_analytics_rejects_inverted_range(client, tenant):
    response = client.get("/v1/cs/analytics", params={
        "company_id": tenant["company_id"],
        "start_date": "2024-02-01T00:00:00",
        "end_date": "2024-01-01T00:00:00",
    })
    assert response.status_code == 400
