"""
Tests for the Anthropic Messages API client
"""
import json
import uuid

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cs_core.core.database import Base
from cs_core.core.exceptions import ProviderError
from cs_core.models.tenant import Company, LLMIntegration
from cs_core.services.llm_client import AnthropicClient, LLMRequest


@pytest.fixture
def session_factory():
    """Session factory over one shared in-memory database"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


@pytest.fixture
def company_id(session_factory):
    """Company with its own Anthropic key"""
    db = session_factory()
    company = Company(name="Acme")
    db.add(company)
    db.commit()
    db.add(LLMIntegration(
        company_id=company.id,
        api_key="sk-tenant",
        default_model="claude-test",
        max_tokens=800,
    ))
    db.commit()
    company_id = company.id
    db.close()
    return company_id


def make_request():
    return LLMRequest(
        model="claude-test",
        max_tokens=500,
        system="You are helpful",
        messages=[{"role": "user", "content": "Hello"}],
    )


def ok_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={
        "id": "msg_1",
        "type": "message",
        "model": "claude-test",
        "stop_reason": "end_turn",
        "content": [{"type": "text", "text": "Hi, how can I help?"}],
        "usage": {"input_tokens": 42, "output_tokens": 7},
    })


def test_tenant_settings_are_read(session_factory, company_id):
    """Model and max tokens come from the tenant integration"""
    client = AnthropicClient(session_factory, platform_api_key="")
    assert client.is_configured(company_id)
    assert client.get_default_model(company_id) == "claude-test"
    assert client.get_max_tokens(company_id) == 800


def test_unknown_tenant_without_platform_key(session_factory):
    """No integration and no platform key means not configured"""
    client = AnthropicClient(session_factory, platform_api_key="")
    assert not client.is_configured(uuid.uuid4())


def test_platform_key_fallback(session_factory):
    """The platform key is used when a tenant has no integration"""
    client = AnthropicClient(session_factory, platform_api_key="sk-platform")
    assert client.is_configured(uuid.uuid4())


def test_credentials_cached_until_invalidated(session_factory, company_id):
    """Credential rotation is picked up only after invalidate()"""
    client = AnthropicClient(session_factory, platform_api_key="")
    assert client.is_configured(company_id)

    db = session_factory()
    integration = db.query(LLMIntegration).filter(LLMIntegration.company_id == company_id).first()
    integration.enabled = False
    db.commit()
    db.close()

    assert client.is_configured(company_id)
    client.invalidate(company_id)
    assert not client.is_configured(company_id)


@pytest.mark.asyncio
async def test_send_message_success(session_factory, company_id):
    """Request is sent in Messages API shape and the reply is parsed"""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return ok_response(request)

    client = AnthropicClient(session_factory, base_url="https://llm.test", platform_api_key="",
                             transport=httpx.MockTransport(handler))
    response = await client.send_message(company_id, make_request())

    assert captured["url"] == "https://llm.test/v1/messages"
    assert captured["headers"]["x-api-key"] == "sk-tenant"
    assert captured["headers"]["anthropic-version"]
    assert captured["body"]["system"] == "You are helpful"
    assert captured["body"]["max_tokens"] == 500
    assert "temperature" not in captured["body"]

    assert response.content == "Hi, how can I help?"
    assert response.model == "claude-test"
    assert response.stop_reason == "end_turn"
    assert response.usage.input_tokens == 42
    assert response.usage.output_tokens == 7
    await client.close()


@pytest.mark.asyncio
async def test_http_error_raises_provider_error(session_factory, company_id):
    """Non-2xx responses become ProviderError"""
    transport = httpx.MockTransport(lambda request: httpx.Response(529, json={"error": "overloaded"}))
    client = AnthropicClient(session_factory, platform_api_key="", transport=transport)

    with pytest.raises(ProviderError):
        await client.send_message(company_id, make_request())
    await client.close()


@pytest.mark.asyncio
async def test_timeout_raises_provider_error(session_factory, company_id):
    """Timeouts become ProviderError"""

    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = AnthropicClient(session_factory, platform_api_key="", transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderError):
        await client.send_message(company_id, make_request())
    await client.close()


@pytest.mark.asyncio
async def test_empty_content_raises_provider_error(session_factory, company_id):
    """A reply without text blocks is unusable"""
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"content": [], "usage": {}}))
    client = AnthropicClient(session_factory, platform_api_key="", transport=transport)

    with pytest.raises(ProviderError):
        await client.send_message(company_id, make_request())
    await client.close()


@pytest.mark.asyncio
async def test_unconfigured_tenant_raises_provider_error(session_factory):
    """No credentials means no request is made"""
    calls = []
    transport = httpx.MockTransport(lambda request: calls.append(request) or ok_response(request))
    client = AnthropicClient(session_factory, platform_api_key="", transport=transport)

    with pytest.raises(ProviderError):
        await client.send_message(uuid.uuid4(), make_request())
    assert calls == []
    await client.close()
