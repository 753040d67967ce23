"""
Shared fixtures for engine tests
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cs_core.core.config import EngineConfig
from cs_core.core.database import Base
from cs_core.core.exceptions import ProviderError
from cs_core.models.customer import Customer, Transaction
from cs_core.models.tenant import Company
from cs_core.services.llm_client import LLMResponse, LLMUsage


class FakeLLMClient:
    """Stands in for AnthropicClient; records every request"""

    def __init__(self, configured=True, fail=False, reply="Happy to help with that."):
        self.configured = configured
        self.fail = fail
        self.reply = reply
        self.requests = []

    def is_configured(self, tenant_id):
        return self.configured

    def get_default_model(self, tenant_id):
        return "claude-test"

    def get_max_tokens(self, tenant_id):
        return 4096

    async def send_message(self, tenant_id, request):
        self.requests.append(request)
        if self.fail:
            raise ProviderError("provider down")
        return LLMResponse(
            content=self.reply,
            model="claude-test",
            stop_reason="end_turn",
            usage=LLMUsage(input_tokens=1200, output_tokens=300),
        )


@pytest.fixture
def db_session():
    """Create test database session"""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def company(db_session):
    """Create test company"""
    company = Company(name="Acme Outfitters")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def customer(db_session, company):
    """Create a regular customer"""
    customer = Customer(company_id=company.id, email="jane@example.com", first_name="Jane", last_name="Doe")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def vip_customer(db_session, company):
    """Create a customer whose completed transactions exceed the VIP threshold"""
    customer = Customer(company_id=company.id, email="vip@example.com", first_name="Victor")
    db_session.add(customer)
    db_session.commit()
    db_session.add_all([
        Transaction(customer_id=customer.id, amount=6000, status="COMPLETED"),
        Transaction(customer_id=customer.id, amount=6000, status="COMPLETED"),
        Transaction(customer_id=customer.id, amount=9000, status="REFUNDED"),
    ])
    db_session.commit()
    return customer


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def failing_llm():
    """Provider that raises on every call"""
    return FakeLLMClient(fail=True)


@pytest.fixture
def template_llm():
    """Provider that is not configured, so every reply comes from templates"""
    return FakeLLMClient(configured=False)
