"""
Anthropic Messages API client

Tenants bring their own key through an LLMIntegration row; the platform key
from settings is used when a tenant has none. Resolved credentials are cached
per tenant id until invalidate() is called.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from cs_core.core.config import settings
from cs_core.core.database import SessionLocal
from cs_core.core.exceptions import ProviderError
from cs_core.models.tenant import LLMIntegration

logger = logging.getLogger(__name__)


@dataclass
class LLMRequest:
    model: str
    max_tokens: int
    system: str
    messages: List[Dict[str, str]]
    temperature: Optional[float] = None


@dataclass
class LLMUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMResponse:
    content: str
    model: str
    stop_reason: Optional[str] = None
    usage: LLMUsage = field(default_factory=LLMUsage)


@dataclass
class TenantCredentials:
    api_key: Optional[str]
    model: str
    max_tokens: int
    enabled: bool = True


class AnthropicClient:
    """Per-tenant access to the Anthropic Messages API"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        base_url: Optional[str] = None,
        platform_api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.base_url = (base_url or settings.ANTHROPIC_API_URL).rstrip("/")
        self.platform_api_key = platform_api_key if platform_api_key is not None else settings.ANTHROPIC_API_KEY
        self.client = httpx.AsyncClient(
            timeout=timeout or settings.ANTHROPIC_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._credentials: Dict[str, TenantCredentials] = {}

    def _get_credentials(self, tenant_id) -> TenantCredentials:
        key = str(tenant_id)
        cached = self._credentials.get(key)
        if cached is not None:
            return cached

        db = self.session_factory()
        try:
            integration = db.query(LLMIntegration).filter(
                LLMIntegration.company_id == tenant_id
            ).first()
        finally:
            db.close()

        if integration:
            credentials = TenantCredentials(
                api_key=integration.api_key or self.platform_api_key or None,
                model=integration.default_model or settings.ANTHROPIC_DEFAULT_MODEL,
                max_tokens=integration.max_tokens or settings.ANTHROPIC_DEFAULT_MAX_TOKENS,
                enabled=bool(integration.enabled),
            )
        else:
            credentials = TenantCredentials(
                api_key=self.platform_api_key or None,
                model=settings.ANTHROPIC_DEFAULT_MODEL,
                max_tokens=settings.ANTHROPIC_DEFAULT_MAX_TOKENS,
            )

        self._credentials[key] = credentials
        return credentials

    def invalidate(self, tenant_id=None) -> None:
        """Drop cached credentials for one tenant, or for all tenants"""
        if tenant_id is None:
            self._credentials.clear()
        else:
            self._credentials.pop(str(tenant_id), None)

    def is_configured(self, tenant_id) -> bool:
        credentials = self._get_credentials(tenant_id)
        return credentials.enabled and bool(credentials.api_key)

    def get_default_model(self, tenant_id) -> str:
        return self._get_credentials(tenant_id).model

    def get_max_tokens(self, tenant_id) -> int:
        return self._get_credentials(tenant_id).max_tokens

    async def send_message(self, tenant_id, request: LLMRequest) -> LLMResponse:
        """
        Call POST /v1/messages for the tenant.

        Raises ProviderError on missing credentials, transport errors,
        timeouts, non-2xx responses and bodies without text content.
        """
        credentials = self._get_credentials(tenant_id)
        if not credentials.enabled or not credentials.api_key:
            raise ProviderError(f"LLM provider not configured for tenant {tenant_id}")

        headers = {
            "x-api-key": credentials.api_key,
            "anthropic-version": settings.ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "system": request.system,
            "messages": request.messages,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature

        try:
            response = await self.client.post(
                f"{self.base_url}/v1/messages",
                json=payload,
                headers=headers
            )
            response.raise_for_status()
            result = response.json()
        except httpx.TimeoutException as e:
            raise ProviderError(f"LLM request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(f"LLM request failed with status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"LLM request failed: {e}") from e

        text_blocks = [
            block.get("text", "")
            for block in result.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        content = "".join(text_blocks).strip()
        if not content:
            raise ProviderError("LLM response contained no text content")

        usage = result.get("usage") or {}
        return LLMResponse(
            content=content,
            model=result.get("model", request.model),
            stop_reason=result.get("stop_reason"),
            usage=LLMUsage(
                input_tokens=int(usage.get("input_tokens", 0)),
                output_tokens=int(usage.get("output_tokens", 0)),
            ),
        )

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()


# Singleton instance
_llm_client: Optional[AnthropicClient] = None


def get_llm_client() -> AnthropicClient:
    """Get singleton LLM client instance"""
    global _llm_client
    if _llm_client is None:
        _llm_client = AnthropicClient()
    return _llm_client
