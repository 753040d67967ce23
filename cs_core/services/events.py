"""
In-process event bus for session lifecycle events

Handlers are plain callables (sync or async) registered per event type.
Delivery is best-effort: a failing handler is logged and never affects the
operation that emitted the event or the other handlers.
"""
import inspect
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
from sqlalchemy.orm import Session

from cs_core.services.audit_service import log_audit_event

logger = logging.getLogger(__name__)

SESSION_STARTED = "session.started"
MESSAGE_RECEIVED = "message.received"
SESSION_ESCALATED = "session.escalated"
SESSION_RESOLVED = "session.resolved"
SESSION_ABANDONED = "session.abandoned"

ALL_EVENTS = (SESSION_STARTED, MESSAGE_RECEIVED, SESSION_ESCALATED, SESSION_RESOLVED, SESSION_ABANDONED)

Handler = Callable[[str, Dict[str, Any]], Union[None, Awaitable[None]]]


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """Register a handler; "*" receives every event"""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        if handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def handlers_for(self, event_type: str) -> List[Handler]:
        return list(self._handlers.get(event_type, [])) + list(self._handlers.get("*", []))

    async def emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        for handler in self.handlers_for(event_type):
            await self._deliver(handler, event_type, payload)

    async def _deliver(self, handler: Handler, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            result = handler(event_type, payload)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("Event handler %r failed for %s", handler, event_type, exc_info=True)


def audit_subscriber(session_factory: Callable[[], Session]) -> Handler:
    """Handler that records every event as an AuditEvent row"""

    def handle(event_type: str, payload: Dict[str, Any]) -> None:
        db = session_factory()
        try:
            log_audit_event(
                db,
                event_type=event_type,
                company_id=payload.get("companyId"),
                session_id=payload.get("sessionId"),
                payload=payload,
            )
        finally:
            db.close()

    return handle


def webhook_subscriber(url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0) -> Handler:
    """Handler that POSTs {"event", "payload", "timestamp"} to an external URL"""
    http_client = client or httpx.AsyncClient(timeout=timeout)

    async def handle(event_type: str, payload: Dict[str, Any]) -> None:
        response = await http_client.post(
            url,
            json={
                "event": event_type,
                "payload": payload,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )
        response.raise_for_status()

    return handle


# Singleton instance
_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus"""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
