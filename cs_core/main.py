"""
CS Core - tiered AI customer-service escalation engine
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from cs_core.core.config import settings
from cs_core.core.database import Base, SessionLocal, engine
from cs_core.core.logging import setup_logging
from cs_core.api.v1 import cs_sessions
from cs_core.services.events import audit_subscriber, get_event_bus, webhook_subscriber
from cs_core.services.llm_client import get_llm_client

setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="CS Core API",
    description="Tiered AI customer-service sessions with sentiment-driven escalation",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(cs_sessions.router, prefix="/v1/cs", tags=["customer-service"])


def register_event_subscribers() -> None:
    event_bus = get_event_bus()
    event_bus.subscribe("*", audit_subscriber(SessionLocal))
    if settings.EVENT_WEBHOOK_URL:
        event_bus.subscribe("*", webhook_subscriber(settings.EVENT_WEBHOOK_URL))


@app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    register_event_subscribers()
    logger.info("%s started (%s)", settings.APP_NAME, settings.APP_ENV)


@app.on_event("shutdown")
async def on_shutdown():
    await get_llm_client().close()


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.APP_NAME}


@app.get("/")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }
