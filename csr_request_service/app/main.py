# FastAPI Application Entry Point
import asyncio
import logging
from typing import Optional

from fastapi import FastAPI
import httpx

from csr_request_service.app.config import settings
from csr_request_service.app.observability import setup_opentelemetry, record_pending_by_provider, logger

# Initialize OpenTelemetry
setup_opentelemetry(service_name=settings.SERVICE_NAME_API)

# Import instrumentors after OTel SDK is initialized
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from csr_request_service.app.service.dashboard import pending_by_provider
from csr_request_service.infrastructure.store.connection import (
    init_stores, close_stores, get_request_store, get_event_store
)
from csr_request_service.infrastructure.intake.fixtures import seed_fixture_data
from csr_request_service.infrastructure.kafka.producer import startup_notification_producer, shutdown_notification_producer
from csr_request_service.infrastructure.kafka.consumer import consume_intake_events

# API Routers
from csr_request_service.app.api.v1.endpoints import health as health_router
from csr_request_service.app.api.v1.endpoints import auth as auth_router
from csr_request_service.app.api.v1.endpoints import dashboard as dashboard_router
from csr_request_service.app.api.v1.endpoints import responses as responses_router
from csr_request_service.app.api.v1.endpoints import requests as requests_router
from csr_request_service.app.api.v1.endpoints import notifications as notifications_router

# --- FastAPI Application Instance ---
app = FastAPI(
    title="CSR Request Service",
    description="Collects CSR requests from police stations, dispatches them to telecom providers and forwards the responses.",
    version="0.1.0"
)

_intake_consumer_task: Optional[asyncio.Task] = None
_intake_consumer_stop: Optional[asyncio.Event] = None
_unsubscribe_pending_gauge = None

# --- Event Handlers for stores, clients & background consumers ---
@app.on_event("startup")
async def startup_event():
    global _intake_consumer_task, _intake_consumer_stop, _unsubscribe_pending_gauge
    logger.info("FastAPI application startup...")

    app.state.http_client = httpx.AsyncClient(timeout=settings.DEFAULT_HTTP_TIMEOUT)
    HTTPXClientInstrumentor().instrument()
    logger.info(f"HTTPX AsyncClient initialized with timeout {settings.DEFAULT_HTTP_TIMEOUT} and instrumented.")

    init_stores()
    request_store = get_request_store()
    _unsubscribe_pending_gauge = request_store.subscribe(
        lambda requests: record_pending_by_provider(pending_by_provider(requests))
    )

    if settings.SEED_FIXTURES and len(request_store) == 0:
        await seed_fixture_data(request_store, get_event_store(), count=settings.FIXTURE_REQUEST_COUNT)

    await startup_notification_producer()

    if settings.INTAKE_CONSUMER_ENABLED and settings.KAFKA_BOOTSTRAP_SERVERS:
        _intake_consumer_stop = asyncio.Event()
        _intake_consumer_task = asyncio.create_task(
            consume_intake_events(request_store, get_event_store(), _intake_consumer_stop)
        )
        logger.info("Kafka intake consumer started.")
    elif settings.INTAKE_CONSUMER_ENABLED:
        logger.warning("INTAKE_CONSUMER_ENABLED set but KAFKA_BOOTSTRAP_SERVERS is not. Intake consumer not started.")

@app.on_event("shutdown")
async def shutdown_event():
    global _intake_consumer_task, _intake_consumer_stop, _unsubscribe_pending_gauge
    logger.info("FastAPI application shutdown...")

    if _intake_consumer_task is not None:
        _intake_consumer_stop.set()
        await _intake_consumer_task
        _intake_consumer_task = None
        _intake_consumer_stop = None
        logger.info("Kafka intake consumer stopped.")

    await shutdown_notification_producer()

    if getattr(app.state, 'http_client', None):
        await app.state.http_client.aclose()
        app.state.http_client = None
        logger.info("HTTPX AsyncClient closed.")

    if _unsubscribe_pending_gauge is not None:
        _unsubscribe_pending_gauge()
        _unsubscribe_pending_gauge = None
    close_stores()

FastAPIInstrumentor.instrument_app(app)
logger.info("FastAPI instrumentation complete.")

# Include API Routers
app.include_router(health_router.router)
app.include_router(auth_router.router, prefix="/api/v1")
app.include_router(dashboard_router.router, prefix="/api/v1")
app.include_router(responses_router.router, prefix="/api/v1")
app.include_router(requests_router.router, prefix="/api/v1")
app.include_router(notifications_router.router, prefix="/api/v1")

logger.info("API routers included. Application setup complete.")

# To run: uvicorn csr_request_service.app.main:app --reload --port 8000
