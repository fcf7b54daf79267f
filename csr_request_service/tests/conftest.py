import datetime
import random
import pytest
from fastapi.testclient import TestClient

from csr_request_service.app.service.models import (
    CSRRequest, RequestStatus, RequestTimestamps, ServiceProvider, STATUS_ORDER, TIMESTAMP_FIELD_BY_STATUS
)
from csr_request_service.app.config import settings
from csr_request_service.app.dependencies.services import (
    get_captcha_registry, get_notification_publisher, get_operation_guard, get_provider_gateway
)
from csr_request_service.app.main import app
from csr_request_service.app.service.auth import CaptchaRegistry
from csr_request_service.app.service.events import models as domain_event_models
from csr_request_service.app.service.events.projectors import dispatch_events_to_projectors
from csr_request_service.app.service.notifications import NotificationPublisher
from csr_request_service.app.service.operations import OperationGuard
from csr_request_service.infrastructure.provider_gateway_client import SimulatedProviderGateway
from csr_request_service.infrastructure.store.connection import get_event_store, get_request_store
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore
from csr_request_service.infrastructure.store.request_store import RequestStore

BASE_TIME = datetime.datetime(2024, 1, 15, 9, 0, tzinfo=datetime.timezone.utc)


def build_request(
    request_id: str,
    provider: ServiceProvider = ServiceProvider.JIO,
    status: RequestStatus = RequestStatus.REQUEST_RECEIVED,
    station: str = "Chennai Central Police Station",
    mobile_number: str = "9876543210",
    provider_response: str = None,
    received: datetime.datetime = BASE_TIME,
) -> CSRRequest:
    """A valid request at ``status``, with one stamped timestamp per step reached (an hour apart)."""
    stamps = {"received": received}
    reached = STATUS_ORDER.index(status)
    for step, (stamp_status, field_name) in enumerate(TIMESTAMP_FIELD_BY_STATUS.items(), start=1):
        if STATUS_ORDER.index(stamp_status) <= reached:
            stamps[field_name] = received + datetime.timedelta(hours=step)
    if status in (RequestStatus.RESPONSE_RECEIVED, RequestStatus.COMPLETED) and provider_response is None:
        provider_response = f"Subscriber details for {mobile_number}"
    return CSRRequest(
        id=request_id,
        police_station_name=station,
        police_station_email="chennai.central.police.station@tnpolice.gov.in",
        mobile_number=mobile_number,
        service_provider=provider,
        status=status,
        timestamps=RequestTimestamps(**stamps),
        reference_id=f"REF-{request_id[-9:].rjust(9, '0')}",
        provider_response=provider_response,
        version=reached + 1,
    )


@pytest.fixture
def request_factory():
    return build_request


@pytest.fixture
def request_store():
    return RequestStore()


@pytest.fixture
def event_store():
    return InMemoryEventStore()


@pytest.fixture
def gateway():
    return SimulatedProviderGateway(dispatch_latency=0, forward_latency=0, unreachable_providers=[])


@pytest.fixture
def notifier():
    return NotificationPublisher(producer=None, history_size=10)


@pytest.fixture
def guard():
    return OperationGuard()


def history_for(request: CSRRequest):
    """The domain events that, projected in order, produce ``request``."""
    received = request.model_copy(update={
        "status": RequestStatus.REQUEST_RECEIVED,
        "timestamps": RequestTimestamps(received=request.timestamps.received),
        "provider_response": None,
        "version": 1,
    })
    events = [domain_event_models.RequestReceivedEvent(
        aggregate_id=request.id,
        payload=domain_event_models.RequestReceivedEventPayload(request=received),
        version=1,
    )]
    reached = STATUS_ORDER.index(request.status)
    if reached >= 1:
        events.append(domain_event_models.RequestSentToProviderEvent(
            aggregate_id=request.id,
            payload=domain_event_models.RequestSentToProviderEventPayload(
                provider=request.service_provider,
                dispatch_batch_id="seed-batch",
                sent_at=request.timestamps.sent_to_provider,
            ),
            version=2,
        ))
    if reached >= 2:
        events.append(domain_event_models.ProviderResponseRecordedEvent(
            aggregate_id=request.id,
            payload=domain_event_models.ProviderResponseRecordedEventPayload(
                response_text=request.provider_response,
                received_at=request.timestamps.response_received,
            ),
            version=3,
        ))
    if reached >= 3:
        events.append(domain_event_models.ResponseForwardedEvent(
            aggregate_id=request.id,
            payload=domain_event_models.ResponseForwardedEventPayload(
                police_station_email=request.police_station_email,
                forwarded_at=request.timestamps.forwarded,
            ),
            version=4,
        ))
    return events


@pytest.fixture
def seed_requests(request_store, event_store):
    """Async helper that loads requests into the stores through their event history."""
    async def _seed(*requests: CSRRequest):
        events = [event for request in requests for event in history_for(request)]
        await dispatch_events_to_projectors(request_store, events)
        await event_store.save_events(events)
        return request_store.snapshot()
    return _seed


@pytest.fixture
def captcha_registry():
    return CaptchaRegistry(rng=random.Random(5))


@pytest.fixture
def client(monkeypatch, request_store, event_store, gateway, notifier, guard, captcha_registry):
    """TestClient wired to this test's stores and collaborators; startup hooks are not run."""
    monkeypatch.setattr(settings, "LOGIN_LATENCY_SECONDS", 0.0)
    app.dependency_overrides[get_request_store] = lambda: request_store
    app.dependency_overrides[get_event_store] = lambda: event_store
    app.dependency_overrides[get_provider_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_publisher] = lambda: notifier
    app.dependency_overrides[get_operation_guard] = lambda: guard
    app.dependency_overrides[get_captcha_registry] = lambda: captcha_registry
    yield TestClient(app)
    app.dependency_overrides.clear()
