# Event Projectors and Dispatcher
import logging
from typing import Dict, List, Optional

from . import models as domain_event_models
from csr_request_service.app.service import lifecycle
from csr_request_service.app.service.models import CSRRequest, RequestStatus
from csr_request_service.app.service.exceptions import ConcurrencyConflictError, DuplicateRequestError, RequestNotFoundError
from csr_request_service.app.observability import tracer, domain_events_processed_counter, domain_events_by_type_counter
from csr_request_service.infrastructure.store.request_store import RequestStore

from opentelemetry.trace import SpanKind, get_current_span
from opentelemetry.trace.status import StatusCode, Status

logger = logging.getLogger(__name__)

# --- Specific Projector Functions ---
# Each takes the current record (None if unknown) and returns the next one.

def _require_next_version(current: CSRRequest, event: domain_event_models.BaseEvent) -> None:
    if event.version != current.version + 1:
        raise ConcurrencyConflictError(
            aggregate_id=event.aggregate_id,
            expected_version=current.version + 1,
            actual_version=event.version
        )

def _require_existing(current: Optional[CSRRequest], event: domain_event_models.BaseEvent) -> CSRRequest:
    if current is None:
        raise RequestNotFoundError(event.aggregate_id)
    _require_next_version(current, event)
    return current

def project_request_received(current: Optional[CSRRequest], event: domain_event_models.RequestReceivedEvent) -> CSRRequest:
    if current is not None:
        raise DuplicateRequestError(event.aggregate_id)
    logger.info(f"Projecting RequestReceivedEvent: {event.event_id} for request {event.aggregate_id}")
    return event.payload.request.model_copy(update={"version": event.version})

def project_request_sent_to_provider(current: Optional[CSRRequest], event: domain_event_models.RequestSentToProviderEvent) -> CSRRequest:
    current = _require_existing(current, event)
    logger.info(f"Projecting RequestSentToProviderEvent: {event.event_id} for request {event.aggregate_id} (batch {event.payload.dispatch_batch_id})")
    return lifecycle.advance(current, RequestStatus.SENT_TO_PROVIDER, event.payload.sent_at, version=event.version)

def project_provider_response_recorded(current: Optional[CSRRequest], event: domain_event_models.ProviderResponseRecordedEvent) -> CSRRequest:
    current = _require_existing(current, event)
    logger.info(f"Projecting ProviderResponseRecordedEvent: {event.event_id} for request {event.aggregate_id}")
    return lifecycle.advance(
        current, RequestStatus.RESPONSE_RECEIVED, event.payload.received_at,
        provider_response=event.payload.response_text, version=event.version
    )

def project_response_forwarded(current: Optional[CSRRequest], event: domain_event_models.ResponseForwardedEvent) -> CSRRequest:
    current = _require_existing(current, event)
    logger.info(f"Projecting ResponseForwardedEvent: {event.event_id} for request {event.aggregate_id}")
    return lifecycle.advance(current, RequestStatus.COMPLETED, event.payload.forwarded_at, version=event.version)

# --- Event Dispatcher ---
EVENT_PROJECTORS = {
    "RequestReceived": project_request_received,
    "RequestSentToProvider": project_request_sent_to_provider,
    "ProviderResponseRecorded": project_provider_response_recorded,
    "ResponseForwarded": project_response_forwarded,
}

def project_event_with_tracing_and_metrics(projector_func, current: Optional[CSRRequest], event: domain_event_models.BaseEvent) -> CSRRequest:
    event_type_str = event.event_type
    with tracer.start_as_current_span(f"projector.{event_type_str}.{projector_func.__name__}", kind=SpanKind.INTERNAL) as proj_span:
        proj_span.set_attribute("event.id", event.event_id)
        proj_span.set_attribute("event.type", event_type_str)
        proj_span.set_attribute("aggregate.id", event.aggregate_id)
        proj_span.set_attribute("projector.function", projector_func.__name__)
        try:
            projected = projector_func(current, event)
            domain_events_processed_counter.add(1, {"projector.name": projector_func.__name__})
            domain_events_by_type_counter.add(1, {"event.type": event_type_str, "projector.name": projector_func.__name__})
            proj_span.set_status(Status(StatusCode.OK))
            return projected
        except Exception as e:
            logger.warning(f"Projector {projector_func.__name__} rejected event {event.event_id}: {e}")
            proj_span.record_exception(e)
            proj_span.set_status(Status(StatusCode.ERROR, description=f"Projector Error: {type(e).__name__}"))
            raise

def apply_events(requests: List[CSRRequest], events: List[domain_event_models.BaseEvent]) -> List[CSRRequest]:
    """
    Pure projection of ``events`` onto ``requests``. Existing records keep
    their position; records created by the events are appended in event order.
    """
    by_id: Dict[str, CSRRequest] = {request.id: request for request in requests}
    for event in events:
        projector_func = EVENT_PROJECTORS.get(event.event_type)
        if projector_func is None:
            logger.debug(f"No projector registered for event type: {event.event_type}")
            continue
        by_id[event.aggregate_id] = project_event_with_tracing_and_metrics(projector_func, by_id.get(event.aggregate_id), event)
    return list(by_id.values())

async def dispatch_events_to_projectors(request_store: RequestStore, events: List[domain_event_models.BaseEvent]) -> List[CSRRequest]:
    """
    Projects a batch of events as one store replacement. If any projector
    rejects its event, no event in the batch is applied.
    """
    current_span = get_current_span()
    current_span.add_event("DispatchingToProjectors", {"events.count": len(events)})
    logger.debug(f"Dispatching {len(events)} events to projectors.")
    committed = await request_store.mutate(lambda requests: apply_events(requests, events))
    touched = {event.aggregate_id for event in events}
    return [request for request in committed if request.id in touched]
