# Command Handler Implementation
import datetime
import logging
import time
import uuid
from typing import List

from opentelemetry import trace

from .models import (
    SubmitRequestCommand, SubmitRequestResult,
    DispatchToProviderCommand, DispatchToProviderResult,
    RecordProviderResponseCommand,
    ForwardResponseCommand, ForwardResponseResult,
)
from csr_request_service.app.service import lifecycle
from csr_request_service.app.service.events import models as domain_event_models
from csr_request_service.app.service.events.projectors import dispatch_events_to_projectors
from csr_request_service.app.service.models import (
    CSRRequest, RequestStatus, RequestTimestamps, derive_station_email
)
from csr_request_service.app.service.interfaces.provider_gateway import AbstractProviderGateway
from csr_request_service.app.service.notifications import NotificationPublisher
from csr_request_service.app.service.operations import OperationGuard
from csr_request_service.app.service.exceptions import (
    DuplicateRequestError, ForwardFailedError, ProviderUnreachableError, RequestNotFoundError
)
from csr_request_service.app.observability import (
    requests_ingested_counter,
    requests_dispatched_counter,
    dispatch_failures_counter,
    responses_forwarded_counter,
    dispatch_latency_histogram,
)
from csr_request_service.infrastructure.store.request_store import RequestStore
from csr_request_service.infrastructure.store.event_store import InMemoryEventStore

logger = logging.getLogger(__name__)

DISPATCH_NOTIFICATION_TITLE = "Requests Sent"
FORWARD_NOTIFICATION_TITLE = "Response Forwarded"
FORWARD_NOTIFICATION_DESCRIPTION = "The response has been sent back to the requesting police station"


def _metadata_for(command) -> domain_event_models.EventMetaData:
    return domain_event_models.EventMetaData(correlation_id=command.correlation_id, causation_id=command.command_id)


async def _commit(request_store: RequestStore, event_store: InMemoryEventStore, events: List[domain_event_models.BaseEvent]) -> List[CSRRequest]:
    # Both stores validate versions before either changes, so neither moves without the other.
    event_store.ensure_appendable(events)
    projected = await dispatch_events_to_projectors(request_store, events)
    await event_store.save_events(events)
    return projected


def _require_request(request_store: RequestStore, request_id: str) -> CSRRequest:
    request = request_store.get(request_id)
    if request is None:
        logger.warning(f"Request ID {request_id} not found.")
        raise RequestNotFoundError(request_id)
    return request


async def handle_submit_request_command(
    request_store: RequestStore,
    event_store: InMemoryEventStore,
    command: SubmitRequestCommand,
) -> SubmitRequestResult:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "SubmitRequestCommand")
    current_span.set_attribute("command.id", command.command_id)
    current_span.set_attribute("csr.provider", command.service_provider.value)

    if command.request_id and command.request_id in request_store:
        logger.warning(f"Rejecting duplicate submission for request {command.request_id}.")
        raise DuplicateRequestError(command.request_id)

    optional_fields = {}
    if command.request_id:
        optional_fields["id"] = command.request_id
    if command.reference_id:
        optional_fields["reference_id"] = command.reference_id

    request = CSRRequest(
        police_station_name=command.police_station_name,
        police_station_email=command.police_station_email or derive_station_email(command.police_station_name),
        mobile_number=command.mobile_number,
        service_provider=command.service_provider,
        timestamps=RequestTimestamps(received=command.received_at or datetime.datetime.now(datetime.UTC)),
        **optional_fields
    )

    event = domain_event_models.RequestReceivedEvent(
        aggregate_id=request.id,
        payload=domain_event_models.RequestReceivedEventPayload(request=request),
        version=1,
        metadata=_metadata_for(command)
    )
    await _commit(request_store, event_store, [event])

    requests_ingested_counter.add(1, {"provider": request.service_provider.value})
    current_span.add_event("RequestReceivedEventGenerated", {"request.id": request.id})
    logger.info(f"Request {request.id} ({request.reference_id}) received from {request.police_station_name} for {request.service_provider.value}.")
    return SubmitRequestResult(request_id=request.id, reference_id=request.reference_id, status=request.status)


async def handle_dispatch_to_provider_command(
    request_store: RequestStore,
    event_store: InMemoryEventStore,
    command: DispatchToProviderCommand,
    gateway: AbstractProviderGateway,
    notifier: NotificationPublisher,
    guard: OperationGuard,
) -> DispatchToProviderResult:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "DispatchToProviderCommand")
    current_span.set_attribute("command.id", command.command_id)
    current_span.set_attribute("csr.provider", command.provider.value)
    start_time = time.monotonic()
    provider = command.provider

    logger.info(f"Handling DispatchToProviderCommand: {command.command_id} for provider {provider.value}")

    # Raises OperationInProgressError while another dispatch for this provider is in flight.
    async with guard.dispatching(provider):
        pending = [
            r for r in request_store.snapshot()
            if r.service_provider == provider and r.status == RequestStatus.REQUEST_RECEIVED
        ]
        if not pending:
            logger.info(f"No pending requests for {provider.value}. Dispatch is a no-op.")
            current_span.add_event("DispatchSkippedNoPendingRequests")
            return DispatchToProviderResult(provider=provider)

        try:
            await gateway.send_requests(provider, pending)
        except ProviderUnreachableError as e:
            dispatch_failures_counter.add(1, {"provider": provider.value})
            current_span.record_exception(e)
            logger.warning(f"Dispatch to {provider.value} failed, {len(pending)} requests left in '{RequestStatus.REQUEST_RECEIVED.value}': {e}")
            raise

        sent_at = datetime.datetime.now(datetime.UTC)
        dispatch_batch_id = str(uuid.uuid4())
        events = []
        for request in pending:
            current = request_store.get(request.id) or request
            events.append(domain_event_models.RequestSentToProviderEvent(
                aggregate_id=request.id,
                payload=domain_event_models.RequestSentToProviderEventPayload(
                    provider=provider,
                    dispatch_batch_id=dispatch_batch_id,
                    sent_at=sent_at
                ),
                version=current.version + 1,
                metadata=_metadata_for(command)
            ))
        await _commit(request_store, event_store, events)

        dispatched_ids = [request.id for request in pending]
        requests_dispatched_counter.add(len(dispatched_ids), {"provider": provider.value})
        latency = time.monotonic() - start_time
        dispatch_latency_histogram.record(latency, attributes={"provider": provider.value})
        current_span.add_event("RequestsSentToProvider", {"dispatch.batch_id": dispatch_batch_id, "requests.count": len(dispatched_ids)})
        logger.info(f"Dispatched {len(dispatched_ids)} requests to {provider.value} in batch {dispatch_batch_id}. Latency: {latency:.4f}s")

        notification = notifier.publish(
            title=DISPATCH_NOTIFICATION_TITLE,
            description=f"All pending requests have been consolidated and sent to {provider.value}",
            key=provider.value
        )
        return DispatchToProviderResult(
            provider=provider,
            dispatch_batch_id=dispatch_batch_id,
            dispatched_request_ids=dispatched_ids,
            notification=notification
        )


async def handle_record_provider_response_command(
    request_store: RequestStore,
    event_store: InMemoryEventStore,
    command: RecordProviderResponseCommand,
) -> CSRRequest:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "RecordProviderResponseCommand")
    current_span.set_attribute("command.id", command.command_id)
    current_span.set_attribute("request.id", command.request_id)

    current = _require_request(request_store, command.request_id)
    lifecycle.ensure_can_advance(current, RequestStatus.RESPONSE_RECEIVED)

    event = domain_event_models.ProviderResponseRecordedEvent(
        aggregate_id=current.id,
        payload=domain_event_models.ProviderResponseRecordedEventPayload(
            response_text=command.response_text,
            received_at=command.received_at or datetime.datetime.now(datetime.UTC)
        ),
        version=current.version + 1,
        metadata=_metadata_for(command)
    )
    updated = (await _commit(request_store, event_store, [event]))[0]
    logger.info(f"Provider response recorded for request {updated.id} from {updated.service_provider.value}.")
    return updated


async def handle_forward_response_command(
    request_store: RequestStore,
    event_store: InMemoryEventStore,
    command: ForwardResponseCommand,
    gateway: AbstractProviderGateway,
    notifier: NotificationPublisher,
    guard: OperationGuard,
) -> ForwardResponseResult:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", "ForwardResponseCommand")
    current_span.set_attribute("command.id", command.command_id)
    current_span.set_attribute("request.id", command.request_id)

    logger.info(f"Handling ForwardResponseCommand: {command.command_id} for request {command.request_id}")

    async with guard.forwarding(command.request_id):
        current = _require_request(request_store, command.request_id)
        lifecycle.ensure_can_advance(current, RequestStatus.COMPLETED)

        try:
            await gateway.forward_response(current)
        except ForwardFailedError as e:
            current_span.record_exception(e)
            logger.warning(f"Forward of request {current.id} failed, left in '{current.status.value}': {e}")
            raise

        current = _require_request(request_store, command.request_id)
        event = domain_event_models.ResponseForwardedEvent(
            aggregate_id=current.id,
            payload=domain_event_models.ResponseForwardedEventPayload(
                police_station_email=current.police_station_email,
                forwarded_at=datetime.datetime.now(datetime.UTC)
            ),
            version=current.version + 1,
            metadata=_metadata_for(command)
        )
        updated = (await _commit(request_store, event_store, [event]))[0]

        responses_forwarded_counter.add(1, {"provider": updated.service_provider.value})
        current_span.add_event("ResponseForwarded", {"request.id": updated.id})
        logger.info(f"Response for request {updated.id} forwarded to {updated.police_station_email}.")

        notification = notifier.publish(
            title=FORWARD_NOTIFICATION_TITLE,
            description=FORWARD_NOTIFICATION_DESCRIPTION,
            key=updated.id
        )
        return ForwardResponseResult(request=updated, notification=notification)
